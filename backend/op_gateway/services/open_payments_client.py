"""
Authenticated Open Payments Client

Async HTTP client bound to one wallet address and its signing key.
The gateway builds two of these at startup (payer and payee) and injects
them into every component; nothing here is a process-wide singleton.

Every non-2xx answer raises UpstreamRequestError carrying the upstream
status and body so callers can pass them through or fall back.
"""
import json
import logging
from typing import Any, Callable, Dict, Optional, TypeVar

import httpx
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from ..exceptions import UpstreamRequestError
from .http_signatures import sign_request

logger = logging.getLogger(__name__)

T = TypeVar("T")

JSON_MEDIA_TYPE = "application/json"
GNAP_MEDIA_TYPE = "application/gnap+json"


def describe_upstream_error(body: Any, status_code: Optional[int] = None) -> str:
    """
    Extract a human-readable message from an upstream error body.

    Handles the shapes seen across deployments:
    {"error": {"code", "description"}}, {"error", "error_description"},
    {"message"} and plain text.
    """
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("description") or error.get("message") or error.get("code")
        else:
            message = body.get("error_description") or error or body.get("message")
        if message:
            return str(message)
    elif isinstance(body, str) and body.strip():
        return body.strip()[:200]
    return f"HTTP {status_code}" if status_code else "upstream request failed"


def parse_resource(parse: Callable[[Dict[str, Any]], T], data: Any, resource: str) -> T:
    """
    Parse an upstream resource body with the given model constructor.

    Raises:
        UpstreamRequestError: Body has no id or does not match the resource shape
    """
    if not isinstance(data, dict) or not data.get("id"):
        raise UpstreamRequestError(f"{resource} response has no id", body=data)
    try:
        return parse(data)
    except (ValueError, TypeError) as e:
        raise UpstreamRequestError(f"Malformed {resource} response: {e}", body=data)


class OpenPaymentsClient:
    """
    Signed client for one wallet address.

    Args:
        wallet_address_url: Wallet address this client acts for (sent as the
            grant "client")
        key_id: Key identifier registered on the wallet address
        private_key: Ed25519 signing key
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests inject a MockTransport)
    """

    def __init__(
        self,
        wallet_address_url: str,
        key_id: str,
        private_key: Ed25519PrivateKey,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.wallet_address_url = wallet_address_url
        self.key_id = key_id
        self._private_key = private_key
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": "op-gateway/0.1.0"},
        )

    async def request(
        self,
        method: str,
        url: str,
        body: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
        media_type: str = JSON_MEDIA_TYPE,
        sign: bool = True
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        Raises:
            UpstreamRequestError: Transport failure or non-2xx status
        """
        headers = {"Accept": media_type}
        if access_token:
            headers["Authorization"] = f"GNAP {access_token}"

        content = None
        if body is not None:
            content = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = media_type

        request = self._client.build_request(method, url, content=content, headers=headers)
        if sign:
            sign_request(request, self._private_key, self.key_id)

        try:
            response = await self._client.send(request)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} transport error: {e}")
            raise UpstreamRequestError(f"{method} {url} failed: {e}", url=url)

        data = self._decode(response)
        if response.status_code >= 400:
            message = describe_upstream_error(data, response.status_code)
            logger.debug(f"{method} {url} -> {response.status_code}: {message}")
            raise UpstreamRequestError(message, upstream_status=response.status_code, body=data, url=url)
        return data

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return response.text

    # ========================================================================
    # Wallet addresses
    # ========================================================================

    async def get_wallet_address(self, url: str) -> Dict[str, Any]:
        """Fetch a public wallet address document (unsigned)."""
        return await self.request("GET", url, sign=False)

    # ========================================================================
    # Grants
    # ========================================================================

    async def request_grant(self, auth_server: str, grant_request: Dict[str, Any]) -> Dict[str, Any]:
        """Request a grant; this client's wallet address is sent as the GNAP client."""
        body = dict(grant_request)
        body.setdefault("client", self.wallet_address_url)
        return await self.request("POST", auth_server, body=body)

    async def continue_grant(
        self,
        continue_uri: str,
        continue_token: str,
        body: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Continue a pending grant the standard way (JSON, GNAP authorization)."""
        return await self.request("POST", continue_uri, body=body, access_token=continue_token)

    async def continue_grant_raw(
        self,
        continue_uri: str,
        continue_token: str,
        body: Dict[str, Any],
        media_type: str = GNAP_MEDIA_TYPE
    ) -> Dict[str, Any]:
        """
        Continue a pending grant with a bare GNAP request.

        Explicit content negotiation and no message signature; some
        authorization servers only accept continuation in this form.
        """
        return await self.request(
            "POST", continue_uri, body=body, access_token=continue_token, media_type=media_type, sign=False
        )

    # ========================================================================
    # Resources
    # ========================================================================

    async def create_incoming_payment(
        self,
        resource_server: str,
        access_token: str,
        body: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self.request(
            "POST", f"{resource_server.rstrip('/')}/incoming-payments", body=body, access_token=access_token
        )

    async def get_incoming_payment(self, url: str, access_token: str) -> Dict[str, Any]:
        return await self.request("GET", url, access_token=access_token)

    async def complete_incoming_payment(self, url: str, access_token: str) -> Dict[str, Any]:
        return await self.request("POST", f"{url.rstrip('/')}/complete", body={}, access_token=access_token)

    async def create_quote(self, resource_server: str, access_token: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request(
            "POST", f"{resource_server.rstrip('/')}/quotes", body=body, access_token=access_token
        )

    async def create_outgoing_payment(
        self,
        resource_server: str,
        access_token: str,
        body: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self.request(
            "POST", f"{resource_server.rstrip('/')}/outgoing-payments", body=body, access_token=access_token
        )

    async def get_outgoing_payment(self, url: str, access_token: str) -> Dict[str, Any]:
        return await self.request("GET", url, access_token=access_token)

    async def aclose(self) -> None:
        await self._client.aclose()
