"""
Grant Negotiator

Requests access grants from a wallet's authorization server.

Two kinds of grant are negotiated:
- Non-interactive: incoming payments (payee), quotes and status reads (payer).
  The response must be finalized and carry an access token.
- Interactive: outgoing payments (payer). The response must carry a redirect
  URL for the user plus a continuation URI and token; the pause for user
  consent happens outside this process.
"""
import logging
import secrets
from typing import Any, Dict, List, Optional

from ..exceptions import GrantNegotiationFailedError, UpstreamRequestError
from ..logging_utils import mask
from ..models.payments import FinalizedGrant, PendingGrant
from ..models.wallets import WalletDocument
from .open_payments_client import OpenPaymentsClient

logger = logging.getLogger(__name__)


def access_item(resource_type: str, actions: List[str], identifier: Optional[str] = None) -> Dict[str, Any]:
    """Build one entry of access_token.access."""
    item: Dict[str, Any] = {"type": resource_type, "actions": list(actions)}
    if identifier:
        item["identifier"] = identifier
    return item


class GrantNegotiator:
    """
    Negotiates grants on behalf of either wallet.

    Args:
        finish_redirect_url: Where the authorization server sends the user
            after consent (served by GET /op/finish)
    """

    def __init__(self, finish_redirect_url: str):
        self.finish_redirect_url = finish_redirect_url

    async def _request(
        self,
        client: OpenPaymentsClient,
        wallet: WalletDocument,
        grant_request: Dict[str, Any]
    ) -> Dict[str, Any]:
        try:
            response = await client.request_grant(wallet.auth_server, grant_request)
        except UpstreamRequestError as e:
            raise GrantNegotiationFailedError(
                f"Grant request to {wallet.auth_server} failed: {e.message}",
                details={"upstream_status": e.upstream_status, "body": e.body},
                status_code=e.upstream_status,
            )
        return response if isinstance(response, dict) else {}

    async def request_grant(
        self,
        client: OpenPaymentsClient,
        wallet: WalletDocument,
        access: List[Dict[str, Any]]
    ) -> FinalizedGrant:
        """
        Request a non-interactive grant.

        Raises:
            GrantNegotiationFailedError: Request rejected, or grant not finalized
        """
        types = ",".join(f"{a['type']}:{'/'.join(a['actions'])}" for a in access)
        logger.info(f"Requesting grant [{types}] from {wallet.auth_server}")

        response = await self._request(client, wallet, {"access_token": {"access": access}})
        grant = FinalizedGrant.from_upstream(response)
        if grant is None:
            raise GrantNegotiationFailedError(
                "Grant was not finalized",
                details={"access": access, "interact": bool(response.get("interact"))}
            )
        return grant

    async def request_interactive_grant(
        self,
        client: OpenPaymentsClient,
        payer_wallet: WalletDocument
    ) -> PendingGrant:
        """
        Request an outgoing-payment {read, create} grant that needs user consent.

        A fresh nonce is generated per request for replay protection.

        Raises:
            GrantNegotiationFailedError: If redirect URL, continue URI or
                continue token is missing
        """
        nonce = secrets.token_urlsafe(16)
        grant_request = {
            "access_token": {
                "access": [access_item("outgoing-payment", ["read", "create"], payer_wallet.id)]
            },
            "interact": {
                "start": ["redirect"],
                "finish": {"method": "redirect", "uri": self.finish_redirect_url, "nonce": nonce},
            },
        }
        response = await self._request(client, payer_wallet, grant_request)

        interact = response.get("interact") or {}
        cont = response.get("continue") or {}
        redirect_url = interact.get("redirect")
        continue_uri = cont.get("uri")
        continue_token = (cont.get("access_token") or {}).get("value")

        missing = [
            name for name, value in (
                ("redirectUrl", redirect_url),
                ("continueUri", continue_uri),
                ("continueAccessToken", continue_token),
            ) if not value
        ]
        if missing:
            logger.error(f"Interactive grant response missing {missing}")
            raise GrantNegotiationFailedError(
                "Interactive grant response is missing continuation data",
                details={"missing": missing}
            )

        logger.info(f"Interactive grant pending: continue={continue_uri[:68]} token={mask(continue_token)}")
        return PendingGrant(
            redirect_url=redirect_url,
            continuation_url=continue_uri,
            continuation_token=continue_token,
            finish_nonce=nonce,
        )
