"""In-memory Open Payments network served through httpx.MockTransport.

One payer wallet (USD) and one payee wallet (MXN), each with its own
authorization and resource server. Behaviour switches are plain attributes
so a test can make one endpoint misbehave without touching the others.

Every signed request is verified against the registered Ed25519 public key.
"""

import base64
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Union
from uuid import uuid4

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from op_gateway.services.http_signatures import build_signature_base


PAYER_WALLET = "https://wallet.example/payer"
PAYEE_WALLET = "https://wallet.example/payee"
PAYER_AUTH = "https://auth.payer.example"
PAYEE_AUTH = "https://auth.payee.example"
PAYER_RS = "https://rs.payer.example"
PAYEE_RS = "https://rs.payee.example"

PAYER_KEY_ID = "payer-key"
PAYEE_KEY_ID = "payee-key"

CONTINUE_TOKEN = "continue-token"
OUTGOING_TOKEN = "outgoing-token"

DEBIT_VALUE = "80"


@dataclass
class ContinuationCall:
    """One request seen on a continuation URI."""
    content_type: str
    signed: bool
    body: Dict[str, Any]

    @property
    def hash(self) -> Optional[str]:
        return self.body.get("hash")


def usd(value: str) -> Dict[str, Any]:
    return {"value": value, "assetCode": "USD", "assetScale": 2}


def mxn(value: str) -> Dict[str, Any]:
    return {"value": value, "assetCode": "MXN", "assetScale": 2}


def _error(status: int, description: str, code: str = "invalid_request") -> httpx.Response:
    return httpx.Response(status, json={"error": {"code": code, "description": description}})


@dataclass
class FakeOpenPaymentsNetwork:
    payer_key: Ed25519PrivateKey = field(default_factory=Ed25519PrivateKey.generate)
    payee_key: Ed25519PrivateKey = field(default_factory=Ed25519PrivateKey.generate)

    # Wallets
    wallet_status: Dict[str, int] = field(default_factory=dict)

    # Grants
    grant_requests: List[Dict[str, Any]] = field(default_factory=list)
    grant_status: Optional[int] = None
    interactive_drop: Set[str] = field(default_factory=set)
    finalize_grants: bool = True
    continuation_calls: List[ContinuationCall] = field(default_factory=list)
    continuation_accepts: Callable[[ContinuationCall], bool] = lambda call: True
    continuation_reject_status: Callable[[ContinuationCall], int] = lambda call: 401
    continuation_token_in_response: bool = True

    # Resources
    omit_incoming_state: bool = True
    incoming_payments: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    completion_status: Optional[int] = None
    completion_overrides: Dict[str, Any] = field(default_factory=dict)
    quote_status: Optional[int] = None
    quote_overrides: Dict[str, Any] = field(default_factory=dict)
    quotes: Dict[str, str] = field(default_factory=dict)
    rejected_shapes: Dict[str, int] = field(default_factory=dict)
    outgoing_requests: List[Dict[str, Any]] = field(default_factory=list)
    outgoing_payments: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    outgoing_views: List[Union[int, Dict[str, Any]]] = field(default_factory=list)
    outgoing_reads: List[str] = field(default_factory=list)

    requests: List[httpx.Request] = field(default_factory=list)

    # ------------------------------------------------------------------
    # Helpers for tests
    # ------------------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def public_keys(self) -> Dict[str, Any]:
        return {
            PAYER_KEY_ID: self.payer_key.public_key(),
            PAYEE_KEY_ID: self.payee_key.public_key(),
        }

    def count(self, method: str, prefix: str) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method and str(r.url).startswith(prefix)
        )

    def shapes_tried(self) -> List[str]:
        return [self._shape(body) for body in self.outgoing_requests]

    def seed_outgoing(self, **fields: Any) -> str:
        """Register an outgoing payment directly and return its URL."""
        payment_id = f"{PAYER_RS}/outgoing-payments/{uuid4()}"
        self.outgoing_payments[payment_id] = {
            "id": payment_id,
            "walletAddress": PAYER_WALLET,
            "receiver": f"{PAYEE_RS}/incoming-payments/{uuid4()}",
            "debitAmount": usd(DEBIT_VALUE),
            "sentAmount": usd(DEBIT_VALUE),
            "receiveAmount": mxn("1500"),
            **fields,
        }
        return payment_id

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        signed = "signature" in request.headers
        if signed and not self._verify_signature(request):
            return _error(401, "invalid signature", "invalid_client")

        if request.method == "GET" and url in (PAYER_WALLET, PAYEE_WALLET):
            return self._wallet(url)

        if url.startswith(f"{PAYER_AUTH}/continue/") or url.startswith(f"{PAYEE_AUTH}/continue/"):
            return self._continue(request, signed)

        if url.rstrip("/") in (PAYER_AUTH, PAYEE_AUTH):
            if not signed:
                return _error(401, "signature required", "invalid_client")
            return self._grant(request)

        if url.startswith(PAYER_RS) or url.startswith(PAYEE_RS):
            if not signed:
                return _error(401, "signature required", "invalid_client")
            if not request.headers.get("authorization", "").startswith("GNAP "):
                return _error(401, "missing access token", "invalid_token")
            return self._resource(request)

        return httpx.Response(404, json={"error": "not found"})

    def _verify_signature(self, request: httpx.Request) -> bool:
        signature_input = request.headers.get("signature-input", "")
        signature = request.headers.get("signature", "")
        if not signature_input.startswith("sig1=") or not signature.startswith("sig1=:"):
            return False

        params = signature_input[len("sig1="):]
        components = re.findall(r'"([^"]+)"', params.split(")")[0])
        key_id = re.search(r'keyid="([^"]+)"', params)
        public_key = self.public_keys().get(key_id.group(1) if key_id else "")
        if public_key is None:
            return False

        base = build_signature_base(request, components, params)
        try:
            public_key.verify(base64.b64decode(signature[len("sig1=:"):-1]), base.encode("utf-8"))
        except InvalidSignature:
            return False
        return True

    # ------------------------------------------------------------------
    # Wallet addresses
    # ------------------------------------------------------------------

    def _wallet(self, url: str) -> httpx.Response:
        if url in self.wallet_status:
            return _error(self.wallet_status[url], "wallet unavailable")
        if url == PAYER_WALLET:
            return httpx.Response(200, json={
                "id": PAYER_WALLET,
                "authServer": PAYER_AUTH,
                "resourceServer": PAYER_RS,
                "assetCode": "USD",
                "assetScale": 2,
                "publicName": "Driver",
            })
        return httpx.Response(200, json={
            "id": PAYEE_WALLET,
            "authServer": PAYEE_AUTH,
            "resourceServer": PAYEE_RS,
            "assetCode": "MXN",
            "assetScale": 2,
            "publicName": "Parking Lot",
        })

    # ------------------------------------------------------------------
    # Authorization servers
    # ------------------------------------------------------------------

    def _grant(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.grant_requests.append(body)
        auth = str(request.url).rstrip("/")

        if self.grant_status:
            return _error(self.grant_status, "grant request rejected", "invalid_client")

        grant_id = uuid4().hex[:12]
        if "interact" in body:
            response: Dict[str, Any] = {
                "interact": {
                    "redirect": f"{auth}/interact/{grant_id}",
                    "finish": uuid4().hex,
                },
                "continue": {
                    "uri": f"{auth}/continue/{grant_id}",
                    "access_token": {"value": CONTINUE_TOKEN},
                    "wait": 5,
                },
            }
            if "redirect" in self.interactive_drop:
                del response["interact"]["redirect"]
            if "uri" in self.interactive_drop:
                del response["continue"]["uri"]
            if "token" in self.interactive_drop:
                del response["continue"]["access_token"]
            return httpx.Response(200, json=response)

        if not self.finalize_grants:
            return httpx.Response(200, json={"continue": {"uri": f"{auth}/continue/{grant_id}"}})

        resource = body["access_token"]["access"][0]["type"]
        return httpx.Response(200, json={
            "access_token": {
                "value": f"{resource}-token-{grant_id}",
                "manage": f"{auth}/token/{grant_id}",
                "access": body["access_token"]["access"],
            },
            "continue": {"uri": f"{auth}/continue/{grant_id}", "access_token": {"value": CONTINUE_TOKEN}},
        })

    def _continue(self, request: httpx.Request, signed: bool) -> httpx.Response:
        call = ContinuationCall(
            content_type=request.headers.get("content-type", ""),
            signed=signed,
            body=json.loads(request.content or b"{}"),
        )
        self.continuation_calls.append(call)

        if request.headers.get("authorization") != f"GNAP {CONTINUE_TOKEN}":
            return _error(401, "invalid continuation token", "invalid_continuation")
        if not self.continuation_accepts(call):
            return _error(self.continuation_reject_status(call), "interaction hash mismatch", "invalid_interaction")
        if not self.continuation_token_in_response:
            return httpx.Response(200, json={"continue": {"uri": str(request.url), "wait": 5}})
        return httpx.Response(200, json={
            "access_token": {
                "value": OUTGOING_TOKEN,
                "manage": f"{PAYER_AUTH}/token/outgoing",
                "access": [{"type": "outgoing-payment", "actions": ["read", "create"]}],
            }
        })

    # ------------------------------------------------------------------
    # Resource servers
    # ------------------------------------------------------------------

    def _resource(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        method = request.method

        if method == "POST" and url == f"{PAYEE_RS}/incoming-payments":
            return self._create_incoming(json.loads(request.content))
        if method == "POST" and url.endswith("/complete") and url.startswith(PAYEE_RS):
            return self._complete_incoming(url[:-len("/complete")])
        if method == "GET" and url.startswith(f"{PAYEE_RS}/incoming-payments/"):
            return self._incoming_view(url)
        if method == "POST" and url == f"{PAYER_RS}/quotes":
            return self._create_quote(json.loads(request.content))
        if method == "POST" and url == f"{PAYER_RS}/outgoing-payments":
            return self._create_outgoing(json.loads(request.content))
        if method == "GET" and url.startswith(f"{PAYER_RS}/outgoing-payments/"):
            return self._outgoing_view(url)

        return httpx.Response(404, json={"error": "not found"})

    def _create_incoming(self, body: Dict[str, Any]) -> httpx.Response:
        payment_id = f"{PAYEE_RS}/incoming-payments/{uuid4()}"
        self.incoming_payments[payment_id] = {
            "id": payment_id,
            "walletAddress": body["walletAddress"],
            "incomingAmount": body["incomingAmount"],
            "receivedAmount": mxn("0"),
            "completed": False,
            "expiresAt": body["expiresAt"],
            "metadata": body.get("metadata", {}),
            "state": "PENDING",
        }
        return httpx.Response(201, json=self._incoming_public(payment_id))

    def _incoming_public(self, payment_id: str) -> Dict[str, Any]:
        data = dict(self.incoming_payments[payment_id])
        if self.omit_incoming_state and data["state"] == "PENDING":
            data.pop("state")
        return data

    def _incoming_view(self, url: str) -> httpx.Response:
        if url not in self.incoming_payments:
            return _error(404, "incoming payment not found", "not_found")
        return httpx.Response(200, json=self._incoming_public(url))

    def _complete_incoming(self, payment_id: str) -> httpx.Response:
        if self.completion_status:
            return _error(self.completion_status, "completion unavailable")
        if payment_id not in self.incoming_payments:
            return _error(404, "incoming payment not found", "not_found")
        payment = self.incoming_payments[payment_id]
        payment["completed"] = True
        payment["state"] = "COMPLETED"
        return httpx.Response(200, json={**self._incoming_public(payment_id), **self.completion_overrides})

    def _payable(self, incoming_payment_id: str) -> Optional[httpx.Response]:
        payment = self.incoming_payments.get(incoming_payment_id)
        if payment is None:
            return _error(400, "unknown receiver", "invalid_receiver")
        if payment["state"] != "PENDING":
            return _error(400, "Incoming payment is not in pending state", "invalid_receiver")
        return None

    def _create_quote(self, body: Dict[str, Any]) -> httpx.Response:
        if self.quote_status:
            return _error(self.quote_status, "no route to receiver", "invalid_quote")
        rejected = self._payable(body["receiver"])
        if rejected is not None:
            return rejected
        incoming = self.incoming_payments[body["receiver"]]
        quote_id = f"{PAYER_RS}/quotes/{uuid4()}"
        self.quotes[quote_id] = body["receiver"]
        return httpx.Response(201, json={
            "id": quote_id,
            "walletAddress": body["walletAddress"],
            "receiver": body["receiver"],
            "method": body["method"],
            "debitAmount": usd(DEBIT_VALUE),
            "receiveAmount": incoming["incomingAmount"],
            "expiresAt": "2030-01-01T00:00:00.000Z",
            **self.quote_overrides,
        })

    @staticmethod
    def _shape(body: Dict[str, Any]) -> str:
        if "quoteId" in body:
            return "quoted"
        if "method" in body:
            return "receiver-direct"
        return "minimal"

    def _create_outgoing(self, body: Dict[str, Any]) -> httpx.Response:
        self.outgoing_requests.append(body)
        shape = self._shape(body)
        if shape in self.rejected_shapes:
            return _error(self.rejected_shapes[shape], f"unsupported request shape: {shape}")

        if shape == "quoted":
            receiver = self.quotes.get(body["quoteId"], "")
        else:
            receiver = body["incomingPayment"]
        rejected = self._payable(receiver)
        if rejected is not None:
            return rejected

        incoming = self.incoming_payments[receiver]
        payment_id = f"{PAYER_RS}/outgoing-payments/{uuid4()}"
        self.outgoing_payments[payment_id] = {
            "id": payment_id,
            "walletAddress": body["walletAddress"],
            "receiver": receiver,
            "quoteId": body.get("quoteId"),
            "debitAmount": usd(DEBIT_VALUE),
            "sentAmount": usd(DEBIT_VALUE),
            "receiveAmount": incoming["incomingAmount"],
        }
        created = dict(self.outgoing_payments[payment_id], sentAmount=usd("0"))
        return httpx.Response(201, json={k: v for k, v in created.items() if v is not None})

    def _outgoing_view(self, url: str) -> httpx.Response:
        self.outgoing_reads.append(url)
        view: Union[int, Dict[str, Any]] = self.outgoing_views.pop(0) if self.outgoing_views else {}
        if isinstance(view, int):
            return _error(view, "outgoing payment lookup failed", "not_found")
        if url not in self.outgoing_payments:
            return _error(404, "outgoing payment not found", "not_found")
        data = {**self.outgoing_payments[url], **view}
        return httpx.Response(200, json={k: v for k, v in data.items() if v is not None})
