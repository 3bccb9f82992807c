"""
Incoming Payment Manager

Payee-side payment intents: create a bounded incoming payment for the amount
owed, read it back, and complete it once the payer's transfer exists.

Normalization:
- The upstream sometimes omits `state` on freshly created incoming payments.
  IncomingPayment.from_upstream() normalizes that to "pending" at this
  boundary, so nothing downstream ever sees an unset state.

Completion:
- complete() failures raise IncomingCompletionError; the outgoing payment
  executor downgrades them to a CompletionWarning because the transfer has
  already been created and must not be rolled back.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..exceptions import IncomingCompletionError, OpenPaymentsError
from ..models.payments import IncomingPayment
from ..models.wallets import WalletDocument
from .grant_service import GrantNegotiator, access_item
from .open_payments_client import OpenPaymentsClient, parse_resource
from .wallet_directory import WalletDirectory

logger = logging.getLogger(__name__)

INTENT_ACTIONS = ["create", "read", "list", "complete"]


def validate_minor_amount(value: str) -> str:
    """
    Validate a minor-unit amount string.

    Raises:
        ValueError: If the value is not a positive integer
    """
    text = str(value).strip()
    if not text.isdigit() or int(text) <= 0:
        raise ValueError(f"receiveValueMinor must be a positive integer in minor units, got {value!r}")
    return str(int(text))


def expiry_timestamp(minutes: int, now: Optional[datetime] = None) -> str:
    """RFC 3339 UTC timestamp `minutes` from now."""
    now = now or datetime.now(timezone.utc)
    expires = now + timedelta(minutes=minutes)
    return expires.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class IncomingPaymentManager:
    """
    Args:
        client: Payee (receiver) authenticated client
        negotiator: Grant negotiator
        wallets: Wallet directory (payee document is fetched when not supplied)
        expiry_minutes: Lifetime of each incoming payment
        description: Opaque description stored in metadata
    """

    def __init__(
        self,
        client: OpenPaymentsClient,
        negotiator: GrantNegotiator,
        wallets: WalletDirectory,
        expiry_minutes: int = 30,
        description: str = "Parking fee"
    ):
        self.client = client
        self.negotiator = negotiator
        self.wallets = wallets
        self.expiry_minutes = expiry_minutes
        self.description = description

    async def create_intent(
        self,
        target_minor_amount: str,
        payee_wallet: Optional[WalletDocument] = None
    ) -> IncomingPayment:
        """
        Create an incoming payment for the target amount in the payee's asset.

        A fresh {create, read, list, complete} grant is requested per intent.

        Raises:
            ValueError: Invalid amount
            GrantNegotiationFailedError: Grant refused
            UpstreamRequestError: Creation rejected (status passthrough)
        """
        value = validate_minor_amount(target_minor_amount)
        payee = payee_wallet or await self.wallets.payee_wallet()

        grant = await self.negotiator.request_grant(
            self.client, payee, [access_item("incoming-payment", INTENT_ACTIONS)]
        )

        body = {
            "walletAddress": payee.id,
            "incomingAmount": payee.amount(value).model_dump(by_alias=True),
            "expiresAt": expiry_timestamp(self.expiry_minutes),
            "metadata": {"description": self.description},
        }
        data = await self.client.create_incoming_payment(payee.resource_server, grant.access_token, body)
        payment = parse_resource(IncomingPayment.from_upstream, data, "Incoming payment")

        if not payment.state_present:
            logger.info(f"Incoming payment {payment.id} returned without state; normalized to pending")
        logger.info(f"Created incoming payment {payment.id} for {value} {payee.asset_code} (scale {payee.asset_scale})")
        return payment

    async def get(self, intent_id: str, payee_wallet: Optional[WalletDocument] = None) -> IncomingPayment:
        """Read an incoming payment with a fresh {read} grant."""
        payee = payee_wallet or await self.wallets.payee_wallet()
        grant = await self.negotiator.request_grant(
            self.client, payee, [access_item("incoming-payment", ["read"])]
        )
        data = await self.client.get_incoming_payment(intent_id, grant.access_token)
        return parse_resource(IncomingPayment.from_upstream, data, "Incoming payment")

    async def complete(self, intent_id: str, payee_wallet: Optional[WalletDocument] = None) -> IncomingPayment:
        """
        Mark an incoming payment completed with a fresh {complete} grant.

        Raises:
            IncomingCompletionError: Any failure along the way
        """
        try:
            payee = payee_wallet or await self.wallets.payee_wallet()
            grant = await self.negotiator.request_grant(
                self.client, payee, [access_item("incoming-payment", ["complete"])]
            )
            data = await self.client.complete_incoming_payment(intent_id, grant.access_token)
            if not isinstance(data, dict) or not data.get("id"):
                data = {"id": intent_id, **(data if isinstance(data, dict) else {})}
            payment = parse_resource(IncomingPayment.from_upstream, data, "Incoming payment")
        except OpenPaymentsError as e:
            raise IncomingCompletionError(
                f"Could not complete incoming payment: {e.message}",
                details={"incoming_payment_id": intent_id, "cause": e.error_code},
                status_code=e.details.get("upstream_status"),
            )

        logger.info(f"Completed incoming payment {intent_id} (state={payment.state})")
        return payment
