"""
Outgoing Payment Executor

Creates the payer's transfer to an incoming payment using the finalized
outgoing-payment access token.

Three request shapes are tried in order, each only if the previous failed:
1. quoted: obtain a quote, then create the payment from its quoteId
2. receiver-direct: reference the incoming payment with an explicit method;
   the upstream derives the amount from the incoming payment
3. minimal: reference the incoming payment only

If the minimal shape also fails and its error points at the incoming
payment's state, the incoming payment is no longer payable and
PaymentNotPayableError is raised instead of a generic failure.

After any successful creation the payee side is completed best-effort.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..exceptions import (
    IncomingCompletionError,
    OutgoingPaymentFailedError,
    PaymentNotPayableError,
)
from ..models.payments import CompletionWarning, IncomingPayment, OutgoingPayment, Quote
from ..models.wallets import WalletDocument
from .fallback import StrategiesExhausted, Strategy, run_strategies
from .incoming_payment_service import IncomingPaymentManager
from .open_payments_client import OpenPaymentsClient, parse_resource
from .quote_service import QuoteEngine

logger = logging.getLogger(__name__)

NOT_PAYABLE_PATTERN = re.compile(r"\b(state|pending|payable|expired|completed)\b", re.IGNORECASE)


def indicates_not_payable(message: Optional[str]) -> bool:
    """True when an upstream error message points at the incoming payment's state."""
    return bool(NOT_PAYABLE_PATTERN.search(message or ""))


@dataclass
class ExecutionResult:
    """Created transfer plus what happened around it."""
    payment: OutgoingPayment
    tier: str
    quote: Optional[Quote] = None
    completed_incoming: Optional[IncomingPayment] = None
    warnings: List[CompletionWarning] = field(default_factory=list)


class OutgoingPaymentExecutor:
    """
    Args:
        client: Payer (sender) authenticated client
        quotes: Quote engine for the quoted tier
        incoming: Payee-side manager used for best-effort completion
        method: Settlement method for quotes and the receiver-direct tier
    """

    def __init__(
        self,
        client: OpenPaymentsClient,
        quotes: QuoteEngine,
        incoming: IncomingPaymentManager,
        method: str = "ilp"
    ):
        self.client = client
        self.quotes = quotes
        self.incoming = incoming
        self.method = method

    async def _create(self, payer_wallet: WalletDocument, access_token: str, body: Dict[str, Any]) -> OutgoingPayment:
        data = await self.client.create_outgoing_payment(payer_wallet.resource_server, access_token, body)
        return parse_resource(OutgoingPayment.from_upstream, data, "Outgoing payment")

    async def execute(
        self,
        payer_wallet: WalletDocument,
        incoming_payment_id: str,
        access_token: str
    ) -> ExecutionResult:
        """
        Create the outgoing payment, falling back through the three tiers.

        Raises:
            PaymentNotPayableError: Incoming payment already paid or expired
            OutgoingPaymentFailedError: All tiers failed for other reasons
        """
        used_quote: Dict[str, Quote] = {}

        async def quoted() -> OutgoingPayment:
            quote = await self.quotes.quote(payer_wallet, incoming_payment_id)
            payment = await self._create(
                payer_wallet, access_token, {"walletAddress": payer_wallet.id, "quoteId": quote.id}
            )
            used_quote["quote"] = quote
            return payment

        async def receiver_direct() -> OutgoingPayment:
            return await self._create(payer_wallet, access_token, {
                "walletAddress": payer_wallet.id,
                "incomingPayment": incoming_payment_id,
                "method": self.method,
            })

        async def minimal() -> OutgoingPayment:
            return await self._create(payer_wallet, access_token, {
                "walletAddress": payer_wallet.id,
                "incomingPayment": incoming_payment_id,
            })

        strategies = [
            Strategy("quoted", quoted),
            Strategy("receiver-direct", receiver_direct),
            Strategy("minimal", minimal),
        ]

        try:
            outcome = await run_strategies("outgoing payment", strategies)
        except StrategiesExhausted as e:
            last = e.last
            details = {"attempts": e.attempts(), "upstream_status": last.status, "body": last.body}
            if indicates_not_payable(last.message):
                logger.warning(f"Incoming payment {incoming_payment_id} is not payable: {last.message}")
                raise PaymentNotPayableError(
                    "Incoming payment is no longer payable (already paid or expired)",
                    details={"incoming_payment_id": incoming_payment_id, **details}
                )
            raise OutgoingPaymentFailedError(
                f"Outgoing payment could not be created: {last.message}",
                details=details,
                status_code=last.status,
            )

        payment = outcome.result
        logger.info(f"Created outgoing payment {payment.id} via {outcome.name}")

        result = ExecutionResult(payment=payment, tier=outcome.name, quote=used_quote.get("quote"))

        try:
            result.completed_incoming = await self.incoming.complete(incoming_payment_id)
        except IncomingCompletionError as e:
            logger.warning(f"Completion warning for {incoming_payment_id}: {e.message}")
            result.warnings.append(CompletionWarning(message=e.message, details=e.details))

        return result
