"""
Settlement Resolver

Observes the final state of an outgoing payment. The upstream network does
not always populate `state`, so the state is inferred with these rules,
checked in order on every read:

a. state present and not "pending"      -> that state
b. sentAmount.value == debitAmount.value -> completed
c. receiveAmount present and non-zero    -> completed
d. otherwise                             -> keep polling

The upstream's contract for when `state` is populated has not been verified
against the network itself; keep these rules exactly as they are until it is.

Polling sleeps between attempts with asyncio.sleep, so other sessions keep
running. The budget is an attempt count; exhausting it yields "unresolved",
never an exception.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from ..exceptions import OutgoingPaymentNotFoundError, UpstreamRequestError
from ..models.payments import OutgoingPayment, SettlementResult, StatusReport
from .open_payments_client import OpenPaymentsClient, parse_resource

logger = logging.getLogger(__name__)

RULE_EXPLICIT_STATE = "explicit_state"
RULE_SENT_EQUALS_DEBIT = "sent_equals_debit"
RULE_RECEIVE_AMOUNT = "receive_amount_nonzero"

PROCESSING = "processing"


def infer_state(payment: OutgoingPayment) -> Tuple[Optional[str], Optional[str]]:
    """
    Apply rules (a)-(c).

    Returns:
        (state, rule) when a rule fired, otherwise (None, None)
    """
    if payment.state and payment.state != "pending":
        return payment.state, RULE_EXPLICIT_STATE

    if payment.sent_amount and payment.debit_amount:
        if payment.sent_amount.value == payment.debit_amount.value:
            return "completed", RULE_SENT_EQUALS_DEBIT

    if payment.receive_amount and not payment.receive_amount.is_zero():
        return "completed", RULE_RECEIVE_AMOUNT

    return None, None


class SettlementResolver:
    """
    Args:
        client: Payer (sender) authenticated client
        poll_interval: Seconds between attempts
    """

    def __init__(self, client: OpenPaymentsClient, poll_interval: float = 1.0):
        self.client = client
        self.poll_interval = poll_interval

    async def _read(self, outgoing_payment_id: str, access_token: str) -> OutgoingPayment:
        data = await self.client.get_outgoing_payment(outgoing_payment_id, access_token)
        if not isinstance(data, dict) or not data.get("id"):
            data = {"id": outgoing_payment_id, **(data if isinstance(data, dict) else {})}
        return parse_resource(OutgoingPayment.from_upstream, data, "Outgoing payment")

    async def await_settlement(
        self,
        outgoing_payment_id: str,
        access_token: str,
        max_attempts: int,
        stop_on_error: bool = False
    ) -> SettlementResult:
        """
        Poll until a rule fires, the resource 404s, or attempts run out.

        Other upstream errors propagate with their status unless
        stop_on_error is set, in which case polling stops as unresolved
        and the result carries the upstream status.
        """
        last: Optional[OutgoingPayment] = None

        for attempt in range(1, max_attempts + 1):
            try:
                payment = await self._read(outgoing_payment_id, access_token)
            except UpstreamRequestError as e:
                if e.upstream_status == 404:
                    logger.info(f"Outgoing payment {outgoing_payment_id} not found on attempt {attempt}; stopping")
                    return SettlementResult(outcome="not_found", payment=last, attempts=attempt)
                if not stop_on_error:
                    raise
                logger.warning(
                    f"Outgoing payment {outgoing_payment_id} read failed on attempt {attempt} "
                    f"(status={e.upstream_status}): {e.message}; reporting {PROCESSING}"
                )
                return SettlementResult(
                    outcome="unresolved",
                    payment=last.with_state(PROCESSING) if last else None,
                    attempts=attempt,
                    upstream_status=e.upstream_status,
                )

            last = payment
            state, rule = infer_state(payment)
            if state:
                logger.info(f"Outgoing payment {payment.id} resolved to {state} by {rule} on attempt {attempt}")
                return SettlementResult(
                    outcome="resolved", payment=payment.with_state(state), attempts=attempt, rule=rule
                )

            logger.debug(f"Outgoing payment {payment.id} unresolved (attempt {attempt}/{max_attempts})")
            if attempt < max_attempts:
                await asyncio.sleep(self.poll_interval)

        logger.info(f"Outgoing payment {outgoing_payment_id} unresolved after {max_attempts} attempts")
        return SettlementResult(
            outcome="unresolved",
            payment=last.with_state(PROCESSING) if last else None,
            attempts=max_attempts,
        )

    async def current_status(self, outgoing_payment_id: str, access_token: str) -> StatusReport:
        """
        Single read with the same inference; unresolved defaults to "processing".

        The diagnostic records which rule fired (if any) so silent inference
        can be spotted outside production.

        Raises:
            OutgoingPaymentNotFoundError: Upstream answered 404
        """
        try:
            payment = await self._read(outgoing_payment_id, access_token)
        except UpstreamRequestError as e:
            if e.upstream_status == 404:
                raise OutgoingPaymentNotFoundError(
                    "Outgoing payment not found",
                    details={"outgoing_payment_id": outgoing_payment_id}
                )
            raise

        state, rule = infer_state(payment)
        diagnostic: Dict[str, Any] = {
            "rule": rule,
            "upstreamState": payment.raw.get("state"),
            "sentAmount": payment.sent_amount.value if payment.sent_amount else None,
            "debitAmount": payment.debit_amount.value if payment.debit_amount else None,
            "receiveAmount": payment.receive_amount.value if payment.receive_amount else None,
            "inferred": rule is not None and rule != RULE_EXPLICIT_STATE,
            "defaulted": state is None,
        }
        state = state or PROCESSING
        return StatusReport(payment=payment.with_state(state), state=state, diagnostic=diagnostic)
