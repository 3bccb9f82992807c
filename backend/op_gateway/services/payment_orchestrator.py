"""
Payment Orchestrator

Top-level sequencer behind the /op endpoints. Composes wallet resolution,
incoming payment creation, interactive grant negotiation and continuation,
outgoing payment execution and settlement observation.

Stateless between calls: every operation takes the identifiers and tokens it
needs (incoming payment URL, continuation handle, access token) as input.
That is what lets the user leave the process to approve the grant in a
browser and come back through a separate call.

Flow:
    create_incoming -> start_outgoing -> (user consent) -> finish_outgoing
    -> pay_outgoing -> payment_status / payment_verify / payment_await
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from ..logging_utils import mask
from ..models.payments import (
    FinalizedGrant,
    IncomingPayment,
    PaymentSession,
    PendingGrant,
    SettlementResult,
    StatusReport,
)
from .grant_continuation import GrantContinuation
from .grant_service import GrantNegotiator, access_item
from .incoming_payment_service import IncomingPaymentManager
from .open_payments_client import OpenPaymentsClient
from .outgoing_payment_service import OutgoingPaymentExecutor
from .settlement_service import PROCESSING, SettlementResolver
from .wallet_directory import WalletDirectory, WalletPair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GrantFinish:
    """Result of finish-outgoing."""
    grant: FinalizedGrant
    payer_wallet_id: str


def require_fields(**fields: Optional[str]) -> None:
    """
    Raises:
        ValueError: Naming every empty field
    """
    missing = [name for name, value in fields.items() if not value or not str(value).strip()]
    if missing:
        raise ValueError(f"{', '.join(missing)} required")


class PaymentOrchestrator:
    """
    Args:
        wallets: Wallet directory
        incoming: Payee-side incoming payment manager
        negotiator: Grant negotiator
        continuation: Grant continuation chain
        executor: Outgoing payment executor
        settlement: Settlement resolver
        sender_client: Payer client (for grants the orchestrator requests itself)
        default_receive_value_minor: Amount used when create-incoming gets none
        attempts_after_pay: Poll budget right after execution
        attempts_verify: Poll budget for an on-demand re-check
        attempts_await: Poll budget for a stand-alone status wait
    """

    def __init__(
        self,
        wallets: WalletDirectory,
        incoming: IncomingPaymentManager,
        negotiator: GrantNegotiator,
        continuation: GrantContinuation,
        executor: OutgoingPaymentExecutor,
        settlement: SettlementResolver,
        sender_client: OpenPaymentsClient,
        default_receive_value_minor: str = "1500",
        attempts_after_pay: int = 20,
        attempts_verify: int = 10,
        attempts_await: int = 30
    ):
        self.wallet_directory = wallets
        self.incoming = incoming
        self.negotiator = negotiator
        self.continuation = continuation
        self.executor = executor
        self.settlement = settlement
        self.sender_client = sender_client
        self.default_receive_value_minor = default_receive_value_minor
        self.attempts_after_pay = attempts_after_pay
        self.attempts_verify = attempts_verify
        self.attempts_await = attempts_await

    # ========================================================================
    # Wallets and incoming payments
    # ========================================================================

    async def wallets(self) -> WalletPair:
        return await self.wallet_directory.resolve_wallets()

    async def create_incoming(self, receive_value_minor: Optional[str] = None) -> IncomingPayment:
        value = receive_value_minor if receive_value_minor not in (None, "") else self.default_receive_value_minor
        pair = await self.wallet_directory.resolve_wallets()
        return await self.incoming.create_intent(str(value), payee_wallet=pair.payee)

    async def debug_incoming(self, incoming_payment_id: str) -> Tuple[IncomingPayment, Dict[str, Any]]:
        """Read an incoming payment and explain whether it can still be paid."""
        require_fields(incomingPaymentId=incoming_payment_id)
        payment = await self.incoming.get(incoming_payment_id)

        now = datetime.now(timezone.utc)
        expires_at = payment.expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        expired = expires_at is not None and expires_at <= now

        diagnostic = {
            "statePresent": payment.state_present,
            "normalizedState": payment.state,
            "completed": payment.completed,
            "expired": expired,
            "incomingAmount": payment.incoming_amount.value if payment.incoming_amount else None,
            "receivedAmount": payment.received_amount.value if payment.received_amount else None,
            "payable": payment.state == "pending" and not expired and not payment.completed,
        }
        return payment, diagnostic

    # ========================================================================
    # Interactive grant (two phases)
    # ========================================================================

    async def start_outgoing(self, incoming_payment_id: str) -> PendingGrant:
        """Phase 1: returns the redirect target and continuation handle."""
        require_fields(incomingPaymentId=incoming_payment_id)
        payer = await self.wallet_directory.payer_wallet()
        logger.info(f"Starting outgoing grant for incoming payment {incoming_payment_id[:50]}")
        return await self.negotiator.request_interactive_grant(self.sender_client, payer)

    async def finish_outgoing(
        self,
        incoming_payment_id: str,
        continue_uri: str,
        continue_access_token: str,
        interact_ref: str,
        interaction_hash: Optional[str] = None
    ) -> GrantFinish:
        """Phase 2: continue the grant with the externally obtained proof."""
        require_fields(
            incomingPaymentId=incoming_payment_id,
            continueUri=continue_uri,
            continueAccessToken=continue_access_token,
            interact_ref=interact_ref,
        )
        logger.info(
            f"Finishing outgoing grant: incoming={incoming_payment_id[:30]} "
            f"ref={mask(interact_ref)} hash={mask(interaction_hash)}"
        )
        payer = await self.wallet_directory.payer_wallet()
        grant = await self.continuation.continue_grant(
            continue_uri, continue_access_token, interact_ref, interaction_hash or None
        )
        return GrantFinish(grant=grant, payer_wallet_id=payer.id)

    # ========================================================================
    # Execution and settlement
    # ========================================================================

    async def pay_outgoing(self, incoming_payment_id: str, access_token: str) -> PaymentSession:
        """
        Execute the transfer, then wait for settlement with the post-pay budget.

        Once the transfer exists a failing status read no longer fails the
        call: the session is returned with the transfer reported as processing.
        """
        require_fields(incomingPaymentId=incoming_payment_id, grantAccessToken=access_token)
        payer = await self.wallet_directory.payer_wallet()

        execution = await self.executor.execute(payer, incoming_payment_id, access_token)
        settlement = await self.settlement.await_settlement(
            execution.payment.id, access_token, self.attempts_after_pay, stop_on_error=True
        )
        outgoing = settlement.payment or execution.payment
        if settlement.outcome == "unresolved":
            outgoing = outgoing.with_state(PROCESSING)

        return PaymentSession(
            incoming_payment_id=incoming_payment_id,
            outgoing_payment=outgoing,
            settlement=settlement,
            tier=execution.tier,
            quote=execution.quote,
            completed_incoming=execution.completed_incoming,
            warnings=execution.warnings,
        )

    async def _transfer_url(self, transfer_id: str) -> str:
        if transfer_id.startswith("http://") or transfer_id.startswith("https://"):
            return transfer_id
        payer = await self.wallet_directory.payer_wallet()
        return f"{payer.resource_server.rstrip('/')}/outgoing-payments/{transfer_id}"

    async def payment_status(self, transfer_id: str, access_token: Optional[str] = None) -> StatusReport:
        """Single-shot status; requests its own {read} grant when no token is given."""
        require_fields(id=transfer_id)
        url = await self._transfer_url(transfer_id)

        if not access_token:
            payer = await self.wallet_directory.payer_wallet()
            grant = await self.negotiator.request_grant(
                self.sender_client, payer, [access_item("outgoing-payment", ["read"], payer.id)]
            )
            access_token = grant.access_token

        return await self.settlement.current_status(url, access_token)

    async def payment_verify(self, transfer_url: str, access_token: str) -> SettlementResult:
        """On-demand re-check with the verify budget."""
        require_fields(outgoingPaymentId=transfer_url, grantAccessToken=access_token)
        url = await self._transfer_url(transfer_url)
        return await self.settlement.await_settlement(url, access_token, self.attempts_verify)

    async def payment_await(self, transfer_url: str, access_token: str) -> SettlementResult:
        """Stand-alone wait with the longest budget."""
        require_fields(outgoingPaymentId=transfer_url, grantAccessToken=access_token)
        url = await self._transfer_url(transfer_url)
        return await self.settlement.await_settlement(url, access_token, self.attempts_await)
