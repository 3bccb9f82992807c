"""
Orchestrator Factory

Builds the two authenticated Open Payments clients and wires every component
into one PaymentOrchestrator. Called once from the application lifespan;
tests call build_orchestrator() directly with clients on a mock transport.
"""
import logging
from typing import Optional, Tuple

import httpx

from ..config import Settings
from .grant_continuation import GrantContinuation
from .grant_service import GrantNegotiator
from .http_signatures import load_private_key
from .incoming_payment_service import IncomingPaymentManager
from .open_payments_client import OpenPaymentsClient
from .outgoing_payment_service import OutgoingPaymentExecutor
from .payment_orchestrator import PaymentOrchestrator
from .quote_service import QuoteEngine
from .settlement_service import SettlementResolver
from .wallet_directory import WalletDirectory

logger = logging.getLogger(__name__)


def create_clients(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Tuple[OpenPaymentsClient, OpenPaymentsClient]:
    """
    Create the payer (sender) and payee (receiver) clients.

    Raises:
        ConfigurationError: Missing variables or unusable key files

    Example:
        sender, receiver = create_clients(settings)
        orchestrator = build_orchestrator(settings, sender, receiver)
    """
    settings.validate_wallet_config()

    sender = OpenPaymentsClient(
        wallet_address_url=settings.sender_wallet_address_url,
        key_id=settings.sender_key_id,
        private_key=load_private_key(settings.sender_private_key_path),
        timeout=settings.http_timeout_seconds,
        transport=transport,
    )
    receiver = OpenPaymentsClient(
        wallet_address_url=settings.receiver_wallet_address_url,
        key_id=settings.receiver_key_id,
        private_key=load_private_key(settings.receiver_private_key_path),
        timeout=settings.http_timeout_seconds,
        transport=transport,
    )
    logger.info(
        f"Open Payments clients ready: sender={settings.sender_wallet_address_url} "
        f"receiver={settings.receiver_wallet_address_url}"
    )
    return sender, receiver


def build_orchestrator(
    settings: Settings,
    sender: OpenPaymentsClient,
    receiver: OpenPaymentsClient
) -> PaymentOrchestrator:
    """Wire every component around the two clients."""
    wallets = WalletDirectory(sender, receiver)
    negotiator = GrantNegotiator(settings.finish_redirect_url)
    incoming = IncomingPaymentManager(
        receiver,
        negotiator,
        wallets,
        expiry_minutes=settings.incoming_expiry_minutes,
        description=settings.incoming_description,
    )
    quotes = QuoteEngine(sender, negotiator, method=settings.quote_method)
    executor = OutgoingPaymentExecutor(sender, quotes, incoming, method=settings.quote_method)

    return PaymentOrchestrator(
        wallets=wallets,
        incoming=incoming,
        negotiator=negotiator,
        continuation=GrantContinuation(sender),
        executor=executor,
        settlement=SettlementResolver(sender, poll_interval=settings.settlement_poll_interval_seconds),
        sender_client=sender,
        default_receive_value_minor=settings.default_receive_value_minor,
        attempts_after_pay=settings.settlement_attempts_after_pay,
        attempts_verify=settings.settlement_attempts_verify,
        attempts_await=settings.settlement_attempts_await,
    )
