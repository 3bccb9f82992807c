"""
Models package for the Open Payments gateway.
"""
from .wallets import Amount, WalletDocument
from .payments import (
    CompletionWarning,
    FinalizedGrant,
    IncomingPayment,
    OutgoingPayment,
    PaymentSession,
    PendingGrant,
    Quote,
    SettlementResult,
    StatusReport,
)

__all__ = [
    "Amount",
    "WalletDocument",
    "CompletionWarning",
    "FinalizedGrant",
    "IncomingPayment",
    "OutgoingPayment",
    "PaymentSession",
    "PendingGrant",
    "Quote",
    "SettlementResult",
    "StatusReport",
]
