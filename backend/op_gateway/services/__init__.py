"""
Services package: the Open Payments client and the payment core built on it.
"""
from .orchestrator_factory import build_orchestrator, create_clients
from .payment_orchestrator import GrantFinish, PaymentOrchestrator

__all__ = [
    "build_orchestrator",
    "create_clients",
    "GrantFinish",
    "PaymentOrchestrator",
]
