"""
API routers for the Open Payments gateway.
"""
from .open_payments import router

__all__ = ["router"]
