"""
op-gateway: Open Payments backend for the parking app's digital payments.

Sequences incoming payment, interactive grant, quote, outgoing payment and
settlement observation between a payer wallet and a payee wallet.
"""

__version__ = "0.1.0"
