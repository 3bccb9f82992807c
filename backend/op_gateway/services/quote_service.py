"""
Quote Engine

Requests a payer-currency to payee-currency quote for an incoming payment.
Purely advisory: outgoing payment execution proceeds without one.
"""
import logging

from ..models.payments import Quote
from ..models.wallets import WalletDocument
from .grant_service import GrantNegotiator, access_item
from .open_payments_client import OpenPaymentsClient, parse_resource

logger = logging.getLogger(__name__)


class QuoteEngine:
    def __init__(self, client: OpenPaymentsClient, negotiator: GrantNegotiator, method: str = "ilp"):
        self.client = client
        self.negotiator = negotiator
        self.method = method

    async def quote(self, payer_wallet: WalletDocument, incoming_payment_id: str) -> Quote:
        grant = await self.negotiator.request_grant(
            self.client, payer_wallet, [access_item("quote", ["create", "read"])]
        )
        data = await self.client.create_quote(
            payer_wallet.resource_server,
            grant.access_token,
            {"walletAddress": payer_wallet.id, "receiver": incoming_payment_id, "method": self.method},
        )
        quote = parse_resource(Quote.from_upstream, data, "Quote")
        logger.info(
            f"Quote {quote.id}: debit={quote.debit_amount.value if quote.debit_amount else '?'} "
            f"receive={quote.receive_amount.value if quote.receive_amount else '?'}"
        )
        return quote
