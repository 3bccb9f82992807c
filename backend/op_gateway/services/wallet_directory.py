"""
Wallet Directory

Resolves the payer and payee wallet address documents that every other
component needs. Both fetches are independent and issued concurrently.
No retries here: callers decide whether to restart the session.
"""
import asyncio
import logging
from dataclasses import dataclass

from ..exceptions import OpenPaymentsError, UpstreamUnavailableError
from ..models.wallets import WalletDocument
from .open_payments_client import OpenPaymentsClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletPair:
    """Payer (sender) and payee (receiver) documents for one session."""
    payer: WalletDocument
    payee: WalletDocument


class WalletDirectory:
    """Fetches wallet documents through the client that owns each wallet."""

    def __init__(self, sender_client: OpenPaymentsClient, receiver_client: OpenPaymentsClient):
        self.sender_client = sender_client
        self.receiver_client = receiver_client

    async def _fetch(self, client: OpenPaymentsClient, role: str) -> WalletDocument:
        url = client.wallet_address_url
        try:
            data = await client.get_wallet_address(url)
            return WalletDocument.model_validate(data)
        except OpenPaymentsError as e:
            logger.error(f"{role} wallet fetch failed for {url}: {e.message}")
            raise UpstreamUnavailableError(
                f"Could not fetch {role} wallet address document",
                details={"role": role, "url": url, "upstream_status": e.details.get("upstream_status")}
            )
        except ValueError as e:
            # pydantic ValidationError: document missing required fields
            logger.error(f"{role} wallet document at {url} is malformed: {e}")
            raise UpstreamUnavailableError(
                f"Malformed {role} wallet address document",
                details={"role": role, "url": url}
            )

    async def resolve_wallets(self) -> WalletPair:
        """
        Fetch both wallet documents concurrently.

        Raises:
            UpstreamUnavailableError: If either document cannot be fetched
        """
        payer, payee = await asyncio.gather(
            self._fetch(self.sender_client, "payer"),
            self._fetch(self.receiver_client, "payee"),
        )
        return WalletPair(payer=payer, payee=payee)

    async def payer_wallet(self) -> WalletDocument:
        return await self._fetch(self.sender_client, "payer")

    async def payee_wallet(self) -> WalletDocument:
        return await self._fetch(self.receiver_client, "payee")
