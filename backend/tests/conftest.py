"""Shared fixtures: fake Open Payments network, signed clients, orchestrator and API client."""

from collections.abc import AsyncGenerator
from typing import Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from op_gateway.config import Settings
from op_gateway.main import create_app
from op_gateway.services import PaymentOrchestrator, build_orchestrator
from op_gateway.services.open_payments_client import OpenPaymentsClient

from tests.fake_network import (
    PAYEE_KEY_ID,
    PAYEE_WALLET,
    PAYER_KEY_ID,
    PAYER_WALLET,
    FakeOpenPaymentsNetwork,
)


@pytest.fixture
def network() -> FakeOpenPaymentsNetwork:
    return FakeOpenPaymentsNetwork()


@pytest.fixture
def test_settings() -> Settings:
    """Settings for the fake network; polling does not sleep."""
    return Settings(
        _env_file=None,
        sender_wallet_address_url=PAYER_WALLET,
        sender_key_id=PAYER_KEY_ID,
        receiver_wallet_address_url=PAYEE_WALLET,
        receiver_key_id=PAYEE_KEY_ID,
        finish_redirect_url="http://testserver/op/finish",
        settlement_poll_interval_seconds=0,
    )


@pytest_asyncio.fixture
async def clients(
    network: FakeOpenPaymentsNetwork,
) -> AsyncGenerator[Tuple[OpenPaymentsClient, OpenPaymentsClient], None]:
    """Payer (sender) and payee (receiver) clients on the mock transport."""
    transport = network.transport()
    sender = OpenPaymentsClient(PAYER_WALLET, PAYER_KEY_ID, network.payer_key, transport=transport)
    receiver = OpenPaymentsClient(PAYEE_WALLET, PAYEE_KEY_ID, network.payee_key, transport=transport)
    yield sender, receiver
    await sender.aclose()
    await receiver.aclose()


@pytest.fixture
def sender(clients) -> OpenPaymentsClient:
    return clients[0]


@pytest.fixture
def orchestrator(test_settings: Settings, clients) -> PaymentOrchestrator:
    sender, receiver = clients
    return build_orchestrator(test_settings, sender, receiver)


@pytest_asyncio.fixture
async def client(orchestrator: PaymentOrchestrator) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the test orchestrator injected."""
    app = create_app(orchestrator)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
