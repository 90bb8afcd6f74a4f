"""Tests for the HTTP endpoints."""

import asyncio
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from swapquotes.swaps.errors import QuoteFetchError
from swapquotes.swaps.models import AggregatorMetadata, NATIVE_TOKEN_ADDRESS
from swapquotes.web.app import create_app

from conftest import DAI_ADDRESS, ONE_ETH, WALLET

START_BODY = {
    "source_token": {"address": NATIVE_TOKEN_ADDRESS, "symbol": "ETH", "decimals": 18},
    "destination_token": {"address": DAI_ADDRESS, "symbol": "DAI", "decimals": 18},
    "source_amount": ONE_ETH,
    "slippage_bps": 300,
    "wallet_address": WALLET,
    "destination_token_conversion_rate": "0.0005",
}


@pytest.fixture
async def client(controller):
    """Create async test client around the test controller."""
    app = create_app(controller=controller)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def wait_for_quotes(controller, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while controller.state.best_aggregator_id is None:
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("no quotes committed")
        await asyncio.sleep(0.005)


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "swapquotes"

    @pytest.mark.asyncio
    async def test_detailed_health(self, client):
        response = await client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["session_status"] == "idle"
        assert "environment" in data["config"]


class TestQuoteEndpoints:
    """Tests for the quote session endpoints."""

    @pytest.mark.asyncio
    async def test_start_and_read_quotes(self, client, controller):
        response = await client.post("/api/v1/swaps/quotes", json=START_BODY)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["is_polling"] is True

        await wait_for_quotes(controller)
        response = await client.get("/api/v1/swaps/quotes")

        data = response.json()
        assert data["best_aggregator_id"] == "uniswap"
        assert sorted(data["quotes"]) == ["airswap", "uniswap"]
        assert data["savings"] is not None
        assert data["costs"]["uniswap"]["aggregator"] == "uniswap"
        assert data["error_kind"] is None

    @pytest.mark.asyncio
    async def test_start_rejects_invalid_address(self, client):
        body = dict(START_BODY, wallet_address="0x1234")

        response = await client.post("/api/v1/swaps/quotes", json=body)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_start_rejects_zero_amount(self, client):
        body = dict(START_BODY, source_amount=0)

        response = await client.post("/api/v1/swaps/quotes", json=body)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_stop(self, client, controller):
        await client.post("/api/v1/swaps/quotes", json=START_BODY)
        await wait_for_quotes(controller)

        response = await client.delete("/api/v1/swaps/quotes")

        data = response.json()
        assert data["status"] == "stopped"
        assert data["quotes"] == {}
        assert data["is_polling"] is False

    @pytest.mark.asyncio
    async def test_refetch_without_session(self, client):
        response = await client.post("/api/v1/swaps/quotes/refetch")

        assert response.status_code == 200
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_swap_failed(self, client, controller):
        await client.post("/api/v1/swaps/quotes", json=START_BODY)
        await wait_for_quotes(controller)

        response = await client.post("/api/v1/swaps/quotes/swap-failed")

        assert response.json()["error_kind"] == "swap-failed-error"


class TestCatalogEndpoints:
    """Tests for tokens and aggregator metadata."""

    @pytest.mark.asyncio
    async def test_tokens(self, client):
        response = await client.get("/api/v1/swaps/tokens")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert {t["symbol"] for t in data["tokens"]} == {"DAI", "ETH"}

    @pytest.mark.asyncio
    async def test_tokens_upstream_failure(self, client, fake_api):
        fake_api.fetch_tokens.side_effect = QuoteFetchError("boom")

        response = await client.get("/api/v1/swaps/tokens")

        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_aggregators(self, client, fake_api):
        fake_api.fetch_aggregator_metadata.return_value = {
            "uniswap": AggregatorMetadata(color="#FF007A", title="Uniswap", icon="icon.svg")
        }

        response = await client.get("/api/v1/swaps/aggregators")

        assert response.status_code == 200
        assert response.json()["aggregators"]["uniswap"]["title"] == "Uniswap"

    @pytest.mark.asyncio
    async def test_token_price(self, client, fake_api):
        fake_api.fetch_token_price.return_value = Decimal("0.0005")

        response = await client.get(f"/api/v1/swaps/tokens/{DAI_ADDRESS}/price")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["address"] == DAI_ADDRESS
        assert Decimal(data["price_eth"]) == Decimal("0.0005")

    @pytest.mark.asyncio
    async def test_token_price_zero_reads_unknown(self, client, fake_api):
        fake_api.fetch_token_price.return_value = Decimal(0)

        response = await client.get(f"/api/v1/swaps/tokens/{DAI_ADDRESS}/price")

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["price_eth"] is None
