"""Pytest configuration and fixtures."""

import os
from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"

from swapquotes.swaps.api import SwapsApiClient, parse_trades
from swapquotes.swaps.controller import SwapsConfig, SwapsController
from swapquotes.swaps.gas import GasEstimationGuard
from swapquotes.swaps.models import (
    NATIVE_TOKEN,
    NATIVE_TOKEN_ADDRESS,
    FetchMetadata,
    FetchRequest,
    Token,
)
from swapquotes.swaps.rpc import EthRpcClient

WALLET = "0x" + "ab" * 20
DAI_ADDRESS = "0x6b175474e89094c44da98b954eedeac495271d0f"
SWAPS_CONTRACT = "0x881d40237659c251811cec9c364ef91dc08d300c"
ROUTER = "0x" + "cd" * 20
GWEI = 10**9
ONE_ETH = 10**18

DAI = Token(address=DAI_ADDRESS, symbol="DAI", decimals=18, name="Dai Stablecoin")


def make_raw_trade(
    aggregator: str,
    destination_amount: int,
    *,
    source_token: str = NATIVE_TOKEN_ADDRESS,
    destination_token: str = DAI_ADDRESS,
    source_amount: int = ONE_ETH,
    trade_value: Optional[int] = None,
    max_gas: int = 300000,
    average_gas: int = 150000,
    fee: float = 0.875,
    approval_needed: Optional[dict] = None,
    error: Optional[str] = None,
) -> dict:
    """Raw trade entry as returned by the aggregator service."""
    if trade_value is None:
        trade_value = source_amount if source_token == NATIVE_TOKEN_ADDRESS else 0
    return {
        "aggregator": aggregator,
        "aggType": "AGG",
        "trade": {
            "from": WALLET,
            "to": ROUTER,
            "data": "0xdeadbeef",
            "value": str(trade_value),
        },
        "sourceToken": source_token,
        "destinationToken": destination_token,
        "sourceAmount": str(source_amount),
        "destinationAmount": str(destination_amount),
        "maxGas": max_gas,
        "averageGas": average_gas,
        "estimatedRefund": 0,
        "fee": fee,
        "fetchTime": 512,
        "approvalNeeded": approval_needed,
        "error": error,
    }


def make_quotes(*raw_trades: dict, slippage: Decimal = Decimal(3)) -> dict:
    return parse_trades(list(raw_trades), slippage=slippage)


def make_request(source_token: str = NATIVE_TOKEN_ADDRESS, **kwargs) -> FetchRequest:
    params = {
        "source_token": source_token,
        "destination_token": DAI_ADDRESS,
        "source_amount": ONE_ETH,
        "slippage_bps": 300,
        "wallet_address": WALLET,
    }
    params.update(kwargs)
    return FetchRequest(**params)


def make_metadata(source: Token = NATIVE_TOKEN, destination: Token = DAI) -> FetchMetadata:
    return FetchMetadata(
        source_token_info=source,
        destination_token_info=destination,
        account_balance=5 * ONE_ETH,
        destination_token_conversion_rate=Decimal("0.0005"),
    )


@pytest.fixture
def fake_rpc():
    """JSON-RPC client that answers like a healthy mainnet node."""
    rpc = AsyncMock(spec=EthRpcClient)
    rpc.gas_price.return_value = 20 * GWEI
    rpc.get_code.return_value = "0x6080"
    rpc.get_block_by_number.return_value = {"gasLimit": hex(30_000_000)}
    rpc.estimate_gas.return_value = 100000
    rpc.get_allowance.return_value = 10**30
    return rpc


@pytest.fixture
def gas_guard(fake_rpc):
    return GasEstimationGuard(fake_rpc, swaps_contract_address=SWAPS_CONTRACT, timeout=0.5)


@pytest.fixture
def fake_api():
    """Aggregator service client returning two quotes."""
    api = AsyncMock(spec=SwapsApiClient)
    api.fetch_trades.return_value = make_quotes(
        make_raw_trade("airswap", 2000 * ONE_ETH),
        make_raw_trade("uniswap", 2010 * ONE_ETH),
    )
    api.fetch_tokens.return_value = [DAI, NATIVE_TOKEN]
    api.fetch_aggregator_metadata.return_value = {}
    api.fetch_swaps_feature_liveness.return_value = True
    api.fetch_token_price.return_value = None
    return api


@pytest.fixture
def swaps_config():
    return SwapsConfig(quote_polling_interval=0.01, poll_count_limit=3)


@pytest.fixture
async def controller(fake_api, gas_guard, fake_rpc, swaps_config):
    controller = SwapsController(fake_api, gas_guard, rpc=fake_rpc, config=swaps_config)
    yield controller
    await controller.aclose()
