"""Swap quote engine.

Fetches quotes from the aggregator service, estimates gas for each trade,
ranks them by realized value and polls for fresh quotes a bounded number of
times.
"""

from swapquotes.swaps.api import SwapsApiClient
from swapquotes.swaps.controller import SwapsConfig, SwapsController
from swapquotes.swaps.errors import SwapsError, SwapsException
from swapquotes.swaps.gas import GasEstimationGuard
from swapquotes.swaps.rpc import EthRpcClient

__all__ = [
    "EthRpcClient",
    "GasEstimationGuard",
    "SwapsApiClient",
    "SwapsConfig",
    "SwapsController",
    "SwapsError",
    "SwapsException",
]
