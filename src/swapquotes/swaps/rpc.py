"""Minimal Ethereum JSON-RPC client for gas estimation and allowance reads."""

import itertools
import logging
from typing import Any, Optional

import httpx
from web3 import Web3

from swapquotes.swaps.errors import RpcError
from swapquotes.utils.fixed_point import hex_to_int

logger = logging.getLogger(__name__)

# allowance(address owner, address spender) -> uint256
ALLOWANCE_SELECTOR = "0xdd62ed3e"


def encode_allowance_call(owner: str, spender: str) -> str:
    """ABI-encode an ERC-20 allowance(owner, spender) call."""
    for address in (owner, spender):
        if not Web3.is_address(address):
            raise ValueError(f"Invalid address: {address!r}")
    return (
        ALLOWANCE_SELECTOR
        + owner[2:].lower().zfill(64)
        + spender[2:].lower().zfill(64)
    )


class EthRpcClient:
    """JSON-RPC 2.0 over HTTP."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        """Send one JSON-RPC request and return its result.

        Raises:
            RpcError: On transport failure, non-200 status or an error object
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(self._ids),
        }
        try:
            response = await self._client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            raise RpcError(method, f"{type(e).__name__}: {e}")

        if response.status_code != 200:
            raise RpcError(method, f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RpcError(method, f"invalid JSON: {e}")

        if "error" in data:
            error = data["error"] or {}
            raise RpcError(method, error.get("message", "unknown error"), error.get("code"))
        if "result" not in data:
            raise RpcError(method, "response has no result")
        return data["result"]

    async def gas_price(self) -> int:
        """Current gas price in wei."""
        return hex_to_int(await self.request("eth_gasPrice"))

    async def get_block_by_number(self, block: str = "latest", full: bool = False) -> dict:
        result = await self.request("eth_getBlockByNumber", [block, full])
        if not result:
            raise RpcError("eth_getBlockByNumber", f"block {block} not found")
        return result

    async def get_code(self, address: str, block: str = "latest") -> str:
        return await self.request("eth_getCode", [address, block])

    async def estimate_gas(self, tx: dict) -> int:
        return hex_to_int(await self.request("eth_estimateGas", [tx]))

    async def call(self, tx: dict, block: str = "latest") -> str:
        return await self.request("eth_call", [tx, block])

    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        """ERC-20 allowance of spender over owner's tokens."""
        data = encode_allowance_call(owner, spender)
        result = await self.call({"to": token_address.lower(), "data": data})
        return hex_to_int(result) if result and result != "0x" else 0
