"""Quote aggregator service client.

Fetches per-aggregator trades, the supported token list, aggregator display
metadata, top assets and the service's feature flag. Raw trades are normalized
into Quote objects; entries the service flags with an error are dropped.
"""

import logging
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

import httpx

from swapquotes.swaps.errors import (
    NoQuotesAvailableError,
    QuoteFetchError,
    SwapsOfflineError,
)
from swapquotes.swaps.models import (
    NATIVE_TOKEN,
    NATIVE_TOKEN_ADDRESS,
    AggregatorMetadata,
    FetchRequest,
    Quote,
    Token,
)

logger = logging.getLogger(__name__)

DEFAULT_SWAPS_API_URL = "https://api.metaswap.codefi.network"
DEFAULT_TOKEN_PRICE_API_URL = "https://api.coingecko.com/api/v3"

# Hard timeout for the trades request
QUOTE_FETCH_TIMEOUT = 15.0
# Timeout the service applies to each trading venue
TRADE_API_TIMEOUT_MS = 10000


class APIType(str, Enum):
    TRADES = "TRADES"
    TOKENS = "TOKENS"
    TOP_ASSETS = "TOP_ASSETS"
    FEATURE_FLAG = "FEATURE_FLAG"
    AGGREGATOR_METADATA = "AGGREGATOR_METADATA"


API_PATHS = {
    APIType.TRADES: "/trades",
    APIType.TOKENS: "/tokens",
    APIType.TOP_ASSETS: "/topAssets",
    APIType.FEATURE_FLAG: "/featureFlag",
    APIType.AGGREGATOR_METADATA: "/aggregatorMetadata",
}


def get_base_api_url(api_type: APIType, base_url: str = DEFAULT_SWAPS_API_URL) -> str:
    """Get the endpoint URL for an API call type."""
    try:
        path = API_PATHS[APIType(api_type)]
    except (KeyError, ValueError):
        raise ValueError("get_base_api_url requires an api call type")
    return f"{base_url.rstrip('/')}{path}"


def build_trades_params(request: FetchRequest, timeout_ms: int = TRADE_API_TIMEOUT_MS) -> dict:
    """Query parameters of the trades endpoint."""
    params = {
        "sourceToken": request.source_token,
        "destinationToken": request.destination_token,
        "sourceAmount": str(request.source_amount),
        "slippage": str(request.slippage_percent),
        "timeout": str(timeout_ms),
        "walletAddress": request.wallet_address,
    }
    if request.exchange_list:
        params["exchangeList"] = ",".join(request.exchange_list)
    return params


def parse_trades(raw_trades: list[dict], slippage: Optional[Decimal] = None) -> dict[str, Quote]:
    """Turn the raw trades array into a QuoteSet keyed by aggregator id.

    Entries with an error, no trade, or malformed fields are dropped.
    """
    quotes: dict[str, Quote] = {}
    for raw in raw_trades:
        aggregator = raw.get("aggregator")
        if not raw.get("trade") or raw.get("error"):
            logger.debug(f"Dropping trade from {aggregator}: {raw.get('error') or 'no trade'}")
            continue
        try:
            quote = Quote.from_api(raw, slippage=slippage)
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            logger.warning(f"Dropping malformed trade from {aggregator}: {type(e).__name__}: {e}")
            continue
        quotes[quote.aggregator] = quote
    return quotes


class SwapsApiClient:
    """Client for the quote aggregator service.

    All calls are idempotent and safe to retry.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_SWAPS_API_URL,
        token_price_url: str = DEFAULT_TOKEN_PRICE_API_URL,
        quote_timeout: float = QUOTE_FETCH_TIMEOUT,
        trade_api_timeout_ms: int = TRADE_API_TIMEOUT_MS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Base URL of the aggregator service
            token_price_url: Base URL of the token price service
            quote_timeout: Hard timeout for the trades request in seconds
            trade_api_timeout_ms: Venue timeout forwarded to the service
            client: Shared httpx client (created when omitted)
        """
        self.base_url = base_url.rstrip("/")
        self.token_price_url = token_price_url.rstrip("/")
        self.quote_timeout = quote_timeout
        self.trade_api_timeout_ms = trade_api_timeout_ms
        self._client = client or httpx.AsyncClient(timeout=30.0)
        self._owns_client = client is None

    async def __aenter__(self) -> "SwapsApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _get_headers(self) -> dict:
        return {"Accept": "application/json"}

    async def _get_json(self, url: str, params: Optional[dict] = None, timeout: Optional[float] = None) -> Any:
        """GET a JSON document, mapping every failure onto QuoteFetchError."""
        kwargs: dict[str, Any] = {"headers": self._get_headers(), "params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self._client.get(url, **kwargs)
        except httpx.TimeoutException as e:
            raise QuoteFetchError(f"Request to {url} timed out: {e}")
        except httpx.HTTPError as e:
            raise QuoteFetchError(f"Request to {url} failed: {type(e).__name__}: {e}")

        if response.status_code == 503:
            raise SwapsOfflineError(f"Service unavailable: {url}")
        if not response.is_success:
            raise QuoteFetchError(
                f"Fetch failed with status '{response.status_code}' for request '{url}'"
            )

        try:
            return response.json()
        except ValueError as e:
            raise QuoteFetchError(f"Invalid JSON from {url}: {e}")

    async def fetch_trades(self, request: FetchRequest) -> dict[str, Quote]:
        """Fetch one quote per aggregator.

        Args:
            request: Session parameters

        Returns:
            QuoteSet keyed by aggregator id

        Raises:
            QuoteFetchError: On timeout, transport error or non-2xx response
            SwapsOfflineError: When the service is down for maintenance
            NoQuotesAvailableError: When no usable trade is returned
        """
        url = get_base_api_url(APIType.TRADES, self.base_url)
        params = build_trades_params(request, self.trade_api_timeout_ms)
        logger.debug(
            f"Fetching trades: {request.source_amount} {request.source_token} -> "
            f"{request.destination_token} (slippage: {request.slippage_percent}%)"
        )

        raw_trades = await self._get_json(url, params=params, timeout=self.quote_timeout)
        if not isinstance(raw_trades, list):
            raise QuoteFetchError(f"Unexpected trades payload: {type(raw_trades).__name__}")

        quotes = parse_trades(raw_trades, slippage=request.slippage_percent)
        if not quotes:
            logger.warning(
                f"No quotes available for {request.source_token} -> {request.destination_token} "
                f"({len(raw_trades)} raw trade(s))"
            )
            raise NoQuotesAvailableError()

        logger.info(f"Got {len(quotes)} quote(s): {', '.join(sorted(quotes))}")
        return quotes

    async def fetch_tokens(self) -> list[Token]:
        """Fetch the supported token list.

        The native asset is always present exactly once, whatever the service
        returns for its sentinel address.
        """
        raw_tokens = await self._get_json(get_base_api_url(APIType.TOKENS, self.base_url))
        tokens = []
        for raw in raw_tokens:
            if str(raw.get("address", "")).lower() == NATIVE_TOKEN_ADDRESS:
                continue
            try:
                tokens.append(Token.from_api(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed token {raw.get('symbol')}: {e}")
        tokens.append(NATIVE_TOKEN)
        return tokens

    async def fetch_aggregator_metadata(self) -> dict[str, AggregatorMetadata]:
        raw = await self._get_json(get_base_api_url(APIType.AGGREGATOR_METADATA, self.base_url))
        return {agg_id: AggregatorMetadata.from_api(data) for agg_id, data in raw.items()}

    async def fetch_top_assets(self) -> list[dict]:
        return await self._get_json(get_base_api_url(APIType.TOP_ASSETS, self.base_url))

    async def fetch_swaps_feature_liveness(self) -> bool:
        """Whether the service reports itself as active. Failures read as offline."""
        try:
            status = await self._get_json(get_base_api_url(APIType.FEATURE_FLAG, self.base_url))
        except (QuoteFetchError, SwapsOfflineError) as e:
            logger.warning(f"Feature flag check failed: {e}")
            return False
        return bool(isinstance(status, dict) and status.get("active"))

    async def fetch_token_price(self, address: str) -> Optional[Decimal]:
        """Best-effort price of a token in the native asset.

        Only used for display; returns None when the price service fails.
        """
        address = address.lower()
        url = f"{self.token_price_url}/simple/token_price/ethereum"
        try:
            prices = await self._get_json(
                url, params={"contract_addresses": address, "vs_currencies": "eth"}
            )
            price = (prices or {}).get(address, {}).get("eth")
            return Decimal(str(price)) if price is not None else None
        except (QuoteFetchError, SwapsOfflineError, InvalidOperation, AttributeError) as e:
            logger.warning(f"Token price lookup failed for {address}: {e}")
            return None
