"""Application configuration using pydantic-settings.

Covers the aggregator service endpoints, the JSON-RPC node used for gas
estimation and allowance reads, and the polling policy of a quote session.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")

    # ======================
    # Remote services
    # ======================
    swaps_api_url: str = Field(
        default="https://api.metaswap.codefi.network",
        description="Base URL of the quote aggregator service",
    )
    token_price_api_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        description="Base URL of the token price service",
    )
    eth_rpc_url: str = Field(
        default="https://eth.llamarpc.com", description="Ethereum JSON-RPC URL"
    )
    swaps_contract_address: str = Field(
        default="0x881d40237659c251811cec9c364ef91dc08d300c",
        description="Spender address checked for ERC-20 allowance",
    )

    # ======================
    # Timeouts
    # ======================
    quote_fetch_timeout_seconds: float = Field(
        default=15.0, description="Hard timeout for the trades request"
    )
    trade_api_timeout_ms: int = Field(
        default=10000, description="Timeout the aggregator service applies to its venues"
    )
    gas_estimate_timeout_seconds: float = Field(
        default=5.0, description="Timeout for a single gas estimation"
    )
    rpc_timeout_seconds: float = Field(
        default=10.0, description="Timeout for a single JSON-RPC request"
    )
    refresh_lock_timeout_seconds: float = Field(
        default=30.0, description="Maximum wait for the cache refresh lock"
    )
    token_price_timeout_seconds: float = Field(
        default=5.0, description="Timeout for a display-only token price lookup"
    )

    # ======================
    # Polling
    # ======================
    quote_polling_interval_seconds: float = Field(
        default=50.0, description="Delay between two quote cycles"
    )
    poll_count_limit: int = Field(
        default=3, description="Number of quote cycles before quotes expire"
    )
    fetch_tokens_threshold_seconds: float = Field(
        default=60 * 60 * 24, description="Token list freshness threshold"
    )

    # ======================
    # Gas
    # ======================
    max_gas_limit: int = Field(
        default=2500000, description="Gas ceiling when an aggregator gives no average"
    )
    default_erc20_approve_gas: str = Field(
        default="0x1d4c0", description="Approval gas used when estimation times out"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "swaps_api_url": self.swaps_api_url,
            "token_price_api_url": self.token_price_api_url,
            "eth_rpc_url": self._redact_url(self.eth_rpc_url),
            "polling": {
                "interval_seconds": self.quote_polling_interval_seconds,
                "count_limit": self.poll_count_limit,
            },
            "timeouts": {
                "quote_fetch": self.quote_fetch_timeout_seconds,
                "gas_estimate": self.gas_estimate_timeout_seconds,
                "rpc": self.rpc_timeout_seconds,
                "token_price": self.token_price_timeout_seconds,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact credentials and API keys embedded in an RPC URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            creds, host = rest.rsplit("@", 1)
            if ":" in creds:
                user, _ = creds.split(":", 1)
                return f"{proto}://{user}:***@{host}"
        # Infura/Alchemy style: key is the last path segment
        if "://" in url and url.rstrip("/").count("/") >= 3:
            base, _ = url.rstrip("/").rsplit("/", 1)
            if any(provider in base for provider in ("infura", "alchemy")):
                return f"{base}/***"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
