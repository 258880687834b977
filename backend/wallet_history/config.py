# backend/wallet_history/config.py
"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables with validation:
- ENVIRONMENT: Runtime mode (development, test, production)
- SUI_NETWORK / SUI_RPC_URL: Which Sui full node the ledger is read from
- ASSET_*: The single fungible asset whose valuation is tracked
- PRICE_PROVIDERS: Ordered price oracle fallback chain

Configuration is validated on application startup. Invalid configuration
will raise a ValueError with a descriptive message.

Usage:
    from wallet_history.config import settings

    if settings.is_production:
        # Production-specific logic
        ...
"""
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Find the .env file in project root (parent of backend/)
_BACKEND_DIR = Path(__file__).resolve().parent.parent
_PROJECT_ROOT = _BACKEND_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

# Public Sui full nodes, keyed by network name
SUI_NETWORK_URLS: dict[str, str] = {
    "mainnet": "https://fullnode.mainnet.sui.io:443",
    "testnet": "https://fullnode.testnet.sui.io:443",
    "devnet": "https://fullnode.devnet.sui.io:443",
}

KNOWN_PRICE_PROVIDERS = ("coingecko", "navi", "yahoo")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables:
        - ENVIRONMENT: Runtime environment (development, test, production)
        - APP_NAME: Application name (default: "Wallet History")
        - LOG_LEVEL: Logging level (default: "INFO")
        - LOG_FORMAT: 'text' or 'json' (default: "text")

    Upstream Settings (optional, with sensible defaults):
        - UPSTREAM_TIMEOUT_SECONDS: Per-call timeout for ledger/oracle calls
        - LEDGER_PAGE_SIZE: Transactions requested per RPC page (max 50)
        - PRICE_CACHE_TTL_SECONDS: 0 keeps the price cache per request
        - PRICE_FETCH_CONCURRENCY: Parallel cold day-bucket lookups
    """

    # Environment mode - determines validation strictness
    environment: Literal["development", "test", "production"] = Field(
        default="development",
        description="Runtime environment (development, test, production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: Literal["text", "json"] = Field(
        default="text",
        description="Log output format"
    )

    app_name: str = "Wallet History"
    debug: bool = False

    # =========================================================================
    # LEDGER (SUI JSON-RPC)
    # =========================================================================
    sui_network: Literal["mainnet", "testnet", "devnet"] = Field(
        default="mainnet",
        description="Sui network the ledger is read from"
    )
    sui_rpc_url: str | None = Field(
        default=None,
        description="Explicit JSON-RPC URL (overrides sui_network)"
    )
    ledger_page_size: int = Field(
        default=50,
        ge=1,
        le=50,
        description="Transactions per suix_queryTransactionBlocks page"
    )

    # =========================================================================
    # TRACKED ASSET
    # =========================================================================
    asset_symbol: str = Field(
        default="SUI",
        min_length=1,
        description="Symbol passed to the price oracle"
    )
    asset_coin_type: str = Field(
        default="0x2::sui::SUI",
        min_length=1,
        description="Fully qualified Move coin type"
    )
    asset_decimals: int = Field(
        default=9,
        ge=0,
        le=18,
        description="Decimal places between base units and natural units"
    )
    reference_currency: str = Field(
        default="usd",
        description="Currency portfolio values are expressed in"
    )

    # =========================================================================
    # PRICE ORACLES
    # =========================================================================
    price_providers: list[str] = Field(
        default=["coingecko", "navi"],
        description="Ordered price provider fallback chain"
    )
    coingecko_base_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        description="CoinGecko API base URL"
    )
    coingecko_api_key: str | None = Field(
        default=None,
        description="Optional CoinGecko demo/pro API key"
    )
    navi_base_url: str = Field(
        default="https://api-defi.naviprotocol.io",
        description="Navi Protocol API base URL"
    )

    # =========================================================================
    # RESILIENCE
    # =========================================================================
    upstream_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Bounded timeout for every ledger/oracle call"
    )
    price_cache_ttl_seconds: int = Field(
        default=0,
        ge=0,
        description="Process-wide price cache TTL (0 = per request)"
    )
    price_fetch_concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum concurrent cold price lookups per replay"
    )
    circuit_breaker_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Failures before a provider's circuit opens"
    )
    circuit_breaker_recovery_timeout: float = Field(
        default=60.0,
        ge=0,
        description="Seconds before an open circuit is tested again"
    )

    # =========================================================================
    # CORS
    # =========================================================================
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Allowed CORS origins"
    )
    cors_allow_credentials: bool = Field(
        default=True,
        description="Allow credentials in CORS requests"
    )
    cors_allow_methods: list[str] = Field(
        default=["GET"],
        description="Allowed HTTP methods for CORS"
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        description="Allowed HTTP headers for CORS"
    )

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_upstream_config(self) -> "Settings":
        """
        Validate upstream configuration.

        Rules:
        - every price provider must be a known provider name
        - at least one price provider is configured
        - an explicit RPC URL must be http(s)
        """
        providers = [p.strip().lower() for p in self.price_providers if p.strip()]
        if not providers:
            raise ValueError("PRICE_PROVIDERS must name at least one provider")

        unknown = [p for p in providers if p not in KNOWN_PRICE_PROVIDERS]
        if unknown:
            raise ValueError(
                f"Unknown price provider(s): {', '.join(unknown)}. "
                f"Valid providers are: {', '.join(KNOWN_PRICE_PROVIDERS)}"
            )
        object.__setattr__(self, "price_providers", providers)

        if self.sui_rpc_url is not None:
            if not self.sui_rpc_url.lower().startswith(("http://", "https://")):
                raise ValueError(
                    f"SUI_RPC_URL must be an http(s) URL, got: {self.sui_rpc_url[:30]}"
                )

        return self

    @property
    def rpc_url(self) -> str:
        """Resolved JSON-RPC endpoint for the configured network."""
        return self.sui_rpc_url or SUI_NETWORK_URLS[self.sui_network]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test environment."""
        return self.environment == "test"


# Create single instance
settings = Settings()
