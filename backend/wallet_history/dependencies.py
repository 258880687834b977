# backend/wallet_history/dependencies.py
"""
Dependency injection module for FastAPI services.

This module provides singleton service instances that are shared across
all requests. Sharing the adapters means their circuit breakers and HTTP
connection pools are process-wide, so upstream rate limits are respected
globally.

Services are lazily initialized on first use to avoid import-time side effects.

Usage in routers:
    from wallet_history.dependencies import get_portfolio_history_service

    @router.get("/")
    async def endpoint(
        service: PortfolioHistoryService = Depends(get_portfolio_history_service),
    ):
        ...
"""

import logging
from functools import lru_cache

import httpx

from wallet_history.config import SUI_NETWORK_URLS, settings
from wallet_history.services.circuit_breaker import CircuitBreaker
from wallet_history.services.exceptions import PriceNotFoundError
from wallet_history.services.history import PortfolioHistoryService
from wallet_history.services.ledger import Asset, SuiLedgerSource
from wallet_history.services.market_data import PriceHistoryService
from wallet_history.services.pricing import (
    CoinGeckoProvider,
    FallbackPriceOracle,
    NaviProvider,
    PriceCacheStore,
    PriceProvider,
    YahooFinanceProvider,
)
from wallet_history.services.transactions import AccountTransactionService

logger = logging.getLogger(__name__)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# Order matters: define dependencies before dependents
# 1. get_http_client (no deps)
# 2. get_price_oracle (depends on http client)
# 3. get_ledger_source / get_network_ledger (depend on http client)
# 4. get_price_store (no deps)
# 5. get_portfolio_history_service (depends on all of the above)
# 6. get_transaction_service / get_price_history_service


@lru_cache(maxsize=1)
def get_http_client() -> httpx.AsyncClient:
    """Shared connection pool for every HTTP adapter."""
    logger.debug("Initializing shared httpx.AsyncClient")
    return httpx.AsyncClient(timeout=settings.upstream_timeout_seconds)


def _breaker(name: str, **kwargs) -> CircuitBreaker:
    return CircuitBreaker(
        name=name,
        failure_threshold=settings.circuit_breaker_failure_threshold,
        recovery_timeout=settings.circuit_breaker_recovery_timeout,
        **kwargs,
    )


def _build_provider(name: str) -> PriceProvider:
    timeout = settings.upstream_timeout_seconds
    breaker = _breaker(name, excluded_exceptions=(PriceNotFoundError,))

    if name == "coingecko":
        return CoinGeckoProvider(
            base_url=settings.coingecko_base_url,
            api_key=settings.coingecko_api_key,
            vs_currency=settings.reference_currency,
            client=get_http_client(),
            timeout=timeout,
            circuit_breaker=breaker,
        )
    if name == "navi":
        return NaviProvider(
            base_url=settings.navi_base_url,
            client=get_http_client(),
            timeout=timeout,
            circuit_breaker=breaker,
        )
    if name == "yahoo":
        return YahooFinanceProvider(timeout=timeout, circuit_breaker=breaker)
    raise ValueError(f"Unknown price provider: {name}")


@lru_cache(maxsize=1)
def get_price_oracle() -> FallbackPriceOracle:
    """
    Get the singleton price oracle.

    Providers are tried in the order given by PRICE_PROVIDERS.
    """
    logger.debug(f"Initializing price oracle with providers {settings.price_providers}")
    return FallbackPriceOracle([_build_provider(name) for name in settings.price_providers])


@lru_cache(maxsize=4)
def get_network_ledger(rpc_url: str) -> SuiLedgerSource:
    """One ledger source (and circuit breaker) per RPC endpoint."""
    logger.debug(f"Initializing SuiLedgerSource for {rpc_url}")
    return SuiLedgerSource(
        rpc_url,
        client=get_http_client(),
        timeout=settings.upstream_timeout_seconds,
        circuit_breaker=_breaker(f"sui-rpc:{rpc_url}"),
    )


def get_ledger_source() -> SuiLedgerSource:
    """Ledger source for the configured network."""
    return get_network_ledger(settings.rpc_url)


def ledger_for_network(network: str) -> SuiLedgerSource:
    """
    Resolve a public network name to its ledger source.

    Raises:
        ValueError: If the network is unknown
    """
    key = network.strip().lower()
    if key not in SUI_NETWORK_URLS:
        raise ValueError(
            f"Unknown Sui network '{network}'. "
            f"Valid networks: {', '.join(SUI_NETWORK_URLS)}"
        )
    if key == settings.sui_network:
        return get_ledger_source()
    return get_network_ledger(SUI_NETWORK_URLS[key])


@lru_cache(maxsize=1)
def get_price_store() -> PriceCacheStore | None:
    """Process-wide price store, or None when PRICE_CACHE_TTL_SECONDS is 0."""
    if settings.price_cache_ttl_seconds <= 0:
        return None
    logger.debug(f"Initializing shared price store (ttl={settings.price_cache_ttl_seconds}s)")
    return PriceCacheStore(ttl_seconds=settings.price_cache_ttl_seconds)


@lru_cache(maxsize=1)
def get_portfolio_history_service() -> PortfolioHistoryService:
    """
    Get the singleton PortfolioHistoryService instance.

    Used by the portfolio router. Holds no per-request state; each request
    gets its own price cache unless a shared store is configured.
    """
    logger.debug("Initializing singleton PortfolioHistoryService")
    return PortfolioHistoryService(
        ledger=get_ledger_source(),
        oracle=get_price_oracle(),
        asset=_tracked_asset(),
        price_store=get_price_store(),
        price_concurrency=settings.price_fetch_concurrency,
        page_size=settings.ledger_page_size,
        ledger_for_network=ledger_for_network,
    )


def _tracked_asset() -> Asset:
    return Asset(
        symbol=settings.asset_symbol,
        coin_type=settings.asset_coin_type,
        decimals=settings.asset_decimals,
    )


@lru_cache(maxsize=1)
def get_transaction_service() -> AccountTransactionService:
    """Get the singleton AccountTransactionService (transactions router)."""
    logger.debug("Initializing singleton AccountTransactionService")
    return AccountTransactionService(
        ledger=get_ledger_source(),
        asset=_tracked_asset(),
        page_size=settings.ledger_page_size,
        ledger_for_network=ledger_for_network,
    )


@lru_cache(maxsize=1)
def get_price_history_service() -> PriceHistoryService:
    """
    Get the singleton PriceHistoryService (prices router).

    The singleton owns the in-memory chart cache, so it must be shared.
    """
    logger.debug("Initializing singleton PriceHistoryService")
    return PriceHistoryService(oracle=get_price_oracle())


async def close_upstream_clients() -> None:
    """Release pooled connections; called on application shutdown."""
    if get_http_client.cache_info().currsize:
        await get_http_client().aclose()
        get_http_client.cache_clear()
    get_network_ledger.cache_clear()
    get_price_oracle.cache_clear()
    get_portfolio_history_service.cache_clear()
    get_transaction_service.cache_clear()
    get_price_history_service.cache_clear()
