# backend/wallet_history/services/pricing/__init__.py
"""
Price oracle adapters and the historical price cache.

Architecture:
    pricing/
    ├── base.py       # PriceProvider ABC (retry, timeout, circuit breaker)
    ├── coingecko.py  # CoinGecko spot + market_chart/range history
    ├── navi.py       # Navi Protocol spot prices
    ├── yahoo.py      # Yahoo Finance via yfinance
    ├── fallback.py   # Ordered provider chain (the PriceOracle used in prod)
    └── cache.py      # Day-bucketed cache with best-effort fallbacks

Usage:
    from wallet_history.services.pricing import (
        CoinGeckoProvider,
        FallbackPriceOracle,
        HistoricalPriceCache,
    )
"""

from wallet_history.services.pricing.base import PricePoint, PriceProvider, to_price
from wallet_history.services.pricing.cache import (
    HistoricalPriceCache,
    PriceCacheStore,
    PriceLookupStats,
    cache_key,
)
from wallet_history.services.pricing.coingecko import CoinGeckoProvider
from wallet_history.services.pricing.fallback import FallbackPriceOracle
from wallet_history.services.pricing.navi import NaviProvider
from wallet_history.services.pricing.yahoo import YahooFinanceProvider

__all__ = [
    "PricePoint",
    "PriceProvider",
    "to_price",
    "HistoricalPriceCache",
    "PriceCacheStore",
    "PriceLookupStats",
    "cache_key",
    "CoinGeckoProvider",
    "FallbackPriceOracle",
    "NaviProvider",
    "YahooFinanceProvider",
]
