# backend/wallet_history/services/constants.py
"""
Centralized constants for the wallet history services.

Usage:
    from wallet_history.services.constants import (
        MIN_SERIES_POINTS,
        SUI_COIN_TYPE,
        MAX_LEDGER_PAGE_SIZE,
    )
"""

from datetime import timedelta


# =============================================================================
# TRACKED ASSET
# =============================================================================

# Native SUI coin: balances are reported in MIST (1 SUI = 10^9 MIST)
SUI_SYMBOL: str = "SUI"
SUI_COIN_TYPE: str = "0x2::sui::SUI"
SUI_DECIMALS: int = 9

# Sui addresses are 32 bytes, rendered as 0x + 64 lowercase hex digits
SUI_ADDRESS_HEX_LENGTH: int = 64


# =============================================================================
# LEDGER PAGINATION
# =============================================================================

# suix_queryTransactionBlocks rejects pages larger than this
MAX_LEDGER_PAGE_SIZE: int = 50

# Safety stop for a single direction, independent of the transaction budget
MAX_LEDGER_PAGES: int = 40


# =============================================================================
# REPLAY / GAP FILLING
# =============================================================================

# Below this many points a series is padded with synthetic estimates
MIN_SERIES_POINTS: int = 3


# =============================================================================
# PRICE LOOKUPS
# =============================================================================

# Half-width of the CoinGecko market_chart/range window around a lookup
HISTORICAL_PRICE_WINDOW: timedelta = timedelta(days=1)

# Decimal places kept for prices parsed from float JSON
PRICE_DECIMAL_PLACES: int = 10

# CoinGecko coin ids for the symbols we know how to price
COINGECKO_COIN_IDS: dict[str, str] = {
    "SUI": "sui",
}

# Yahoo Finance tickers for crypto symbols
YAHOO_SYMBOLS: dict[str, str] = {
    "SUI": "SUI20947-USD",
}


# =============================================================================
# TRANSACTION LIST
# =============================================================================

# Transactions returned when the caller does not ask for a number
DEFAULT_TRANSACTION_LIMIT: int = 50

# Upper bound per request; each direction is read up to this many
MAX_TRANSACTION_LIMIT: int = 500


# =============================================================================
# PRICE HISTORY
# =============================================================================

# Sample spacing of a price chart: hourly for a day, daily beyond
PRICE_SERIES_INTERVALS: dict[str, timedelta] = {
    "day": timedelta(hours=1),
    "week": timedelta(days=1),
    "month": timedelta(days=1),
    "year": timedelta(days=1),
}

# How long a live price chart is served from memory, in seconds
PRICE_SERIES_CACHE_TTL: dict[str, float] = {
    "day": 5 * 60,
    "week": 15 * 60,
    "month": 30 * 60,
    "year": 60 * 60,
}
