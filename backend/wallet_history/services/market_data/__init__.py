# backend/wallet_history/services/market_data/__init__.py
"""
Market data: price charts per timeframe.

Usage:
    from wallet_history.services.market_data import PriceHistoryService
"""

from wallet_history.services.market_data.service import PriceHistoryService, thin_series
from wallet_history.services.market_data.types import PriceHistory

__all__ = [
    "PriceHistoryService",
    "thin_series",
    "PriceHistory",
]
