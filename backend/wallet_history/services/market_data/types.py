# backend/wallet_history/services/market_data/types.py
"""
Data types for price charts.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from wallet_history.services.history.types import Timeframe
from wallet_history.services.pricing.base import PricePoint


@dataclass(frozen=True)
class PriceHistory:
    """
    Price series of one symbol over a timeframe.

    Attributes:
        symbol: Upper-cased symbol
        timeframe: Requested lookback
        start: Window start (inclusive)
        end: Window end, usually "now"
        interval: Spacing between consecutive points
        points: At most one sample per interval, oldest first
        cached: True if served from the in-memory chart cache
    """

    symbol: str
    timeframe: Timeframe
    start: datetime
    end: datetime
    interval: timedelta
    points: list[PricePoint] = field(default_factory=list)
    cached: bool = False

    @property
    def latest_price(self) -> Decimal | None:
        return self.points[-1].price if self.points else None

    @property
    def change(self) -> Decimal | None:
        """Last price minus first price (None for an empty series)."""
        if not self.points:
            return None
        return self.points[-1].price - self.points[0].price
