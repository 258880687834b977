# backend/wallet_history/services/market_data/service.py
"""
Price History Service - price charts per timeframe.

The series comes from the provider chain's price_series (CoinGecko first
by default) over the timeframe's window, then thinned to one sample per
interval: hourly for a day, daily for longer windows.

Live charts (no explicit "now") are kept in memory for a short,
timeframe-dependent time:

    | Timeframe | Interval | Cached for |
    |-----------|----------|------------|
    | day       | 1h       | 5 min      |
    | week      | 1d       | 15 min     |
    | month     | 1d       | 30 min     |
    | year      | 1d       | 1 h        |

Unlike portfolio history there is no degraded answer: if no provider can
produce a series the request fails with UpstreamUnavailableError.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta

from wallet_history.services.circuit_breaker import CircuitBreakerOpen
from wallet_history.services.constants import PRICE_SERIES_CACHE_TTL, PRICE_SERIES_INTERVALS
from wallet_history.services.exceptions import (
    InvalidInputError,
    PriceOracleError,
    UpstreamUnavailableError,
)
from wallet_history.services.history.types import Timeframe
from wallet_history.services.history.windower import TimeframeWindower
from wallet_history.services.market_data.types import PriceHistory
from wallet_history.services.pricing.base import PricePoint
from wallet_history.services.protocols import PriceSeriesSource
from wallet_history.utils.time_utils import to_epoch_seconds

logger = logging.getLogger(__name__)


def thin_series(points: Iterable[PricePoint], interval: timedelta) -> list[PricePoint]:
    """
    Keep the latest sample of every interval-sized bucket, oldest first.

    Buckets are aligned to the Unix epoch, so hourly buckets start on the
    hour and daily buckets at UTC midnight.
    """
    step = int(interval.total_seconds())
    if step <= 0:
        raise ValueError("interval must be positive")

    latest: dict[int, PricePoint] = {}
    for point in points:
        bucket = to_epoch_seconds(point.timestamp) // step
        kept = latest.get(bucket)
        if kept is None or point.timestamp >= kept.timestamp:
            latest[bucket] = point
    return [latest[b] for b in sorted(latest)]


class PriceHistoryService:
    """
    Builds price charts for a symbol.

    Args:
        oracle: Series source (usually a FallbackPriceOracle)
        windower: Timeframe policy table
        cache_ttl: Seconds a live chart is reused, per timeframe value;
            0 disables caching for that timeframe
        clock: Monotonic clock for cache expiry
    """

    def __init__(
            self,
            oracle: PriceSeriesSource,
            windower: TimeframeWindower | None = None,
            cache_ttl: Mapping[str, float] | None = None,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._oracle = oracle
        self._windower = windower or TimeframeWindower()
        self._cache_ttl = dict(PRICE_SERIES_CACHE_TTL if cache_ttl is None else cache_ttl)
        self._clock = clock
        self._cache: dict[tuple[str, Timeframe], tuple[float, PriceHistory]] = {}

    async def get_price_history(
            self,
            symbol: str,
            timeframe: Timeframe | str,
            *,
            now: datetime | None = None,
    ) -> PriceHistory:
        """
        Get the price chart of `symbol` over `timeframe`.

        Args:
            symbol: Asset symbol, case-insensitive
            timeframe: day, week, month or year
            now: Anchor instant; None means "now" and enables the cache

        Raises:
            InvalidInputError: Blank symbol or unknown timeframe
            UpstreamUnavailableError: No provider produced a series
        """
        key_symbol = (symbol or "").strip().upper()
        if not key_symbol:
            raise InvalidInputError("symbol is required", field="symbol")
        tf = Timeframe.parse(timeframe)

        live = now is None
        if live:
            cached = self._cached(key_symbol, tf)
            if cached is not None:
                return cached

        window = self._windower.window(tf, now)
        interval = PRICE_SERIES_INTERVALS[tf.value]

        try:
            raw = await self._oracle.price_series(key_symbol, window.cutoff, window.now)
        except (PriceOracleError, CircuitBreakerOpen) as e:
            logger.error(f"No price series for {key_symbol} ({tf.value}): {e}")
            raise UpstreamUnavailableError("price", str(e) or type(e).__name__) from e

        points = thin_series(
            (p for p in raw if window.cutoff <= p.timestamp <= window.now),
            interval,
        )
        history = PriceHistory(
            symbol=key_symbol,
            timeframe=tf,
            start=window.cutoff,
            end=window.now,
            interval=interval,
            points=points,
        )

        logger.info(
            f"Price history for {key_symbol} ({tf.value}): "
            f"{len(points)} points from {len(raw)} samples",
            extra={"timeframe": tf.value, "points": len(points)},
        )

        if live and self._cache_ttl.get(tf.value, 0) > 0:
            self._cache[(key_symbol, tf)] = (self._clock(), history)
        return history

    def clear_cache(self) -> None:
        self._cache.clear()

    def _cached(self, symbol: str, timeframe: Timeframe) -> PriceHistory | None:
        entry = self._cache.get((symbol, timeframe))
        if entry is None:
            return None
        stored_at, history = entry
        if self._clock() - stored_at >= self._cache_ttl.get(timeframe.value, 0):
            del self._cache[(symbol, timeframe)]
            return None
        logger.debug(f"Price history cache hit for {symbol} ({timeframe.value})")
        return PriceHistory(
            symbol=history.symbol,
            timeframe=history.timeframe,
            start=history.start,
            end=history.end,
            interval=history.interval,
            points=list(history.points),
            cached=True,
        )
