# backend/wallet_history/services/pricing/yahoo.py
"""
Yahoo Finance price provider implementation.

Uses the yfinance library (synchronous) from a worker thread so the event
loop is never blocked. Crypto pairs are quoted as "<SYMBOL><id>-USD" on
Yahoo, hence the explicit symbol map.

Historical lookups fetch bars around the requested instant: hourly bars
while Yahoo still serves them (about two years back), daily bars beyond
that. The bar whose start is closest to the target is used, valued at its
close.

Limitations:
- Rate limits exist but are not documented
- Crypto coverage lags new listings
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

import yfinance as yf

from wallet_history.services.circuit_breaker import CircuitBreaker
from wallet_history.services.constants import HISTORICAL_PRICE_WINDOW, YAHOO_SYMBOLS
from wallet_history.services.exceptions import (
    PriceNotFoundError,
    ProviderUnavailableError,
    RateLimitError,
)
from wallet_history.services.pricing.base import PricePoint, PriceProvider, to_price
from wallet_history.utils.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

# Yahoo only serves 1h bars for roughly the last 730 days
HOURLY_HISTORY_LIMIT = timedelta(days=720)


class YahooFinanceProvider(PriceProvider):
    """
    Yahoo Finance implementation of PriceProvider.

    Configuration:
        timeout: Per-call timeout in seconds (default: 10)
        symbol_map: Symbol -> Yahoo ticker overrides
    """

    def __init__(
            self,
            timeout: float = 10.0,
            circuit_breaker: CircuitBreaker | None = None,
            symbol_map: dict[str, str] | None = None,
    ) -> None:
        super().__init__(timeout=timeout, circuit_breaker=circuit_breaker)
        self._symbols = {**YAHOO_SYMBOLS, **{k.upper(): v for k, v in (symbol_map or {}).items()}}
        logger.info(f"YahooFinanceProvider initialized (timeout={timeout}s)")

    @property
    def name(self) -> str:
        return "yahoo"

    async def _fetch_current_price(self, symbol: str) -> Decimal:
        return await asyncio.to_thread(self._current_price_sync, symbol)

    async def _fetch_price_near(self, symbol: str, timestamp: datetime) -> Decimal:
        return await asyncio.to_thread(self._price_near_sync, symbol, timestamp)

    async def _fetch_price_series(
            self,
            symbol: str,
            start: datetime,
            end: datetime,
    ) -> list[PricePoint]:
        return await asyncio.to_thread(self._price_series_sync, symbol, start, end)

    # =========================================================================
    # SYNCHRONOUS YFINANCE CALLS (run in a worker thread)
    # =========================================================================

    def _current_price_sync(self, symbol: str) -> Decimal:
        yahoo_symbol = self._yahoo_symbol(symbol)
        df = self._history(yahoo_symbol, period="5d", interval="1h")

        closes = self._closes(df)
        if not closes:
            raise PriceNotFoundError(symbol, self.name, "no recent bars")

        _, price = max(closes, key=lambda c: c[0])
        logger.debug(f"Yahoo spot {yahoo_symbol}: {price}")
        return price

    def _price_near_sync(self, symbol: str, timestamp: datetime) -> Decimal:
        yahoo_symbol = self._yahoo_symbol(symbol)
        now = utc_now()
        target = min(timestamp, now)
        interval = "1h" if now - target <= HOURLY_HISTORY_LIMIT else "1d"

        df = self._history(
            yahoo_symbol,
            start=(target - HISTORICAL_PRICE_WINDOW).strftime("%Y-%m-%d"),
            end=(target + HISTORICAL_PRICE_WINDOW + timedelta(days=1)).strftime("%Y-%m-%d"),
            interval=interval,
        )

        closes = self._closes(df)
        if not closes:
            raise PriceNotFoundError(symbol, self.name, f"no bars near {target.isoformat()}")

        _, price = min(closes, key=lambda c: abs((c[0] - target).total_seconds()))
        return price

    def _price_series_sync(self, symbol: str, start: datetime, end: datetime) -> list[PricePoint]:
        yahoo_symbol = self._yahoo_symbol(symbol)
        now = utc_now()
        end = min(end, now)
        interval = "1h" if now - start <= HOURLY_HISTORY_LIMIT else "1d"

        df = self._history(
            yahoo_symbol,
            start=start.strftime("%Y-%m-%d"),
            end=(end + timedelta(days=1)).strftime("%Y-%m-%d"),
            interval=interval,
        )

        points = [
            PricePoint(bar_time, price)
            for bar_time, price in sorted(self._closes(df))
            if start <= bar_time <= end
        ]
        if not points:
            raise PriceNotFoundError(
                symbol, self.name, f"no bars between {start.isoformat()} and {end.isoformat()}"
            )
        return points

    def _history(self, yahoo_symbol: str, **kwargs: Any) -> Any:
        try:
            return yf.Ticker(yahoo_symbol).history(auto_adjust=False, **kwargs)
        except Exception as e:
            error_str = str(e).lower()

            if "not found" in error_str or "delisted" in error_str:
                raise PriceNotFoundError(yahoo_symbol, self.name, str(e)) from e

            if "rate limit" in error_str or "too many requests" in error_str:
                raise RateLimitError(provider=self.name) from e

            logger.error(f"Yahoo Finance error for {yahoo_symbol}: {e}")
            raise ProviderUnavailableError(provider=self.name, reason=str(e)) from e

    def _yahoo_symbol(self, symbol: str) -> str:
        try:
            return self._symbols[symbol.upper()]
        except KeyError:
            raise PriceNotFoundError(symbol, self.name, "symbol not supported") from None

    @staticmethod
    def _closes(df: Any) -> list[tuple[datetime, Decimal]]:
        """Extract (aware UTC bar start, close) pairs, skipping NaN closes."""
        if df is None or getattr(df, "empty", True) or "Close" not in df:
            return []

        closes = []
        for idx, value in df["Close"].items():
            if value is None or (isinstance(value, float) and math.isnan(value)):
                continue
            price = to_price(float(value))
            if price is None:
                continue
            bar_time = idx.to_pydatetime() if hasattr(idx, "to_pydatetime") else idx
            closes.append((ensure_utc(bar_time), price))
        return closes
