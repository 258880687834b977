# backend/wallet_history/services/pricing/fallback.py
"""
Ordered provider fallback chain.

Tries each provider in turn and returns the first price obtained. Providers
that cannot serve history are skipped for historical lookups. When every
provider fails, the last error is raised so callers can decide whether the
failure is fatal (no anchor price) or absorbable (one historical bucket).
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from wallet_history.services.circuit_breaker import CircuitBreakerOpen
from wallet_history.services.exceptions import PriceNotFoundError, PriceOracleError
from wallet_history.services.pricing.base import PricePoint, PriceProvider

logger = logging.getLogger(__name__)


class FallbackPriceOracle:
    """PriceOracle that delegates to an ordered list of providers."""

    def __init__(self, providers: Sequence[PriceProvider]) -> None:
        if not providers:
            raise ValueError("FallbackPriceOracle needs at least one provider")
        self._providers = list(providers)

    @property
    def providers(self) -> list[PriceProvider]:
        return list(self._providers)

    async def current_price(self, symbol: str) -> Decimal:
        last_error: Exception | None = None

        for provider in self._providers:
            try:
                return await provider.current_price(symbol)
            except (PriceOracleError, CircuitBreakerOpen) as e:
                logger.warning(f"Spot price for {symbol} failed on {provider.name}: {e}")
                last_error = e

        raise last_error  # type: ignore[misc]

    async def price_near(self, symbol: str, timestamp: datetime) -> Decimal:
        last_error: Exception | None = None

        for provider in self._providers:
            if not provider.supports_history:
                continue
            try:
                return await provider.price_near(symbol, timestamp)
            except (PriceOracleError, CircuitBreakerOpen) as e:
                logger.debug(
                    f"Historical price for {symbol} at {timestamp.isoformat()} "
                    f"failed on {provider.name}: {e}"
                )
                last_error = e

        if last_error is None:
            raise PriceNotFoundError(symbol, "fallback", "no provider offers historical prices")
        raise last_error

    async def price_series(
            self,
            symbol: str,
            start: datetime,
            end: datetime,
    ) -> list[PricePoint]:
        last_error: Exception | None = None

        for provider in self._providers:
            if not provider.supports_history:
                continue
            try:
                return await provider.price_series(symbol, start, end)
            except (PriceOracleError, CircuitBreakerOpen) as e:
                logger.warning(f"Price series for {symbol} failed on {provider.name}: {e}")
                last_error = e

        if last_error is None:
            raise PriceNotFoundError(symbol, "fallback", "no provider offers historical prices")
        raise last_error

    async def aclose(self) -> None:
        for provider in self._providers:
            await provider.aclose()
