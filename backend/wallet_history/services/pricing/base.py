# backend/wallet_history/services/pricing/base.py
"""
Abstract interface for price providers.

Every provider answers two questions for a symbol, in the reference
currency: what is the price now, and what was it closest to a given
instant. The base class wraps both calls in the same resilience stack:

    circuit breaker -> per-call timeout -> provider fetch
    (all of it retried with exponential backoff)

Retryable Exceptions:
    - ProviderUnavailableError: Network issues, timeouts, server errors
    - RateLimitError: API rate limit exceeded

Non-Retryable Exceptions:
    - PriceNotFoundError: The provider has no data for this request
    - CircuitBreakerOpen: The provider is known to be down
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from wallet_history.services.circuit_breaker import CircuitBreaker
from wallet_history.services.constants import PRICE_DECIMAL_PLACES
from wallet_history.services.exceptions import (
    PriceNotFoundError,
    ProviderUnavailableError,
    RateLimitError,
)
from wallet_history.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PRICE_QUANTUM = Decimal(1).scaleb(-PRICE_DECIMAL_PLACES)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class PricePoint:
    """
    A price observation in the reference currency.

    Attributes:
        timestamp: Aware UTC instant of the observation
        price: Non-negative price per unit of asset
    """

    timestamp: datetime
    price: Decimal

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")
        if self.price < 0:
            raise ValueError(f"price cannot be negative, got {self.price}")


def to_price(value: Any) -> Decimal | None:
    """
    Convert a JSON number or numeric string to a price Decimal.

    Returns None for missing, NaN, infinite, negative or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, float) and not math.isfinite(value):
            return None
        price = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not price.is_finite() or price < 0:
        return None
    return price.quantize(_PRICE_QUANTUM).normalize()


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class PriceProvider(ABC):
    """
    Abstract base class for price providers.

    Subclasses implement `_fetch_current_price` and `_fetch_price_near`; the
    public `current_price` / `price_near` methods add retry, timeout and
    circuit breaking. Retry configuration can be overridden per subclass:

        - MAX_RETRY_ATTEMPTS: Total attempts (default: 3)
        - RETRY_MIN_WAIT: Minimum wait in seconds (default: 1)
        - RETRY_MAX_WAIT: Maximum wait in seconds (default: 10)
        - RETRY_MULTIPLIER: Exponential multiplier (default: 1)
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: float = 1
    RETRY_MAX_WAIT: float = 10
    RETRY_MULTIPLIER: float = 1

    def __init__(
            self,
            timeout: float = 10.0,
            circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._timeout = timeout
        self._breaker = circuit_breaker or CircuitBreaker(
            name=self.name,
            excluded_exceptions=(PriceNotFoundError,),
        )

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique provider identifier used in logs and errors."""

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def supports_history(self) -> bool:
        """Whether `price_near` can return anything but PriceNotFoundError."""
        return True

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def current_price(self, symbol: str) -> Decimal:
        """
        Fetch the current spot price.

        Raises:
            PriceNotFoundError: Symbol unknown or no price available
            ProviderUnavailableError: Network or API error (after retries)
            RateLimitError: Rate limit exceeded (after retries)
            CircuitBreakerOpen: Provider circuit is open
        """
        return await self._execute_with_retry(self._fetch_current_price, symbol.strip().upper())

    async def price_near(self, symbol: str, timestamp: datetime) -> Decimal:
        """
        Fetch the price sample closest to `timestamp`.

        Raises:
            Same as current_price
        """
        return await self._execute_with_retry(
            self._fetch_price_near,
            symbol.strip().upper(),
            ensure_utc(timestamp),
        )

    async def price_series(
            self,
            symbol: str,
            start: datetime,
            end: datetime,
    ) -> list[PricePoint]:
        """
        Fetch every sample between `start` and `end`, oldest first.

        Raises:
            PriceNotFoundError: No samples in range, or no history offered
            Same as current_price otherwise
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if start >= end:
            raise ValueError("start must be before end")
        return await self._execute_with_retry(
            self._fetch_price_series,
            symbol.strip().upper(),
            start,
            end,
        )

    async def aclose(self) -> None:
        """Release any resources held by the provider."""

    # =========================================================================
    # PROVIDER HOOKS
    # =========================================================================

    @abstractmethod
    async def _fetch_current_price(self, symbol: str) -> Decimal:
        ...

    @abstractmethod
    async def _fetch_price_near(self, symbol: str, timestamp: datetime) -> Decimal:
        ...

    async def _fetch_price_series(
            self,
            symbol: str,
            start: datetime,
            end: datetime,
    ) -> list[PricePoint]:
        raise PriceNotFoundError(symbol, self.name, "no price history offered")

    # =========================================================================
    # RESILIENCE HELPERS
    # =========================================================================

    async def _execute_with_retry(
            self,
            func: Callable[..., Awaitable[T]],
            *args: Any,
    ) -> T:
        """Run `func` through the breaker and timeout, retrying transient failures."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type((ProviderUnavailableError, RateLimitError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._guarded(func, *args)

    async def _guarded(self, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        try:
            async with self._breaker:
                return await asyncio.wait_for(func(*args), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise ProviderUnavailableError(self.name, f"timed out after {self._timeout}s") from e
