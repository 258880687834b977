# tests/services/pricing/test_fallback.py
"""
Tests for FallbackPriceOracle.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from helpers import NOW
from wallet_history.services.circuit_breaker import CircuitBreaker
from wallet_history.services.exceptions import (
    PriceNotFoundError,
    ProviderUnavailableError,
)
from wallet_history.services.pricing.base import PricePoint, PriceProvider
from wallet_history.services.pricing.fallback import FallbackPriceOracle


class StubProvider(PriceProvider):
    """Provider returning fixed prices or raising a fixed error."""

    MAX_RETRY_ATTEMPTS = 1

    def __init__(self, name, price=None, error=None, history=True, circuit_breaker=None):
        self._name = name
        self._price = price
        self._error = error
        self._history = history
        self.calls = 0
        super().__init__(timeout=1.0, circuit_breaker=circuit_breaker)

    @property
    def name(self) -> str:
        return self._name

    @property
    def supports_history(self) -> bool:
        return self._history

    async def _fetch_current_price(self, symbol: str) -> Decimal:
        return self._answer(symbol)

    async def _fetch_price_near(self, symbol: str, timestamp: datetime) -> Decimal:
        return self._answer(symbol)

    async def _fetch_price_series(self, symbol, start, end):
        return [PricePoint(end, self._answer(symbol))]

    def _answer(self, symbol):
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._price


class TestFallbackPriceOracle:
    """Tests for ordered provider fallback."""

    def test_requires_a_provider(self):
        with pytest.raises(ValueError):
            FallbackPriceOracle([])

    @pytest.mark.asyncio
    async def test_first_provider_wins(self):
        first = StubProvider("first", price=Decimal("1"))
        second = StubProvider("second", price=Decimal("2"))
        oracle = FallbackPriceOracle([first, second])

        assert await oracle.current_price("SUI") == Decimal("1")
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_falls_through_on_failure(self):
        first = StubProvider("first", error=ProviderUnavailableError("first", "down"))
        second = StubProvider("second", price=Decimal("2"))
        oracle = FallbackPriceOracle([first, second])

        assert await oracle.current_price("SUI") == Decimal("2")
        assert first.calls == 1

    @pytest.mark.asyncio
    async def test_raises_last_error_when_all_fail(self):
        first = StubProvider("first", error=ProviderUnavailableError("first", "down"))
        second = StubProvider("second", error=PriceNotFoundError("SUI", "second"))
        oracle = FallbackPriceOracle([first, second])

        with pytest.raises(PriceNotFoundError) as exc_info:
            await oracle.current_price("SUI")

        assert exc_info.value.provider == "second"

    @pytest.mark.asyncio
    async def test_skips_open_circuit(self):
        first = StubProvider("first", price=Decimal("1"))
        first.circuit_breaker.force_open()
        second = StubProvider("second", price=Decimal("2"))
        oracle = FallbackPriceOracle([first, second])

        assert await oracle.current_price("SUI") == Decimal("2")
        assert first.calls == 0

    @pytest.mark.asyncio
    async def test_history_skips_spot_only_providers(self):
        spot_only = StubProvider("navi", price=Decimal("9"), history=False)
        historical = StubProvider("coingecko", price=Decimal("1.5"))
        oracle = FallbackPriceOracle([spot_only, historical])

        assert await oracle.price_near("SUI", NOW) == Decimal("1.5")
        assert spot_only.calls == 0

    @pytest.mark.asyncio
    async def test_history_without_capable_provider(self):
        oracle = FallbackPriceOracle([StubProvider("navi", price=Decimal("9"), history=False)])

        with pytest.raises(PriceNotFoundError):
            await oracle.price_near("SUI", NOW)

    @pytest.mark.asyncio
    async def test_exposes_providers_for_health(self):
        breaker = CircuitBreaker(name="first")
        first = StubProvider("first", price=Decimal("1"), circuit_breaker=breaker)
        oracle = FallbackPriceOracle([first])

        assert [p.circuit_breaker for p in oracle.providers] == [breaker]

    @pytest.mark.asyncio
    async def test_series_skips_spot_only_and_failing_providers(self):
        spot_only = StubProvider("navi", price=Decimal("9"), history=False)
        failing = StubProvider("coingecko", error=ProviderUnavailableError("coingecko", "down"))
        yahoo = StubProvider("yahoo", price=Decimal("1.5"))
        oracle = FallbackPriceOracle([spot_only, failing, yahoo])

        points = await oracle.price_series("SUI", NOW.replace(hour=0), NOW)

        assert points == [PricePoint(NOW, Decimal("1.5"))]
        assert spot_only.calls == 0
        assert failing.calls == 1

    @pytest.mark.asyncio
    async def test_series_without_capable_provider(self):
        oracle = FallbackPriceOracle([StubProvider("navi", price=Decimal("9"), history=False)])

        with pytest.raises(PriceNotFoundError) as exc_info:
            await oracle.price_series("SUI", NOW.replace(hour=0), NOW)

        assert exc_info.value.provider == "fallback"
