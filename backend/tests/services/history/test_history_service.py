# tests/services/history/test_history_service.py
"""
Tests for PortfolioHistoryService.

Uses in-memory ledger and oracle doubles so the whole request path
(validation, concurrent fetches, normalization, replay) runs without I/O.
"""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from helpers import (
    ACCOUNT,
    MIST_PER_SUI,
    NOW,
    OTHER_ACCOUNT,
    SUI,
    FakeLedger,
    FakeOracle,
    raw_transaction,
)
from wallet_history.services.exceptions import (
    InvalidAccountError,
    InvalidBalanceError,
    InvalidInputError,
    InvalidTimeframeError,
    UpstreamUnavailableError,
)
from wallet_history.services.history.service import PortfolioHistoryService
from wallet_history.services.history.types import PointKind, Timeframe
from wallet_history.services.ledger.types import Direction
from wallet_history.services.pricing.base import PriceProvider
from wallet_history.services.pricing.cache import PriceCacheStore
from wallet_history.services.pricing.fallback import FallbackPriceOracle


def sui(amount: int | str) -> int:
    return int(Decimal(str(amount)) * MIST_PER_SUI)


def sample_ledger(**kwargs) -> FakeLedger:
    """
    Ledger for ACCOUNT ending at 100 SUI:

    - 3 days ago: +83 (before a day window)
    - 5 hours ago: -3 sent to OTHER_ACCOUNT (listed in both feeds)
    - 1 hour ago: +20 received
    """
    old = raw_transaction("0xold", NOW - timedelta(days=3), [(ACCOUNT, SUI, sui(83))])
    send = raw_transaction(
        "0xsend",
        NOW - timedelta(hours=5),
        [(ACCOUNT, SUI, -sui(3)), (OTHER_ACCOUNT, SUI, sui(3))],
    )
    receive = raw_transaction(
        "0xreceive",
        NOW - timedelta(hours=1),
        [(ACCOUNT, SUI, sui(20)), (OTHER_ACCOUNT, SUI, -sui(20))],
    )
    return FakeLedger(
        outgoing=[send],
        incoming=[receive, send, old],
        balance_mist=sui(100),
        **kwargs,
    )


class HangingProvider(PriceProvider):
    """Provider whose calls never complete; its own timeout cuts them off."""

    MAX_RETRY_ATTEMPTS = 2
    RETRY_MIN_WAIT = 0
    RETRY_MAX_WAIT = 0

    @property
    def name(self) -> str:
        return "hanging"

    async def _fetch_current_price(self, symbol: str) -> Decimal:
        await asyncio.Event().wait()

    async def _fetch_price_near(self, symbol: str, timestamp: datetime) -> Decimal:
        await asyncio.Event().wait()


class SpotOnlyProvider(PriceProvider):
    """Provider with a spot price and no history."""

    @property
    def name(self) -> str:
        return "spot-only"

    @property
    def supports_history(self) -> bool:
        return False

    async def _fetch_current_price(self, symbol: str) -> Decimal:
        return Decimal("2")

    async def _fetch_price_near(self, symbol: str, timestamp: datetime) -> Decimal:
        raise AssertionError("spot-only provider asked for history")


def make_service(ledger=None, oracle=None, **kwargs) -> PortfolioHistoryService:
    return PortfolioHistoryService(
        ledger=ledger or sample_ledger(),
        oracle=oracle or FakeOracle(spot=Decimal("2"), default=Decimal("1.5")),
        **kwargs,
    )


class TestGetPortfolioHistory:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_builds_series_from_ledger(self):
        """Should fetch the balance and replay both ledger directions."""
        ledger = sample_ledger()
        service = make_service(ledger=ledger)

        history = await service.get_portfolio_history(ACCOUNT, None, "day", now=NOW)

        assert history.account == ACCOUNT
        assert history.timeframe == Timeframe.DAY
        assert history.current_balance == Decimal("100")
        assert history.current_price == Decimal("2")
        assert history.points[-1].value == Decimal("200")
        assert ledger.balance_calls == 1

        events = {p.event_id: p for p in history.points if p.kind == PointKind.EVENT}
        assert set(events) == {"0xsend", "0xreceive"}
        assert events["0xreceive"].balance == Decimal("80")
        assert events["0xsend"].balance == Decimal("83")

        boundary = history.points[0]
        assert boundary.kind == PointKind.BOUNDARY
        assert boundary.balance == Decimal("83")
        assert boundary.estimated is False

        assert history.events_in_window == 2
        assert history.ledger_complete is True

    @pytest.mark.asyncio
    async def test_supplied_balance_skips_balance_fetch(self):
        ledger = sample_ledger()
        service = make_service(ledger=ledger)

        history = await service.get_portfolio_history(ACCOUNT, Decimal("100"), "day", now=NOW)

        assert ledger.balance_calls == 0
        assert history.current_balance == Decimal("100")

    @pytest.mark.asyncio
    async def test_short_address_is_canonicalized(self):
        """Short addresses should be zero-padded before use."""
        service = make_service(ledger=FakeLedger(balance_mist=sui(1)))

        history = await service.get_portfolio_history("0x2", None, "week", now=NOW)

        assert history.account == "0x" + "0" * 63 + "2"

    @pytest.mark.asyncio
    async def test_empty_ledger_returns_synthetic_series(self):
        """No history is not an error: the series is padded with estimates."""
        service = make_service(ledger=FakeLedger(balance_mist=sui(10)))

        history = await service.get_portfolio_history(ACCOUNT, None, "week", now=NOW)

        real = [p for p in history.points if not p.is_estimate]
        assert [p.kind for p in real] == [PointKind.CURRENT]
        assert history.has_estimates is True
        assert history.events_in_window == 0

    @pytest.mark.asyncio
    async def test_reports_price_lookup_stats(self):
        service = make_service()

        history = await service.get_portfolio_history(ACCOUNT, None, "day", now=NOW)

        assert history.price_stats is not None
        assert history.price_stats.upstream_calls == 2
        assert history.price_stats.failed_buckets == []

    @pytest.mark.asyncio
    async def test_shared_store_is_reused_across_requests(self):
        """A shared store should serve the second request from cache."""
        oracle = FakeOracle(spot=Decimal("2"), default=Decimal("1.5"))
        service = make_service(oracle=oracle, price_store=PriceCacheStore(ttl_seconds=60))

        await service.get_portfolio_history(ACCOUNT, None, "day", now=NOW)
        calls_after_first = len(oracle.history_calls)
        second = await service.get_portfolio_history(ACCOUNT, None, "day", now=NOW)

        assert len(oracle.history_calls) == calls_after_first
        assert second.price_stats.upstream_calls == 0


class TestDegradedUpstreams:
    """Tests for upstream failures that are absorbed or fatal."""

    @pytest.mark.asyncio
    async def test_spot_failure_falls_back_to_historical_price(self):
        oracle = FakeOracle(spot=None, default=Decimal("1.5"))
        service = make_service(oracle=oracle)

        history = await service.get_portfolio_history(ACCOUNT, None, "day", now=NOW)

        assert history.current_price == Decimal("1.5")
        assert history.points[-1].value == Decimal("150")

    @pytest.mark.asyncio
    async def test_no_price_at_all_is_fatal(self):
        """Without any anchor price the request should fail."""
        service = make_service(oracle=FakeOracle(spot=None, default=None))

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await service.get_portfolio_history(ACCOUNT, None, "day", now=NOW)

        assert exc_info.value.upstream == "price"

    @pytest.mark.asyncio
    async def test_hanging_provider_falls_through_to_next(self):
        """A provider that never answers should not hide the next one in the chain."""
        oracle = FallbackPriceOracle([
            HangingProvider(timeout=0.05),
            SpotOnlyProvider(timeout=0.05),
        ])
        service = make_service(oracle=oracle)

        history = await service.get_portfolio_history(ACCOUNT, Decimal("100"), "day", now=NOW)

        assert history.current_price == Decimal("2")
        assert history.points[-1].value == Decimal("200")
        assert all(p.price == Decimal("2") for p in history.points)
        assert any("Historical prices unavailable" in w for w in history.warnings)

    @pytest.mark.asyncio
    async def test_price_timeout_is_named_in_error(self):
        oracle = FallbackPriceOracle([HangingProvider(timeout=5.0)])
        service = make_service(oracle=oracle, price_timeout=0.05)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await service.get_portfolio_history(ACCOUNT, Decimal("100"), "day", now=NOW)

        assert "spot: timed out after 0.05s" in str(exc_info.value)
        assert "historical: timed out after 0.05s" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_historical_prices_degrade_to_spot(self):
        oracle = FakeOracle(spot=Decimal("2"), default=None)
        service = make_service(oracle=oracle)

        history = await service.get_portfolio_history(ACCOUNT, None, "day", now=NOW)

        assert all(p.price == Decimal("2") for p in history.points)
        assert any("Historical prices unavailable" in w for w in history.warnings)

    @pytest.mark.asyncio
    async def test_balance_failure_is_fatal_without_supplied_balance(self):
        ledger = sample_ledger()
        ledger.fail_balance = True
        service = make_service(ledger=ledger)

        with pytest.raises(UpstreamUnavailableError):
            await service.get_portfolio_history(ACCOUNT, None, "day", now=NOW)

    @pytest.mark.asyncio
    async def test_ledger_direction_failure_degrades(self):
        """A failed feed should keep the other direction and warn."""
        ledger = sample_ledger()
        ledger.fail_directions = {Direction.OUTGOING}
        service = make_service(ledger=ledger)

        history = await service.get_portfolio_history(ACCOUNT, Decimal("100"), "day", now=NOW)

        assert history.ledger_complete is False
        assert any("outgoing" in w for w in history.warnings)
        # The self-listed send also appears in the incoming feed
        assert {p.event_id for p in history.points if p.event_id} == {"0xsend", "0xreceive"}


class TestValidation:
    """Tests for request validation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("account", ["", "abc", "0x", "0xZZ", "0x" + "1" * 65])
    async def test_rejects_malformed_account(self, account):
        service = make_service()

        with pytest.raises(InvalidAccountError):
            await service.get_portfolio_history(account, None, "day", now=NOW)

    @pytest.mark.asyncio
    async def test_rejects_unknown_timeframe(self):
        service = make_service()

        with pytest.raises(InvalidTimeframeError):
            await service.get_portfolio_history(ACCOUNT, None, "decade", now=NOW)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("balance", [Decimal("0"), Decimal("-1"), "abc", Decimal("NaN")])
    async def test_rejects_non_positive_balance(self, balance):
        service = make_service()

        with pytest.raises(InvalidBalanceError):
            await service.get_portfolio_history(ACCOUNT, balance, "day", now=NOW)

    @pytest.mark.asyncio
    async def test_validation_happens_before_any_io(self):
        ledger = sample_ledger()
        oracle = FakeOracle()
        service = make_service(ledger=ledger, oracle=oracle)

        with pytest.raises(InvalidInputError):
            await service.get_portfolio_history("nope", None, "day", now=NOW)

        assert ledger.calls == []
        assert oracle.spot_calls == 0


class TestNetworkSelection:
    """Tests for the optional network override."""

    @pytest.mark.asyncio
    async def test_network_requires_factory(self):
        service = make_service()

        with pytest.raises(InvalidInputError, match="network"):
            await service.get_portfolio_history(ACCOUNT, None, "day", network="testnet", now=NOW)

    @pytest.mark.asyncio
    async def test_uses_ledger_for_network(self):
        testnet = FakeLedger(balance_mist=sui(7))

        def factory(network):
            if network != "testnet":
                raise ValueError(f"Unknown Sui network '{network}'")
            return testnet

        service = make_service(ledger_for_network=factory)

        history = await service.get_portfolio_history(ACCOUNT, None, "day", network="testnet", now=NOW)

        assert history.current_balance == Decimal("7")
        assert testnet.balance_calls == 1

    @pytest.mark.asyncio
    async def test_unknown_network_is_invalid_input(self):
        def factory(network):
            raise ValueError(f"Unknown Sui network '{network}'")

        service = make_service(ledger_for_network=factory)

        with pytest.raises(InvalidInputError) as exc_info:
            await service.get_portfolio_history(ACCOUNT, None, "day", network="moon", now=NOW)

        assert exc_info.value.field == "network"
