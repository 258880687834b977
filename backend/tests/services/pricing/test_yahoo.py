# tests/services/pricing/test_yahoo.py
"""
Tests for YahooFinanceProvider (with mocked yfinance).
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import numpy as np
import pandas as pd
import pytest

from helpers import NOW
from wallet_history.services.exceptions import (
    PriceNotFoundError,
    ProviderUnavailableError,
    RateLimitError,
)
from wallet_history.services.pricing.yahoo import YahooFinanceProvider


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def provider():
    """YahooFinanceProvider with a single attempt per call."""
    provider = YahooFinanceProvider(timeout=5)
    provider.MAX_RETRY_ATTEMPTS = 1
    return provider


@pytest.fixture
def hourly_bars():
    """Hourly closes like yfinance returns for a crypto pair."""
    index = pd.date_range(end=NOW, periods=6, freq="h", tz="UTC")
    return pd.DataFrame({
        "Open": [1.0, 1.1, 1.2, 1.3, 1.4, 1.5],
        "Close": [1.05, 1.15, np.nan, 1.35, 1.45, 1.55],
        "Volume": [100, 100, 100, 100, 100, 100],
    }, index=index)


def ticker_returning(df) -> MagicMock:
    ticker = MagicMock()
    ticker.history.return_value = df
    return ticker


# =============================================================================
# SPOT PRICE
# =============================================================================

class TestCurrentPrice:
    """Tests for current_price()."""

    @pytest.mark.asyncio
    @patch("wallet_history.services.pricing.yahoo.yf")
    async def test_returns_latest_close(self, mock_yf, provider, hourly_bars):
        """Should return the close of the most recent bar."""
        mock_yf.Ticker.return_value = ticker_returning(hourly_bars)

        price = await provider.current_price("SUI")

        assert price == Decimal("1.55")
        mock_yf.Ticker.assert_called_with("SUI20947-USD")

    @pytest.mark.asyncio
    @patch("wallet_history.services.pricing.yahoo.yf")
    async def test_empty_history_raises_not_found(self, mock_yf, provider):
        mock_yf.Ticker.return_value = ticker_returning(pd.DataFrame())

        with pytest.raises(PriceNotFoundError):
            await provider.current_price("SUI")

    @pytest.mark.asyncio
    async def test_unmapped_symbol_raises_not_found(self, provider):
        with pytest.raises(PriceNotFoundError):
            await provider.current_price("WAL")


# =============================================================================
# HISTORICAL PRICE
# =============================================================================

class TestPriceNear:
    """Tests for price_near()."""

    @pytest.mark.asyncio
    @patch("wallet_history.services.pricing.yahoo.utc_now", return_value=NOW)
    @patch("wallet_history.services.pricing.yahoo.yf")
    async def test_picks_closest_bar(self, mock_yf, _now, provider, hourly_bars):
        """NaN closes are skipped when choosing the nearest bar."""
        mock_yf.Ticker.return_value = ticker_returning(hourly_bars)

        # The bar at NOW-3h is nearest but has a NaN close; NOW-4h is next
        price = await provider.price_near("SUI", NOW - timedelta(hours=3, minutes=10))

        assert price == Decimal("1.15")

    @pytest.mark.asyncio
    @patch("wallet_history.services.pricing.yahoo.utc_now", return_value=NOW)
    @patch("wallet_history.services.pricing.yahoo.yf")
    async def test_recent_lookups_use_hourly_bars(self, mock_yf, _now, provider, hourly_bars):
        ticker = ticker_returning(hourly_bars)
        mock_yf.Ticker.return_value = ticker

        await provider.price_near("SUI", NOW - timedelta(days=3))

        kwargs = ticker.history.call_args.kwargs
        assert kwargs["interval"] == "1h"
        assert kwargs["start"] == "2024-06-11"
        assert kwargs["end"] == "2024-06-14"

    @pytest.mark.asyncio
    @patch("wallet_history.services.pricing.yahoo.utc_now", return_value=NOW)
    @patch("wallet_history.services.pricing.yahoo.yf")
    async def test_old_lookups_use_daily_bars(self, mock_yf, _now, provider, hourly_bars):
        ticker = ticker_returning(hourly_bars)
        mock_yf.Ticker.return_value = ticker

        await provider.price_near("SUI", NOW - timedelta(days=800))

        assert ticker.history.call_args.kwargs["interval"] == "1d"


class TestPriceSeries:
    """Tests for price_series()."""

    @pytest.mark.asyncio
    @patch("wallet_history.services.pricing.yahoo.utc_now", return_value=NOW)
    @patch("wallet_history.services.pricing.yahoo.yf")
    async def test_keeps_valid_closes_in_range(self, mock_yf, _now, provider, hourly_bars):
        """Should drop NaN closes and bars before the start."""
        ticker = ticker_returning(hourly_bars)
        mock_yf.Ticker.return_value = ticker

        points = await provider.price_series("SUI", NOW - timedelta(hours=4), NOW)

        assert [p.price for p in points] == [Decimal("1.15"), Decimal("1.35"), Decimal("1.45"), Decimal("1.55")]
        assert points[-1].timestamp == NOW
        assert ticker.history.call_args.kwargs["interval"] == "1h"

    @pytest.mark.asyncio
    @patch("wallet_history.services.pricing.yahoo.utc_now", return_value=NOW)
    @patch("wallet_history.services.pricing.yahoo.yf")
    async def test_long_ranges_use_daily_bars(self, mock_yf, _now, provider, hourly_bars):
        ticker = ticker_returning(hourly_bars)
        mock_yf.Ticker.return_value = ticker

        await provider.price_series("SUI", NOW - timedelta(days=1000), NOW)

        assert ticker.history.call_args.kwargs["interval"] == "1d"

    @pytest.mark.asyncio
    @patch("wallet_history.services.pricing.yahoo.utc_now", return_value=NOW)
    @patch("wallet_history.services.pricing.yahoo.yf")
    async def test_no_bars_in_range_raises_not_found(self, mock_yf, _now, provider, hourly_bars):
        mock_yf.Ticker.return_value = ticker_returning(hourly_bars)

        with pytest.raises(PriceNotFoundError):
            await provider.price_series("SUI", NOW - timedelta(days=30), NOW - timedelta(days=20))


# =============================================================================
# ERROR MAPPING
# =============================================================================

class TestErrorMapping:
    """Tests for translating yfinance exceptions."""

    @pytest.mark.asyncio
    @patch("wallet_history.services.pricing.yahoo.yf")
    async def test_rate_limit(self, mock_yf, provider):
        mock_yf.Ticker.return_value.history.side_effect = Exception("Too Many Requests. Rate limited.")

        with pytest.raises(RateLimitError):
            await provider.current_price("SUI")

    @pytest.mark.asyncio
    @patch("wallet_history.services.pricing.yahoo.yf")
    async def test_delisted(self, mock_yf, provider):
        mock_yf.Ticker.return_value.history.side_effect = Exception("SUI20947-USD: possibly delisted")

        with pytest.raises(PriceNotFoundError):
            await provider.current_price("SUI")

    @pytest.mark.asyncio
    @patch("wallet_history.services.pricing.yahoo.yf")
    async def test_other_errors_are_unavailable(self, mock_yf, provider):
        mock_yf.Ticker.side_effect = Exception("Connection timeout")

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await provider.current_price("SUI")

        assert exc_info.value.provider == "yahoo"
