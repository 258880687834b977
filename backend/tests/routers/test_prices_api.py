# tests/routers/test_prices_api.py
"""
API layer tests for the price chart endpoint.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from wallet_history.dependencies import get_price_history_service
from wallet_history.main import app
from wallet_history.services.exceptions import PriceNotFoundError
from wallet_history.services.market_data import PriceHistoryService
from wallet_history.services.pricing.base import PricePoint


class HourlyOracle:
    """One sample per hour from `start`, priced 1.00, 1.01, ..."""

    async def price_series(self, symbol, start, end):
        points = []
        ts = start
        while ts <= end:
            points.append(PricePoint(ts, Decimal("1") + Decimal(len(points)) / 100))
            ts += timedelta(hours=1)
        return points


class EmptyOracle:
    async def price_series(self, symbol, start, end):
        raise PriceNotFoundError(symbol, "coingecko", "no samples")


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def use_service(service) -> None:
    app.dependency_overrides[get_price_history_service] = lambda: service


class TestGetPriceHistory:
    """Tests for GET /prices/{symbol}/history."""

    def test_week_chart(self, client):
        use_service(PriceHistoryService(HourlyOracle()))

        response = client.get("/prices/sui/history", params={"timeframe": "week"})

        assert response.status_code == 200
        body = response.json()
        assert body["symbol"] == "SUI"
        assert body["timeframe"] == "week"
        assert body["reference_currency"] == "usd"
        assert body["interval_seconds"] == 86400
        assert body["total_points"] == len(body["data"])
        assert 7 <= body["total_points"] <= 8
        assert body["cached"] is False
        assert Decimal(body["latest_price"]) == Decimal(body["data"][-1]["price"])

        timestamps = [p["timestamp"] for p in body["data"]]
        assert timestamps == sorted(timestamps)

    def test_default_timeframe_is_month(self, client):
        use_service(PriceHistoryService(HourlyOracle()))

        body = client.get("/prices/SUI/history").json()

        assert body["timeframe"] == "month"

    def test_repeat_request_is_cached(self, client):
        use_service(PriceHistoryService(HourlyOracle()))

        client.get("/prices/SUI/history", params={"timeframe": "day"})
        body = client.get("/prices/SUI/history", params={"timeframe": "day"}).json()

        assert body["cached"] is True
        assert body["interval_seconds"] == 3600

    def test_unknown_timeframe(self, client):
        use_service(PriceHistoryService(HourlyOracle()))

        response = client.get("/prices/SUI/history", params={"timeframe": "decade"})

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidTimeframeError"

    def test_no_series_is_service_unavailable(self, client):
        use_service(PriceHistoryService(EmptyOracle()))

        response = client.get("/prices/SUI/history")

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "UpstreamUnavailableError"
        assert body["details"]["upstream"] == "price"
