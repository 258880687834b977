# tests/routers/test_portfolio_api.py
"""
API layer tests for the portfolio history endpoint.

These tests verify the HTTP layer using FastAPI's TestClient:
- Correct status codes (200, 400, 422, 503)
- Response JSON structure matches the Pydantic schemas
- Query parameter handling
- Error responses in the ErrorDetail format

Test Methodology:
    1. Override the service dependency with a service built on in-memory
       ledger and oracle doubles
    2. Make HTTP requests via TestClient
    3. Assert status codes and response structure
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from helpers import ACCOUNT, MIST_PER_SUI, SUI, FakeLedger, FakeOracle, raw_transaction
from wallet_history.dependencies import (
    get_ledger_source,
    get_portfolio_history_service,
    get_price_oracle,
)
from wallet_history.main import app
from wallet_history.services.circuit_breaker import CircuitBreakerOpen
from wallet_history.services.history import PortfolioHistoryService


# =============================================================================
# FIXTURES
# =============================================================================

def build_service(oracle: FakeOracle | None = None, **kwargs) -> PortfolioHistoryService:
    """Account holding 100 SUI, all received before any supported window."""
    received = datetime.now(timezone.utc) - timedelta(days=800)
    ledger = FakeLedger(
        incoming=[raw_transaction("0xold", received, [(ACCOUNT, SUI, 100 * MIST_PER_SUI)])],
        balance_mist=100 * MIST_PER_SUI,
    )
    return PortfolioHistoryService(
        ledger=ledger,
        oracle=oracle or FakeOracle(spot=Decimal("2"), default=Decimal("1.5")),
        **kwargs,
    )


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def use_service(service) -> None:
    app.dependency_overrides[get_portfolio_history_service] = lambda: service


def history_url(account: str = ACCOUNT) -> str:
    return f"/accounts/{account}/portfolio-history"


# =============================================================================
# SUCCESS CASES
# =============================================================================

class TestGetPortfolioHistory:
    """Tests for GET /accounts/{account}/portfolio-history."""

    def test_returns_series(self, client):
        """Should return an ascending series anchored at the current value."""
        use_service(build_service())

        response = client.get(history_url(), params={"timeframe": "week"})

        assert response.status_code == 200
        body = response.json()
        assert body["account"] == ACCOUNT
        assert body["timeframe"] == "week"
        assert body["asset"]["symbol"] == "SUI"
        assert body["reference_currency"] == "usd"
        assert Decimal(body["current_balance"]) == 100
        assert Decimal(body["current_value"]) == 200
        assert body["total_points"] == len(body["data"])

        timestamps = [point["timestamp"] for point in body["data"]]
        assert timestamps == sorted(timestamps)
        assert body["data"][-1]["kind"] == "current"
        assert body["data"][0]["kind"] == "boundary"
        assert body["data"][0]["is_estimate"] is False
        assert all(Decimal(p["balance"]) == 100 for p in body["data"])

    def test_default_timeframe_is_month(self, client):
        use_service(build_service())

        response = client.get(history_url())

        assert response.status_code == 200
        assert response.json()["timeframe"] == "month"

    def test_timeframe_is_case_insensitive(self, client):
        use_service(build_service())

        response = client.get(history_url(), params={"timeframe": "DAY"})

        assert response.json()["timeframe"] == "day"

    def test_supplied_balance_is_used(self, client):
        use_service(build_service())

        response = client.get(history_url(), params={"timeframe": "day", "balance": "40"})

        body = response.json()
        assert Decimal(body["current_balance"]) == 40
        assert Decimal(body["current_value"]) == 80

    def test_reports_data_quality(self, client):
        use_service(build_service())

        body = client.get(history_url(), params={"timeframe": "day"}).json()

        assert body["ledger_complete"] is True
        assert body["events_in_window"] == 0
        assert body["has_estimates"] is True
        assert body["price_lookups"]["upstream_calls"] >= 1
        assert isinstance(body["warnings"], list)

    def test_missing_prices_degrade_with_warning(self, client):
        use_service(build_service(oracle=FakeOracle(spot=Decimal("2"), default=None)))

        response = client.get(history_url(), params={"timeframe": "week"})

        assert response.status_code == 200
        body = response.json()
        assert all(Decimal(p["price"]) == 2 for p in body["data"])
        assert any("Historical prices unavailable" in w for w in body["warnings"])


# =============================================================================
# ERROR CASES
# =============================================================================

class TestErrorResponses:
    """Tests for error mapping."""

    def test_malformed_account(self, client):
        use_service(build_service())

        response = client.get(history_url("not-an-address"))

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "InvalidAccountError"
        assert body["details"]["field"] == "account"

    def test_unknown_timeframe(self, client):
        use_service(build_service())

        response = client.get(history_url(), params={"timeframe": "decade"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "InvalidTimeframeError"
        assert body["details"]["valid_options"] == ["day", "week", "month", "year"]

    @pytest.mark.parametrize("balance", ["0", "-5"])
    def test_non_positive_balance(self, client, balance):
        use_service(build_service())

        response = client.get(history_url(), params={"balance": balance})

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "current_balance"

    def test_non_numeric_balance_is_validation_error(self, client):
        use_service(build_service())

        response = client.get(history_url(), params={"balance": "lots"})

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "ValidationError"
        assert body["details"][0]["field"] == "query.balance"

    def test_unknown_network(self, client):
        def factory(network):
            raise ValueError(f"Unknown Sui network '{network}'")

        use_service(build_service(ledger_for_network=factory))

        response = client.get(history_url(), params={"network": "moon"})

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "network"

    def test_no_price_is_service_unavailable(self, client):
        use_service(build_service(oracle=FakeOracle(spot=None, default=None)))

        response = client.get(history_url())

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "UpstreamUnavailableError"
        assert body["details"]["upstream"] == "price"

    def test_open_circuit_sets_retry_after(self, client):
        service = MagicMock()
        service.get_portfolio_history = AsyncMock(side_effect=CircuitBreakerOpen("coingecko", 12.3))
        use_service(service)

        response = client.get(history_url())

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "13"
        assert response.json()["details"]["breaker_name"] == "coingecko"

    def test_unknown_route(self, client):
        response = client.get("/nope")

        assert response.status_code == 404
        assert response.json()["error"] == "HTTPException"


# =============================================================================
# HEALTH
# =============================================================================

class TestHealth:
    """Tests for the health endpoints."""

    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/docs"

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["ledger"]["critical"] is True
        assert "price:coingecko" in body["checks"]

    def test_open_provider_breaker_is_degraded(self, client):
        provider = get_price_oracle().providers[0]
        provider.circuit_breaker.force_open()

        try:
            response = client.get("/health")
        finally:
            provider.circuit_breaker.reset()

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    def test_open_ledger_breaker_is_unhealthy(self, client):
        breaker = get_ledger_source().circuit_breaker
        breaker.force_open()

        try:
            response = client.get("/health")
        finally:
            breaker.reset()

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["checks"]["ledger"]["circuit_breaker_state"] == "open"
