# tests/routers/test_transactions_api.py
"""
API layer tests for the account transaction list endpoint.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from helpers import ACCOUNT, MIST_PER_SUI, NOW, OTHER_ACCOUNT, SUI, FakeLedger, raw_transaction
from wallet_history.dependencies import get_transaction_service
from wallet_history.main import app
from wallet_history.services.ledger.types import Direction
from wallet_history.services.transactions import AccountTransactionService


def sample_ledger() -> FakeLedger:
    sent = raw_transaction(
        "0xsent",
        NOW - timedelta(hours=2),
        [(ACCOUNT, SUI, -3 * MIST_PER_SUI), (OTHER_ACCOUNT, SUI, 3 * MIST_PER_SUI)],
        sender=ACCOUNT,
        status="success",
        gas=(1_000_000, 2_000_000, 1_000_000),
    )
    received = raw_transaction(
        "0xreceived",
        NOW - timedelta(hours=1),
        [(OTHER_ACCOUNT, SUI, -5 * MIST_PER_SUI), (ACCOUNT, SUI, 5 * MIST_PER_SUI)],
        sender=OTHER_ACCOUNT,
        status="success",
    )
    return FakeLedger(outgoing=[sent], incoming=[received])


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def use_service(service) -> None:
    app.dependency_overrides[get_transaction_service] = lambda: service


def transactions_url(account: str = ACCOUNT) -> str:
    return f"/accounts/{account}/transactions"


class TestListTransactions:
    """Tests for GET /accounts/{account}/transactions."""

    def test_returns_classified_transactions(self, client):
        use_service(AccountTransactionService(sample_ledger()))

        response = client.get(transactions_url())

        assert response.status_code == 200
        body = response.json()
        assert body["account"] == ACCOUNT
        assert body["total"] == 2
        assert body["complete"] is True

        received, sent = body["transactions"]
        assert received["digest"] == "0xreceived"
        assert received["kind"] == "receive"
        assert float(received["amount"]) == 5
        assert sent["kind"] == "send"
        assert sent["status"] == "success"
        assert sent["recipient"] == OTHER_ACCOUNT
        assert float(sent["amount"]) == -3
        assert float(sent["gas_fee"]) == 0.002
        assert len(sent["legs"]) == 2

    def test_limit(self, client):
        use_service(AccountTransactionService(sample_ledger()))

        body = client.get(transactions_url(), params={"limit": 1}).json()

        assert [t["digest"] for t in body["transactions"]] == ["0xreceived"]
        assert body["complete"] is False

    def test_partial_list_has_warnings(self, client):
        ledger = sample_ledger()
        ledger.fail_directions.add(Direction.INCOMING)
        use_service(AccountTransactionService(ledger))

        response = client.get(transactions_url())

        assert response.status_code == 200
        body = response.json()
        assert [t["digest"] for t in body["transactions"]] == ["0xsent"]
        assert body["warnings"]


class TestTransactionErrors:
    """Tests for error mapping."""

    def test_malformed_account(self, client):
        use_service(AccountTransactionService(FakeLedger()))

        response = client.get(transactions_url("0xnothex"))

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "account"

    @pytest.mark.parametrize("limit", ["0", "501"])
    def test_limit_out_of_range(self, client, limit):
        use_service(AccountTransactionService(FakeLedger()))

        response = client.get(transactions_url(), params={"limit": limit})

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "limit"

    def test_non_numeric_limit_is_validation_error(self, client):
        use_service(AccountTransactionService(FakeLedger()))

        response = client.get(transactions_url(), params={"limit": "all"})

        assert response.status_code == 422
        assert response.json()["details"][0]["field"] == "query.limit"
