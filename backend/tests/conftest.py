# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

Test data factories and in-memory doubles live in helpers.py.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("APP_NAME", "Test App")

from datetime import datetime
from decimal import Decimal

import pytest

from helpers import NOW, FakeOracle


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def oracle() -> FakeOracle:
    """Oracle with a 2.0 spot price and 1.5 for every historical day."""
    return FakeOracle(spot=Decimal("2"), default=Decimal("1.5"))
