# backend/wallet_history/services/protocols.py
"""
Protocol interfaces for the collaborators the services consume.

Using typing.Protocol enables structural subtyping:
- Concrete adapters satisfy protocols without inheriting from them
- Test doubles (AsyncMock, small fakes) work without explicit inheritance
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from wallet_history.services.ledger.types import Balance, Direction, LedgerPage
    from wallet_history.services.pricing.base import PricePoint


class LedgerSource(Protocol):
    """Paginated, direction-aware access to an account's transaction feed."""

    async def list_balance_events(
        self,
        account: str,
        direction: Direction,
        cursor: str | None = None,
        limit: int = 50,
    ) -> LedgerPage:
        ...

    async def get_balance(self, account: str, coin_type: str, decimals: int) -> Balance:
        ...


class PriceOracle(Protocol):
    """Spot and historical prices in the reference currency."""

    async def current_price(self, symbol: str) -> Decimal:
        ...

    async def price_near(self, symbol: str, timestamp: datetime) -> Decimal:
        ...


class PriceSeriesSource(Protocol):
    """Every price sample of a symbol within a time range."""

    async def price_series(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
    ) -> list[PricePoint]:
        ...
