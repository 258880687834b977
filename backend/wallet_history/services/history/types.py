# backend/wallet_history/services/history/types.py
"""
Internal data types for the portfolio history service.

These dataclasses are used internally by the windower, replay engine and
service. They are NOT Pydantic schemas - those are defined in
wallet_history/schemas/portfolio.py for API serialization.

Design Principles:
- Immutable where possible (frozen=True for value objects)
- Use Decimal for ALL financial values (never float)
- Use aware UTC datetimes for ALL instants
- Warnings accumulate for data quality tracking

Type Hierarchy:
    Timeframe          - day | week | month | year
    TimeframePolicy    - Lookback and gap-filling constants for a timeframe
    TimeframeWindow    - A policy resolved against a concrete "now"
    PortfolioPoint     - Single point of the valuation series
    ReplayResult       - Replay output plus diagnostics
    PortfolioHistory   - Complete result returned to callers
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from wallet_history.services.exceptions import InvalidTimeframeError

if TYPE_CHECKING:
    from wallet_history.services.ledger.types import Asset
    from wallet_history.services.pricing.cache import PriceLookupStats


# =============================================================================
# TIMEFRAMES
# =============================================================================

class Timeframe(str, Enum):
    """Symbolic lookback requested by the caller."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @classmethod
    def parse(cls, value: Timeframe | str) -> Timeframe:
        """
        Parse a timeframe name (case-insensitive).

        Raises:
            InvalidTimeframeError: If the value is not a known timeframe
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidTimeframeError(value)


@dataclass(frozen=True)
class TimeframePolicy:
    """
    Policy constants for one timeframe.

    Attributes:
        lookback: How far back the series reaches (cutoff = now - lookback)
        gap_interval: Spacing of synthetic points when the ledger is sparse
        max_synthetic_points: Upper bound on synthetic points
        max_ledger_events: Transaction budget when reading the ledger
    """

    lookback: timedelta
    gap_interval: timedelta
    max_synthetic_points: int
    max_ledger_events: int

    def __post_init__(self) -> None:
        if self.lookback <= timedelta(0):
            raise ValueError("lookback must be positive")
        if self.gap_interval <= timedelta(0):
            raise ValueError("gap_interval must be positive")
        if self.max_synthetic_points < 0:
            raise ValueError("max_synthetic_points cannot be negative")
        if self.max_ledger_events < 1:
            raise ValueError("max_ledger_events must be at least 1")


@dataclass(frozen=True)
class TimeframeWindow:
    """A timeframe policy anchored at a concrete instant."""

    timeframe: Timeframe
    now: datetime
    cutoff: datetime
    gap_interval: timedelta
    max_synthetic_points: int
    max_ledger_events: int

    @property
    def lookback(self) -> timedelta:
        return self.now - self.cutoff


# =============================================================================
# SERIES POINTS
# =============================================================================

class PointKind(str, Enum):
    """Where a series point came from."""
    CURRENT = "current"      # Anchor at "now"
    EVENT = "event"          # Replayed ledger event
    BOUNDARY = "boundary"    # Left anchor at the cutoff
    ESTIMATE = "estimate"    # Synthetic gap-filling point

    @property
    def sort_rank(self) -> int:
        """Tie-break order for points sharing a timestamp."""
        return _SORT_RANK[self]


_SORT_RANK = {
    PointKind.BOUNDARY: 0,
    PointKind.ESTIMATE: 1,
    PointKind.EVENT: 2,
    PointKind.CURRENT: 3,
}


class PointAlignment(str, Enum):
    """
    Which balance an event point reports.

    BEFORE_EVENT: the balance that held up to the event (value at the event
        timestamp equals balance-before-event x price)
    AFTER_EVENT: the balance immediately after applying the event
    """
    BEFORE_EVENT = "before_event"
    AFTER_EVENT = "after_event"


@dataclass(frozen=True)
class PortfolioPoint:
    """
    One point of the valuation series.

    Attributes:
        timestamp: Aware UTC instant
        value: balance x price in the reference currency
        balance: Asset quantity the value was computed from
        price: Price used (reference currency per unit)
        kind: Origin of the point
        event_id: Ledger event identifier for EVENT points
        estimated: True if the balance is not backed by ledger data
    """

    timestamp: datetime
    value: Decimal
    balance: Decimal
    price: Decimal
    kind: PointKind
    event_id: str | None = None
    estimated: bool = False

    @property
    def is_estimate(self) -> bool:
        return self.estimated or self.kind == PointKind.ESTIMATE

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return self.timestamp, self.kind.sort_rank


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class ReplayResult:
    """
    Output of one replay invocation.

    Attributes:
        points: Series sorted ascending by timestamp
        baseline_balance: Balance before the cutoff (sum of pre-cutoff deltas)
        oldest_balance: Running balance after undoing every accepted window event
        replayed_event_count: Window events that produced a point
        skipped_event_ids: Events ignored because undoing them went negative
        synthetic_count: Number of ESTIMATE points added
        warnings: Data quality notes
    """

    points: list[PortfolioPoint]
    baseline_balance: Decimal
    oldest_balance: Decimal
    replayed_event_count: int = 0
    skipped_event_ids: list[str] = field(default_factory=list)
    synthetic_count: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def values(self) -> list[Decimal]:
        return [p.value for p in self.points]

    @property
    def has_estimates(self) -> bool:
        return any(p.is_estimate for p in self.points)


@dataclass
class PortfolioHistory:
    """
    Portfolio valuation history for one account.

    Attributes:
        account: Canonical account address
        asset: Tracked asset
        window: Timeframe window the series covers
        current_balance: Balance used as the "now" anchor
        current_price: Spot price used as the "now" anchor
        points: Series sorted ascending by timestamp
        events_in_window: Ledger events replayed or skipped inside the window
        ledger_complete: False if the ledger read was truncated or failed
        price_stats: How historical prices were obtained
        warnings: Data quality notes for the UI
    """

    account: str
    asset: Asset
    window: TimeframeWindow
    current_balance: Decimal
    current_price: Decimal
    points: list[PortfolioPoint]
    events_in_window: int = 0
    ledger_complete: bool = True
    price_stats: PriceLookupStats | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def timeframe(self) -> Timeframe:
        return self.window.timeframe

    @property
    def current_value(self) -> Decimal:
        return self.current_balance * self.current_price

    @property
    def has_estimates(self) -> bool:
        return any(p.is_estimate for p in self.points)

    @property
    def start_value(self) -> Decimal:
        return self.points[0].value if self.points else Decimal("0")

    @property
    def change(self) -> Decimal:
        """Absolute value change across the series."""
        return self.current_value - self.start_value
