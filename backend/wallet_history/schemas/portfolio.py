# backend/wallet_history/schemas/portfolio.py
"""
Pydantic schemas for portfolio valuation history.

These schemas handle:
- Individual series points (value, balance and price at an instant)
- The history response with summary fields and data quality notes
"""

import datetime as dt
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# SERIES SCHEMAS
# =============================================================================

class PortfolioPointSchema(BaseModel):
    """A single point in the valuation series."""

    model_config = ConfigDict(from_attributes=True)

    timestamp: dt.datetime = Field(
        ...,
        description="UTC instant of the point"
    )
    value: Decimal = Field(
        ...,
        description="balance x price in the reference currency"
    )
    balance: Decimal = Field(
        ...,
        description="Asset quantity held (natural units)"
    )
    price: Decimal = Field(
        ...,
        description="Price per unit used for this point"
    )
    kind: Literal["current", "event", "boundary", "estimate"] = Field(
        ...,
        description="Origin of the point"
    )
    event_id: str | None = Field(
        default=None,
        description="Transaction digest for event points"
    )
    is_estimate: bool = Field(
        default=False,
        description="True if the balance is not backed by ledger data"
    )


class AssetSchema(BaseModel):
    """Tracked asset."""

    model_config = ConfigDict(from_attributes=True)

    symbol: str
    coin_type: str
    decimals: int


class PriceLookupSummary(BaseModel):
    """How historical prices were obtained for this response."""

    model_config = ConfigDict(from_attributes=True)

    hits: int = 0
    misses: int = 0
    fallbacks: int = 0
    upstream_calls: int = 0


# =============================================================================
# HISTORY RESPONSE
# =============================================================================

class PortfolioHistoryResponse(BaseModel):
    """Portfolio valuation history (time series)."""

    model_config = ConfigDict(from_attributes=True)

    account: str
    asset: AssetSchema
    reference_currency: str
    timeframe: Literal["day", "week", "month", "year"]
    from_timestamp: dt.datetime = Field(
        ...,
        description="Window start (cutoff)"
    )
    to_timestamp: dt.datetime = Field(
        ...,
        description="Window end (now)"
    )

    # Anchor
    current_balance: Decimal
    current_price: Decimal
    current_value: Decimal
    change: Decimal = Field(
        ...,
        description="Value change from the first point to now"
    )

    # Time series data
    data: list[PortfolioPointSchema]
    total_points: int

    # Data quality
    events_in_window: int = Field(
        default=0,
        description="Ledger events inside the window"
    )
    ledger_complete: bool = Field(
        default=True,
        description="False if the ledger read was truncated or partly failed"
    )
    has_estimates: bool = Field(
        default=False,
        description="True if any point is synthetic or estimated"
    )
    price_lookups: PriceLookupSummary | None = None
    warnings: list[str] = Field(
        default_factory=list,
        description="Warnings about data gaps or missing prices"
    )
