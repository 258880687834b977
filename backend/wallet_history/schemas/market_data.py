# backend/wallet_history/schemas/market_data.py
"""
Pydantic schemas for price charts.
"""

import datetime as dt
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PricePointSchema(BaseModel):
    """A single chart sample."""

    model_config = ConfigDict(from_attributes=True)

    timestamp: dt.datetime = Field(..., description="UTC instant of the sample")
    price: Decimal = Field(..., description="Price in the reference currency")


class PriceHistoryResponse(BaseModel):
    """Response for GET /prices/{symbol}/history."""

    symbol: str
    reference_currency: str
    timeframe: Literal["day", "week", "month", "year"]
    interval_seconds: int = Field(..., description="Spacing between samples")
    from_timestamp: dt.datetime
    to_timestamp: dt.datetime
    latest_price: Decimal | None = Field(default=None, description="Last sample's price")
    change: Decimal | None = Field(
        default=None,
        description="Last price minus first price"
    )
    data: list[PricePointSchema] = Field(default_factory=list, description="Oldest first")
    total_points: int
    cached: bool = Field(
        default=False,
        description="True if served from the short-lived chart cache"
    )
