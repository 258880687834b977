# backend/wallet_history/routers/prices.py
"""
Price chart endpoints.

- GET /prices/{symbol}/history - Price series over a timeframe
"""

from fastapi import APIRouter, Depends, Path, Query

from wallet_history.config import settings
from wallet_history.dependencies import get_price_history_service
from wallet_history.schemas.market_data import PriceHistoryResponse, PricePointSchema
from wallet_history.services.market_data import PriceHistory, PriceHistoryService

router = APIRouter(
    prefix="/prices",
    tags=["Prices"],
)


def _map_history(history: PriceHistory) -> PriceHistoryResponse:
    """Map internal PriceHistory to Pydantic schema."""
    return PriceHistoryResponse(
        symbol=history.symbol,
        reference_currency=settings.reference_currency,
        timeframe=history.timeframe.value,
        interval_seconds=int(history.interval.total_seconds()),
        from_timestamp=history.start,
        to_timestamp=history.end,
        latest_price=history.latest_price,
        change=history.change,
        data=[PricePointSchema(timestamp=p.timestamp, price=p.price) for p in history.points],
        total_points=len(history.points),
        cached=history.cached,
    )


@router.get(
    "/{symbol}/history",
    response_model=PriceHistoryResponse,
    summary="Get price history",
)
async def get_price_history(
        symbol: str = Path(..., description="Asset symbol, e.g. SUI"),
        timeframe: str = Query(
            default="month",
            description="Lookback: day, week, month, year"
        ),
        service: PriceHistoryService = Depends(get_price_history_service),
) -> PriceHistoryResponse:
    """
    Get a price chart for `symbol`.

    Samples are hourly for a day and daily for longer timeframes. Raises
    **400** on an unknown timeframe and **503** if no provider can supply
    a series.
    """
    history = await service.get_price_history(symbol, timeframe)
    return _map_history(history)
