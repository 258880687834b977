# backend/wallet_history/routers/portfolio.py
"""
Portfolio history endpoints.

Provides the valuation history of a single account:
- GET /accounts/{account}/portfolio-history - Time series for charts

The router only parses the request and maps the internal result to the
response schema. Domain exceptions propagate to the global handlers in
main.py.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends, Path, Query

from wallet_history.config import settings
from wallet_history.dependencies import get_portfolio_history_service
from wallet_history.schemas.portfolio import (
    AssetSchema,
    PortfolioHistoryResponse,
    PortfolioPointSchema,
    PriceLookupSummary,
)
from wallet_history.services.history import PortfolioHistory, PortfolioHistoryService, PortfolioPoint

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(
    prefix="/accounts",
    tags=["Portfolio"],
)


# =============================================================================
# MAPPER FUNCTIONS (Internal Types -> Pydantic Schemas)
# =============================================================================

def _map_point(point: PortfolioPoint) -> PortfolioPointSchema:
    """Map internal PortfolioPoint to Pydantic schema."""
    return PortfolioPointSchema(
        timestamp=point.timestamp,
        value=point.value,
        balance=point.balance,
        price=point.price,
        kind=point.kind.value,
        event_id=point.event_id,
        is_estimate=point.is_estimate,
    )


def _map_history(history: PortfolioHistory) -> PortfolioHistoryResponse:
    stats = history.price_stats
    return PortfolioHistoryResponse(
        account=history.account,
        asset=AssetSchema(
            symbol=history.asset.symbol,
            coin_type=history.asset.coin_type,
            decimals=history.asset.decimals,
        ),
        reference_currency=settings.reference_currency,
        timeframe=history.timeframe.value,
        from_timestamp=history.window.cutoff,
        to_timestamp=history.window.now,
        current_balance=history.current_balance,
        current_price=history.current_price,
        current_value=history.current_value,
        change=history.change,
        data=[_map_point(p) for p in history.points],
        total_points=len(history.points),
        events_in_window=history.events_in_window,
        ledger_complete=history.ledger_complete,
        has_estimates=history.has_estimates,
        price_lookups=PriceLookupSummary(
            hits=stats.hits,
            misses=stats.misses,
            fallbacks=stats.fallbacks,
            upstream_calls=stats.upstream_calls,
        ) if stats is not None else None,
        warnings=history.warnings,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get(
    "/{account}/portfolio-history",
    response_model=PortfolioHistoryResponse,
    summary="Get portfolio valuation history",
    response_description="Time series of the account's valuation",
)
async def get_portfolio_history(
        account: str = Path(
            ...,
            description="Sui address (0x-prefixed hex)"
        ),
        timeframe: str = Query(
            default="month",
            description="Lookback: day, week, month, year"
        ),
        balance: Decimal | None = Query(
            default=None,
            description="Current holding in natural units (fetched from the ledger if omitted)"
        ),
        network: str | None = Query(
            default=None,
            description="Sui network override: mainnet, testnet, devnet"
        ),
        service: PortfolioHistoryService = Depends(get_portfolio_history_service),
) -> PortfolioHistoryResponse:
    """
    Get the valuation history of an account for charting.

    The series is anchored at the current balance and price and
    reconstructed backward through the account's ledger:

    - One point per balance-changing transaction in the window
    - A boundary point at the start of the window
    - Estimated points where the ledger is sparse (`is_estimate`)

    Upstream hiccups degrade the series and add `warnings` instead of
    failing. Raises **400** on a malformed account, unknown timeframe or
    non-positive balance, and **503** if no current balance or price can be
    obtained.
    """
    history = await service.get_portfolio_history(
        account,
        current_balance=balance,
        timeframe=timeframe,
        network=network,
    )
    return _map_history(history)
