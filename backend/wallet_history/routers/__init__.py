# backend/wallet_history/routers/__init__.py
"""
API routers for the Wallet History service.

- portfolio: Account valuation history
- transactions: Account transaction list
- prices: Price charts
"""

from wallet_history.routers.portfolio import router as portfolio_router
from wallet_history.routers.prices import router as prices_router
from wallet_history.routers.transactions import router as transactions_router

__all__ = [
    "portfolio_router",
    "prices_router",
    "transactions_router",
]
