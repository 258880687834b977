# backend/wallet_history/middleware/__init__.py
"""
ASGI middleware for the wallet history API.

Usage:
    from wallet_history.middleware import CorrelationIdMiddleware

    app.add_middleware(CorrelationIdMiddleware)
"""

from wallet_history.middleware.correlation import CorrelationIdMiddleware

__all__ = ["CorrelationIdMiddleware"]
