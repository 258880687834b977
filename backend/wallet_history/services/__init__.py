# backend/wallet_history/services/__init__.py
"""
Service layer.

Subpackages:
    ledger/   - Sui ledger adapter, pagination and event normalization
    pricing/  - Price oracle adapters and the historical price cache
    history/  - Timeframe windowing, replay engine and orchestration

Services raise the domain exceptions defined in services.exceptions and
never reference HTTP.
"""

from wallet_history.services.exceptions import (
    CircuitBreakerOpen,
    InvalidInputError,
    ServiceError,
    UpstreamUnavailableError,
)

__all__ = [
    "CircuitBreakerOpen",
    "InvalidInputError",
    "ServiceError",
    "UpstreamUnavailableError",
]
