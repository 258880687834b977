# backend/wallet_history/utils/__init__.py
"""
Cross-cutting utilities for the wallet history service.

- logging: Logging configuration with correlation ID support
- context: Request context (correlation IDs)
- time_utils: UTC instants, epoch conversion and day buckets

Usage:
    from wallet_history.utils import setup_logging, get_logger
    from wallet_history.utils import get_correlation_id, set_correlation_id
    from wallet_history.utils.time_utils import day_bucket
"""

from wallet_history.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
)
from wallet_history.utils.logging import setup_logging, get_logger

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    # Context
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
]
