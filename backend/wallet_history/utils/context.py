# backend/wallet_history/utils/context.py
"""
Request context management for the wallet history service.

Holds request-scoped data (currently the correlation ID used for tracing)
in contextvars, so the value follows a request through every await and
every task it spawns with asyncio.gather.

Usage:
    from wallet_history.utils.context import get_correlation_id, set_correlation_id

    # In middleware
    set_correlation_id("abc-123")

    # In any service/handler
    correlation_id = get_correlation_id()  # Returns "abc-123"
"""

from contextvars import ContextVar

# =============================================================================
# CONTEXT VARIABLES
# =============================================================================

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


# =============================================================================
# CORRELATION ID
# =============================================================================

def get_correlation_id() -> str | None:
    """
    Get the current request's correlation ID.

    Returns:
        The correlation ID for the current request, or None if not set.
    """
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current request (called by middleware)."""
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID at the end of a request."""
    _correlation_id_var.set(None)
