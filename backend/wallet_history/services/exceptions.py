# backend/wallet_history/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
The router layer is responsible for mapping these to appropriate HTTP responses.

Exception Hierarchy:
    ServiceError (base)
    ├── InvalidInputError
    │   ├── InvalidAccountError
    │   ├── InvalidAssetError
    │   ├── InvalidTimeframeError
    │   └── InvalidBalanceError
    ├── UpstreamUnavailableError
    │   └── LedgerUnavailableError
    └── PriceOracleError
        ├── ProviderUnavailableError
        ├── RateLimitError
        └── PriceNotFoundError

    CircuitBreakerOpen (from circuit_breaker module)
        - Raised when circuit breaker is open and blocking requests

"No history" (a ledger with zero events) is deliberately not an exception:
the replay returns a synthetic series instead.
"""

from wallet_history.services.circuit_breaker import CircuitBreakerOpen


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# INVALID INPUT ERRORS
# =============================================================================


class InvalidInputError(ServiceError):
    """
    Raised when a request is structurally invalid.

    Fails fast and is surfaced to the caller verbatim, so callers can tell
    "bad request" apart from "no data".

    Attributes:
        field: The input that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidAccountError(InvalidInputError):
    """Raised when an account identifier is empty or malformed."""

    def __init__(self, account: str | None) -> None:
        self.account = account
        super().__init__(
            f"Invalid account identifier: {account!r}. "
            "Expected a 0x-prefixed hexadecimal address",
            field="account",
        )


class InvalidAssetError(InvalidInputError):
    """Raised when the tracked asset is unspecified (no symbol or coin type)."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid asset: {reason}", field="asset")


class InvalidTimeframeError(InvalidInputError):
    """
    Raised when an unrecognized timeframe is requested.

    Valid timeframes are: day, week, month, year
    """

    VALID_OPTIONS = ("day", "week", "month", "year")

    def __init__(self, timeframe: object) -> None:
        self.timeframe = timeframe
        super().__init__(
            f"Invalid timeframe: {timeframe!r}. "
            f"Valid options: {', '.join(self.VALID_OPTIONS)}",
            field="timeframe",
        )


class InvalidBalanceError(InvalidInputError):
    """Raised when the supplied current balance is negative or non-positive."""

    def __init__(self, balance: object, reason: str = "must be positive") -> None:
        self.balance = balance
        super().__init__(
            f"Invalid current balance {balance}: {reason}",
            field="current_balance",
        )


# =============================================================================
# UPSTREAM ERRORS
# =============================================================================


class UpstreamUnavailableError(ServiceError):
    """
    Raised when an upstream needed to anchor the series is unreachable.

    Only surfaced when there is no current balance or current price at all;
    every other upstream failure is absorbed and degraded locally.

    Attributes:
        upstream: Name of the unreachable collaborator ("ledger", "price")
        reason: Underlying failure description
    """

    def __init__(self, upstream: str, reason: str) -> None:
        self.upstream = upstream
        self.reason = reason
        super().__init__(f"Upstream '{upstream}' unavailable: {reason}")


class LedgerUnavailableError(UpstreamUnavailableError):
    """
    Raised by the ledger adapter on RPC, HTTP or network failures.

    Attributes:
        method: JSON-RPC method that failed (optional)
        retryable: False for permanent failures such as JSON-RPC errors
    """

    def __init__(self, reason: str, method: str | None = None, retryable: bool = True) -> None:
        self.method = method
        self.retryable = retryable
        upstream = f"ledger:{method}" if method else "ledger"
        super().__init__(upstream, reason)


# =============================================================================
# PRICE ORACLE ERRORS
# =============================================================================


class PriceOracleError(ServiceError):
    """
    Base exception for price oracle errors.

    Attributes:
        provider: Name of the provider that raised the error
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderUnavailableError(PriceOracleError):
    """
    Raised when a price provider is temporarily unavailable.

    Covers network errors, timeouts and 5xx responses. This error is
    retryable.
    """

    def __init__(self, provider: str, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Provider '{provider}' unavailable: {reason}", provider)


class RateLimitError(PriceOracleError):
    """
    Raised when a provider rate limit is exceeded.

    This error is retryable after waiting.

    Attributes:
        retry_after: Seconds to wait before retrying (if known)
    """

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        self.retry_after = retry_after
        message = f"Rate limit exceeded for provider '{provider}'"
        if retry_after:
            message += f". Retry after {retry_after} seconds"
        super().__init__(message, provider)


class PriceNotFoundError(PriceOracleError):
    """
    Raised when a provider has no price for the symbol or instant.

    This is a permanent failure for that request and is not retried.
    """

    def __init__(self, symbol: str, provider: str, detail: str | None = None) -> None:
        self.symbol = symbol
        message = f"No price for '{symbol}' from provider '{provider}'"
        if detail:
            message += f": {detail}"
        super().__init__(message, provider)


__all__ = [
    "ServiceError",
    "InvalidInputError",
    "InvalidAccountError",
    "InvalidAssetError",
    "InvalidTimeframeError",
    "InvalidBalanceError",
    "UpstreamUnavailableError",
    "LedgerUnavailableError",
    "PriceOracleError",
    "ProviderUnavailableError",
    "RateLimitError",
    "PriceNotFoundError",
    "CircuitBreakerOpen",
]
