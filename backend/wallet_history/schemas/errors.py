# backend/wallet_history/schemas/errors.py
"""
Pydantic schemas for error responses.

Every non-2xx response carries an ErrorDetail. `details` depends on the
error family:

    | Status | error                     | details                       |
    |--------|---------------------------|-------------------------------|
    | 400    | InvalidAccountError, ...  | FieldErrorDetails             |
    | 503    | UpstreamUnavailableError  | UpstreamErrorDetails          |
    | 503    | CircuitBreakerOpen        | BreakerErrorDetails           |
    | 422    | ValidationError           | list of ValidationIssue       |

Used by the global exception handlers in main.py.
"""

from pydantic import BaseModel, ConfigDict, Field


class FieldErrorDetails(BaseModel):
    """Which request input was rejected."""

    field: str = Field(
        ...,
        description="Offending input: account, timeframe, current_balance, network, limit, symbol, asset",
        examples=["account"],
    )
    valid_options: list[str] | None = Field(
        default=None,
        description="Accepted values, for enumerated inputs such as timeframe",
        examples=[["day", "week", "month", "year"]],
    )


class UpstreamErrorDetails(BaseModel):
    """Which anchor could not be obtained."""

    upstream: str = Field(
        ...,
        description="'price', 'ledger' or 'ledger:<rpc method>'",
        examples=["price", "ledger:suix_getBalance"],
    )


class BreakerErrorDetails(BaseModel):
    """An upstream is being short-circuited after repeated failures."""

    breaker_name: str = Field(..., examples=["coingecko"])
    retry_after: int = Field(..., description="Seconds until the breaker half-opens")


class ErrorDetail(BaseModel):
    """Standard error response format."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "error": "InvalidAccountError",
                    "message": "Invalid account identifier: '0x12z'. Expected a 0x-prefixed hexadecimal address",
                    "details": {"field": "account"},
                },
                {
                    "error": "UpstreamUnavailableError",
                    "message": "Upstream 'price' unavailable: spot: timed out after 10.0s; "
                               "historical: timed out after 10.0s",
                    "details": {"upstream": "price"},
                },
            ]
        }
    )

    error: str = Field(
        ...,
        description="Exception class name (e.g. 'InvalidTimeframeError')"
    )
    message: str = Field(
        ...,
        description="Human-readable error message"
    )
    details: FieldErrorDetails | UpstreamErrorDetails | BreakerErrorDetails | None = Field(
        default=None,
        description="Error-family specific context"
    )


class ValidationIssue(BaseModel):
    """One failed constraint on a query or path parameter."""

    field: str = Field(..., examples=["query.limit"])
    message: str
    type: str = Field(..., examples=["int_parsing"])


class ValidationErrorDetail(BaseModel):
    """Request validation error (422) format."""

    error: str = Field(default="ValidationError")
    message: str = Field(default="Request validation failed")
    details: list[ValidationIssue] = Field(
        ...,
        description="One entry per rejected parameter"
    )
