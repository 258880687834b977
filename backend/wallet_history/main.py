# backend/wallet_history/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application
- Registers global exception handlers
- Registers all routers
- Defines global endpoints (health checks)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from wallet_history import __version__
from wallet_history.config import settings
from wallet_history.dependencies import (
    close_upstream_clients,
    get_ledger_source,
    get_price_oracle,
)
from wallet_history.middleware import CorrelationIdMiddleware
from wallet_history.routers import portfolio_router, prices_router, transactions_router
from wallet_history.schemas.errors import (
    BreakerErrorDetails,
    ErrorDetail,
    FieldErrorDetails,
    UpstreamErrorDetails,
    ValidationErrorDetail,
    ValidationIssue,
)
from wallet_history.services.circuit_breaker import CircuitBreaker
from wallet_history.services.exceptions import (
    CircuitBreakerOpen,
    InvalidInputError,
    InvalidTimeframeError,
    ServiceError,
    UpstreamUnavailableError,
)
from wallet_history.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()


# =============================================================================
# APPLICATION SETUP
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_upstream_clients()


app = FastAPI(
    title=settings.app_name,
    description="Portfolio valuation history for Sui wallets",
    version=__version__,
    lifespan=lifespan,
)


# =============================================================================
# CORS MIDDLEWARE
# =============================================================================
# Origins are configured via CORS_ORIGINS environment variable

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Correlation ID tracking for request tracing (last added = first executed)
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# These handlers catch service-layer exceptions and convert them to
# consistent HTTP responses.
# =============================================================================

@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    """Handle malformed account, timeframe, balance or network (400)."""
    logger.warning(f"Invalid input: {exc}")
    details = None
    if exc.field:
        details = FieldErrorDetails(
            field=exc.field,
            valid_options=(
                list(InvalidTimeframeError.VALID_OPTIONS)
                if isinstance(exc, InvalidTimeframeError) else None
            ),
        )
    return JSONResponse(
        status_code=400,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details=details,
        ).model_dump(),
    )


@app.exception_handler(UpstreamUnavailableError)
async def upstream_unavailable_handler(
    request: Request, exc: UpstreamUnavailableError
) -> JSONResponse:
    """Handle a missing balance or price anchor (503)."""
    logger.error(f"Upstream unavailable: {exc}")
    return JSONResponse(
        status_code=503,
        content=ErrorDetail(
            error="UpstreamUnavailableError",
            message=str(exc),
            details=UpstreamErrorDetails(upstream=exc.upstream),
        ).model_dump(),
    )


@app.exception_handler(CircuitBreakerOpen)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """Handle circuit breaker open (503 with Retry-After)."""
    logger.warning(f"Circuit breaker open: {exc.breaker_name}")
    retry_after = int(exc.time_remaining) + 1  # Round up
    return JSONResponse(
        status_code=503,
        content=ErrorDetail(
            error="CircuitBreakerOpen",
            message=f"Service temporarily unavailable. The {exc.breaker_name} circuit breaker is open.",
            details=BreakerErrorDetails(
                breaker_name=exc.breaker_name,
                retry_after=retry_after,
            ),
        ).model_dump(),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle generic service errors (500)."""
    logger.error(f"Service error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorDetail(
            error="ServiceError",
            message=str(exc),
            details=None,
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPExceptions (e.g. 404 for unknown routes) as ErrorDetail."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(
            error="HTTPException",
            message=str(exc.detail) if exc.detail else "An error occurred",
            details=None,
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request validation errors with consistent format.

    Converts the default 422 validation error to our ValidationErrorDetail format.
    """
    errors = [
        ValidationIssue(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            type=error["type"],
        )
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(
            error="ValidationError",
            message="Request validation failed",
            details=errors,
        ).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(portfolio_router)  # /accounts/{account}/portfolio-history
app.include_router(transactions_router)  # /accounts/{account}/transactions
app.include_router(prices_router)  # /prices/{symbol}/history


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
def root():
    """
    API root - returns basic application info.
    """
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
        "redoc": "/redoc",
    }


def _breaker_check(breaker: CircuitBreaker) -> dict:
    stats = breaker.stats
    return {
        "status": "unhealthy" if breaker.is_open else "healthy",
        "circuit_breaker_state": breaker.state.value,
        "total_calls": stats.total_calls,
        "failed_calls": stats.failed_calls,
        "rejected_calls": stats.rejected_calls,
    }


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Reports the circuit breaker state of every upstream. The service can
    still answer while price providers are down (it degrades), so an open
    provider breaker only marks the service "degraded"; an open ledger
    breaker marks it "unhealthy" and returns 503.
    """
    checks = {}
    overall_status = "healthy"

    ledger = get_ledger_source()
    checks["ledger"] = {**_breaker_check(ledger.circuit_breaker), "critical": True}
    if ledger.circuit_breaker.is_open:
        overall_status = "unhealthy"

    providers = get_price_oracle().providers
    for provider in providers:
        checks[f"price:{provider.name}"] = {
            **_breaker_check(provider.circuit_breaker),
            "critical": False,
        }
    if overall_status == "healthy" and any(p.circuit_breaker.is_open for p in providers):
        overall_status = "degraded"

    response_data = {
        "status": overall_status,
        "version": __version__,
        "network": settings.sui_network,
        "checks": checks,
    }

    if overall_status == "unhealthy":
        return JSONResponse(status_code=503, content=response_data)
    return response_data


@app.get("/health/live", tags=["Health"])
def liveness_check():
    """
    Liveness probe endpoint.

    Returns HTTP 200 if the application is running. Does NOT check
    upstreams - use /health for that.
    """
    return {"status": "alive"}
