# backend/wallet_history/middleware/correlation.py
"""
Correlation ID middleware for request tracing.

Correlation ID sources (in order of precedence):
1. X-Correlation-ID header (from client or upstream service)
2. X-Request-ID header
3. Generated UUID if neither header is present

The ID is stored in the request context for the duration of the request,
so log lines emitted by concurrent ledger and price fetches carry it too,
and is echoed back in the X-Correlation-ID response header.

Client Usage:
    curl -H "X-Correlation-ID: my-trace-123" \
        "http://localhost:8000/accounts/0x2/portfolio-history?timeframe=day"
"""

import logging
import uuid
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from wallet_history.utils.context import clear_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

# Incoming IDs longer than this are replaced with a fresh UUID
MAX_CORRELATION_ID_LENGTH = 128


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Extracts or generates a correlation ID and exposes it to the request."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = self._get_correlation_id(request)
        set_correlation_id(correlation_id)

        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()

    def _get_correlation_id(self, request: Request) -> str:
        """Return the first usable header value, or a new UUID."""
        for header in (CORRELATION_ID_HEADER, REQUEST_ID_HEADER):
            value = request.headers.get(header)
            if value and len(value) <= MAX_CORRELATION_ID_LENGTH:
                return value
            if value:
                logger.debug(f"Ignoring oversized {header} header ({len(value)} chars)")

        return str(uuid.uuid4())
