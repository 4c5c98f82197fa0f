"""
HTTP request logging middleware.

One structured log line per request. The request id is bound to the structlog
context so the payment gate and route handlers log under the same id, and it
is echoed back in ``X-Request-Id``.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..core.wallet.authorization import PAYMENT_HEADER

logger = structlog.stdlib.get_logger("http")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with timing, status and whether they carried a payment."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers.setdefault("x-request-id", request_id)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 1)

            # 402 is the normal first leg of a paid request, not a client error.
            if status_code >= 500:
                log = logger.error
            elif status_code >= 400 and status_code != 402:
                log = logger.warning
            else:
                log = logger.info

            log(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=duration_ms,
                paid=PAYMENT_HEADER.lower() in request.headers,
                client=request.client.host if request.client else None,
            )
