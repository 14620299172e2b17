"""
Request Logging & Correlation ID Middleware

Tracks requests across the gateway and the module market with unique
correlation IDs, and logs every request/response pair.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import time
import uuid
import structlog
from typing import Callable

logger = structlog.get_logger("request")

CORRELATION_HEADER = "X-Correlation-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all requests and attach a correlation ID

    Features:
    - Accepts existing ID from X-Correlation-ID header, otherwise generates one
    - Binds ID, method and path to the structlog context
    - Adds X-Correlation-ID and X-Process-Time to response headers
    """

    async def dispatch(self, request: Request, call_next: Callable):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            path=request.url.path,
            method=request.method
        )

        start_time = time.perf_counter()
        logger.info(
            "Incoming request",
            client_ip=request.client.host if request.client else None,
        )

        response = await call_next(request)

        process_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info(
            "Outgoing response",
            status_code=response.status_code,
            process_time_ms=process_time_ms,
        )

        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers["X-Process-Time"] = str(process_time_ms)
        return response
