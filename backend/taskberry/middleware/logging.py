"""Structured request logging middleware."""

import time
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

# Probes hit these constantly; they are not worth a log line each
QUIET_PATHS = frozenset({"/api/health", "/api/health/ready"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """Binds request context for every log line and records the outcome."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=getattr(request.state, "request_id", "unknown"),
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown",
        )
        quiet = request.url.path in QUIET_PATHS

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception(
                "request_failed",
                error=str(exc),
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        if response.status_code >= 500:
            logger.error("request_completed", status_code=response.status_code, duration_ms=duration_ms)
        elif not quiet:
            logger.info("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers["X-Process-Time"] = str(duration_ms)
        return response
