"""
Logging Middleware for Correlation ID and Request Tracking

Generates or extracts a correlation ID for every request so that search,
cache and index log lines of one request can be joined.
"""

import time
import uuid
from typing import Callable, FrozenSet, Iterable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from structlog.contextvars import bind_contextvars, clear_contextvars

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"

# Probed every few seconds by orchestrators; logged at debug only
QUIET_PATHS = frozenset({"/health", "/"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to inject correlation IDs and request context into all logs.

    - Accepts correlation_id from X-Correlation-ID header or generates one
    - Binds correlation_id, method and path to structlog contextvars so the
      coordinator's cache hit/miss lines carry them
    - Echoes correlation_id and the handling time in the response headers
    - Health probes are logged at debug level
    """

    def __init__(self, app, quiet_paths: Iterable[str] = QUIET_PATHS):
        super().__init__(app)
        self.quiet_paths: FrozenSet[str] = frozenset(quiet_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_contextvars()

        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        path = request.url.path
        bind_contextvars(
            correlation_id=correlation_id,
            request_method=request.method,
            request_path=path,
            client_ip=request.client.host if request.client else "unknown",
        )
        log = logger.debug if path in self.quiet_paths else logger.info

        started = time.perf_counter()
        log("request_started", query_params=dict(request.query_params))

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=self._elapsed_ms(started),
                exc_info=True,
            )
            clear_contextvars()
            raise

        duration_ms = self._elapsed_ms(started)
        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers[RESPONSE_TIME_HEADER] = str(duration_ms)
        if response.status_code >= 500:
            logger.warning("request_completed", status_code=response.status_code, duration_ms=duration_ms)
        else:
            log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        clear_contextvars()
        return response

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)
