"""
Request logging middleware.

Provides:
- A request ID per request, bound into structlog contextvars and echoed
  back as ``X-Request-ID``
- One ``request_completed`` line per request with status and timing
"""

import time
import uuid

import structlog
from fastapi import FastAPI, Request

from shared.logging import get_logger

log = get_logger("workspace.request")

REQUEST_ID_HEADER = "X-Request-ID"


def generate_request_id() -> str:
    """Generate a unique request ID for correlation."""
    return f"req_{uuid.uuid4().hex[:12]}"


def setup_logging_middleware(app: FastAPI) -> None:
    """Register request-scoped logging context on *app*."""

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        start = time.perf_counter()
        request_id = generate_request_id()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)

        status_code = response.status_code
        if status_code >= 500:
            log_fn = log.error
        elif status_code >= 400:
            log_fn = log.warning
        else:
            log_fn = log.info
        log_fn("request_completed", status_code=status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        structlog.contextvars.clear_contextvars()
        return response
