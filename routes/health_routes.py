"""
Health check endpoint.

GET /health reports:
- mongodb: required; a failed ping makes the service "unhealthy" (503)
- redis: optional; absent or failing makes it "degraded" (200), since refresh
  locking falls back to in-process and rate limiting turns off
- billing: informational; unconfigured billing fails open
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from schemas.dto.responses.common import HealthResponse
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["System"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> JSONResponse:
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        await request.app.state.db.client.admin.command("ping")
        checks["mongodb"] = "ok"
    except Exception as e:
        log.error("health_mongodb_failed", error=str(e), error_type=type(e).__name__)
        checks["mongodb"] = "error"
        overall = "unhealthy"

    redis = request.app.state.redis
    if redis is None:
        checks["redis"] = "not_configured"
        if overall == "healthy":
            overall = "degraded"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as e:
            log.warning("health_redis_failed", error=str(e), error_type=type(e).__name__)
            checks["redis"] = "error"
            if overall == "healthy":
                overall = "degraded"

    settings = request.app.state.settings
    checks["billing"] = (
        "configured" if settings.billing.autumn_secret_key else "not_configured"
    )

    return JSONResponse(
        status_code=503 if overall == "unhealthy" else 200,
        content=HealthResponse(status=overall, checks=checks).model_dump(),
    )
