"""
Common response DTOs shared across endpoints.

ErrorResponse  — error envelope produced by AppError.to_dict()
HealthResponse — GET /health
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorResponse(BaseModel):
    """Standard error JSON body produced by the AppError exception handler."""

    model_config = ConfigDict(populate_by_name=True)

    error: str
    code: str
    field: Optional[str] = None
    details: Optional[Any] = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    checks: dict[str, str]


# OpenAPI ``responses=`` entries for the statuses every gateway route can return
GATEWAY_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: {"model": ErrorResponse, "description": "Invalid key or unlinked account"},
    402: {"model": ErrorResponse, "description": "Subscription required"},
    403: {"model": ErrorResponse, "description": "Missing permission or re-auth needed"},
    404: {"model": ErrorResponse, "description": "Resource not found at provider"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    502: {"model": ErrorResponse, "description": "Provider call failed"},
}
