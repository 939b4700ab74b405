"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to the uniform JSON envelope:

    {"error": "<human message>", "code": "<machine code>", ...}

Non-AppError exceptions bubble up as 500s (with Sentry reporting in production).
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class InvalidKeyError(AuthenticationError):
    error_code = "invalid_key"


class KeyDisabledError(AuthenticationError):
    error_code = "key_disabled"


class KeyExpiredError(AuthenticationError):
    error_code = "key_expired"


class UnauthorizedAccountError(AuthenticationError):
    """The key owner has no usable linked account for the provider."""

    error_code = "account_unauthorized"


class PaymentRequiredError(AppError):
    status_code = 402
    error_code = "payment_required"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NeedsReauthError(ForbiddenError):
    """The key grants the permission but the user's consent no longer covers it."""

    error_code = "needs_reauth"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class RateLimitError(AppError):
    status_code = 429
    error_code = "rate_limit_exceeded"


class ProviderCallFailedError(AppError):
    status_code = 502
    error_code = "provider_error"


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
        err = ValidationError(
            first.get("msg", "invalid request"),
            field=".".join(loc) or None,
        )
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "An internal server error occurred.", "code": "internal_error"},
        )
