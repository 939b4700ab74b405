"""Unit tests for AppError hierarchy."""

import pytest
from fastapi import FastAPI, Query
from fastapi.testclient import TestClient

from errors import (
    AppError,
    AuthenticationError,
    ForbiddenError,
    InvalidKeyError,
    KeyDisabledError,
    KeyExpiredError,
    NeedsReauthError,
    NotFoundError,
    PaymentRequiredError,
    ProviderCallFailedError,
    RateLimitError,
    UnauthorizedAccountError,
    ValidationError,
    register_error_handlers,
)


class TestAppErrorSubclasses:
    @pytest.mark.parametrize(
        "cls, status, code",
        [
            (ValidationError, 400, "validation_error"),
            (AuthenticationError, 401, "authentication_error"),
            (InvalidKeyError, 401, "invalid_key"),
            (KeyDisabledError, 401, "key_disabled"),
            (KeyExpiredError, 401, "key_expired"),
            (UnauthorizedAccountError, 401, "account_unauthorized"),
            (PaymentRequiredError, 402, "payment_required"),
            (ForbiddenError, 403, "forbidden"),
            (NeedsReauthError, 403, "needs_reauth"),
            (NotFoundError, 404, "not_found"),
            (RateLimitError, 429, "rate_limit_exceeded"),
            (ProviderCallFailedError, 502, "provider_error"),
        ],
    )
    def test_status_and_code(self, cls, status, code):
        e = cls("message")
        assert e.status_code == status
        assert e.error_code == code
        assert e.message == "message"

    def test_key_errors_are_authentication_errors(self):
        assert issubclass(KeyDisabledError, AuthenticationError)
        assert issubclass(UnauthorizedAccountError, AuthenticationError)

    def test_needs_reauth_is_forbidden(self):
        assert issubclass(NeedsReauthError, ForbiddenError)


class TestAppErrorToDict:
    def test_basic(self):
        e = NotFoundError("key not found")
        assert e.to_dict() == {"error": "key not found", "code": "not_found"}

    @pytest.mark.parametrize(
        "kwargs, key, value",
        [
            ({"field": "permissions"}, "field", "permissions"),
            ({"details": {"provider": "google"}}, "details", {"provider": "google"}),
        ],
        ids=["with_field", "with_details"],
    )
    def test_optional_key_present(self, kwargs, key, value):
        e = ValidationError("invalid", **kwargs)
        assert e.to_dict()[key] == value

    def test_no_optional_keys_when_absent(self):
        d = NotFoundError("missing").to_dict()
        assert "field" not in d
        assert "details" not in d


def _app() -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/forbidden")
    async def forbidden():
        raise ForbiddenError("Missing permission: google:mail:send")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("unexpected")

    @app.get("/typed")
    async def typed(limit: int = Query(...)):
        return {"limit": limit}

    return app


class TestErrorHandlers:
    def test_app_error_envelope(self):
        with TestClient(_app()) as client:
            resp = client.get("/forbidden")
        assert resp.status_code == 403
        assert resp.json() == {
            "error": "Missing permission: google:mail:send",
            "code": "forbidden",
        }

    def test_request_validation_becomes_400(self):
        with TestClient(_app()) as client:
            resp = client.get("/typed", params={"limit": "abc"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "validation_error"
        assert body["field"] == "limit"

    def test_unhandled_exception_is_500(self):
        with TestClient(_app(), raise_server_exceptions=False) as client:
            resp = client.get("/boom")
        assert resp.status_code == 500
        assert resp.json()["code"] == "internal_error"
