"""
Integration test app: the real routers and services over in-memory fakes.

No network connections are made: Mongo is replaced by FakeIdentityStore,
Autumn by FakeBilling, the token endpoint by FakeTokenClient and provider
APIs by an httpx.MockTransport.
"""

from contextlib import asynccontextmanager
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.gateway import build_gateway_router
from api.v1 import api_v1
from app import wire_services
from config import AppSettings, DatabaseSettings, GatewaySettings
from errors import register_error_handlers
from infrastructure.http_client import HttpClient
from infrastructure.rate_limiter import create_rate_limit_storage
from routes.health_routes import router as health_router

INTERNAL_SECRET = "internal-secret"
RAW_KEY = "wsc_integration0123456789abcdefghijklmnop"


class Upstream:
    """Records provider API requests and answers from a route table."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], tuple[int, object]] = {}

    def respond(self, method: str, path: str, status: int = 200, json=None) -> None:
        self.routes[(method, path)] = (status, json)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes.get((request.method, request.url.path), (200, {}))
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)


def build_test_app(
    catalog,
    store,
    billing,
    token_client,
    upstream: Upstream,
    *,
    redis_client=None,
    rate_limit_storage_uri: Optional[str] = None,
    rate_limit_per_minute: int = 100,
    settings: Optional[AppSettings] = None,
) -> FastAPI:
    if settings is None:
        settings = AppSettings(
            db=DatabaseSettings(mongodb_uri="mongodb://localhost:27017/"),
            gateway=GatewaySettings(
                internal_api_secret=INTERNAL_SECRET,
                rate_limit_per_minute=rate_limit_per_minute,
            ),
        )

    mock_db = MagicMock()
    mock_db.client.admin.command = AsyncMock(return_value={"ok": 1})

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        provider_http = HttpClient(transport=httpx.MockTransport(upstream))
        app.state.db = mock_db
        wire_services(
            app,
            settings,
            catalog,
            store,
            redis_client,
            token_client=token_client,
            billing=billing,
            provider_http=provider_http,
            rate_limit_storage=create_rate_limit_storage(rate_limit_storage_uri),
        )
        yield
        await provider_http.aclose()

    app = FastAPI(lifespan=lifespan, openapi_tags=catalog.all_openapi_tags())
    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(api_v1)
    app.include_router(build_gateway_router(catalog))
    return app


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def client(catalog, store, billing, token_client, upstream):
    app = build_test_app(catalog, store, billing, token_client, upstream)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def internal_headers():
    return {"X-Internal-Secret": INTERNAL_SECRET, "X-User-Id": "user-1"}


@pytest.fixture
def key_headers():
    return {"X-API-Key": RAW_KEY}


@pytest.fixture
def raw_key():
    return RAW_KEY


@pytest.fixture
def make_app(catalog, store, billing, token_client, upstream):
    """Factory for apps with non-default billing, redis or rate limit wiring."""

    def _make(billing=billing, **kwargs) -> FastAPI:
        return build_test_app(catalog, store, billing, token_client, upstream, **kwargs)

    return _make
