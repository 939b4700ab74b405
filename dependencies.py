"""
FastAPI dependency providers.

Services are built once in the app lifespan and stored on app.state; these
functions hand them to route handlers through Depends().
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request

from config import AppSettings
from errors import AuthenticationError, InvalidKeyError, RateLimitError
from infrastructure.http_client import HttpClient
from infrastructure.rate_limiter import RateLimiter
from providers.catalog import ProviderCatalog
from services.api_keys import ApiKeyService
from services.enforcer import Enforcer
from services.key_resolver import KeyIdentity, KeyResolver
from shared.crypto import secrets_match


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_catalog(request: Request) -> ProviderCatalog:
    return request.app.state.catalog


def get_key_resolver(request: Request) -> KeyResolver:
    return request.app.state.key_resolver


def get_enforcer(request: Request) -> Enforcer:
    return request.app.state.enforcer


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_provider_http(request: Request) -> HttpClient:
    """HttpClient used for provider API calls (its own timeout)."""
    return request.app.state.provider_http


def get_api_key_service(request: Request) -> ApiKeyService:
    return request.app.state.api_key_service


# ── Caller key auth (gateway) ────────────────────────────────────────────────


def extract_api_key(
    authorization: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
) -> str:
    """Raw key from ``X-API-Key`` or ``Authorization: Bearer``."""
    if x_api_key:
        return x_api_key.strip()
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    raise InvalidKeyError("Valid API key required. Use Authorization: Bearer <key>.")


async def require_api_key(
    raw_key: str = Depends(extract_api_key),
    resolver: KeyResolver = Depends(get_key_resolver),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> KeyIdentity:
    """Resolve the caller's key and count the request against its rate limit."""
    identity = await resolver.resolve(raw_key)
    if not await limiter.hit(f"key:{identity.key_id}"):
        raise RateLimitError(
            f"Rate limit exceeded: {limiter.limit} requests per minute",
            details={"limit": limiter.limit, "window_seconds": 60},
        )
    return identity


# ── Dashboard auth (key management) ──────────────────────────────────────────


def require_internal_user(
    x_internal_secret: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
    settings: AppSettings = Depends(get_settings),
) -> str:
    """Authenticate a dashboard call and return the acting user id."""
    if not secrets_match(x_internal_secret or "", settings.gateway.internal_api_secret):
        raise AuthenticationError("invalid internal credentials")
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("X-User-Id header is required")
    return x_user_id.strip()
