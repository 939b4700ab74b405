"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from limits.aio.storage import Storage
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from api.gateway import build_gateway_router
from api.v1 import api_v1
from config import AppSettings
from errors import register_error_handlers
from infrastructure.billing.autumn import AutumnBillingProvider
from infrastructure.billing.protocol import BillingProvider
from infrastructure.http_client import HttpClient
from infrastructure.oauth.token_client import OAuthTokenClient
from infrastructure.rate_limiter import RateLimiter, create_rate_limit_storage
from infrastructure.redis_client import create_redis_client
from providers import build_default_catalog
from providers.catalog import ProviderCatalog
from repositories.mongo import MongoIdentityStore
from repositories.protocol import IdentityStore
from routes.health_routes import router as health_router
from services.api_keys import ApiKeyService
from services.credentials import CredentialStore
from services.enforcer import Enforcer
from services.key_resolver import KeyResolver
from services.usage import UsageRecorder
from shared.log_context import setup_logging_middleware
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def wire_services(
    app: FastAPI,
    settings: AppSettings,
    catalog: ProviderCatalog,
    store: IdentityStore,
    redis_client: Optional[aioredis.Redis],
    *,
    token_client: OAuthTokenClient,
    billing: BillingProvider,
    provider_http: HttpClient,
    rate_limit_storage: Optional[Storage] = None,
) -> None:
    """Build the request-path services and publish them on app.state."""
    gateway = settings.gateway

    credentials = CredentialStore(
        store,
        catalog,
        token_client,
        redis_client,
        refresh_margin_seconds=gateway.token_refresh_margin_seconds,
        lock_ttl_seconds=gateway.refresh_lock_ttl_seconds,
        wait_timeout_seconds=gateway.refresh_wait_timeout_seconds,
    )
    usage = UsageRecorder(billing, settings.billing.billing_feature_id)

    app.state.settings = settings
    app.state.catalog = catalog
    app.state.redis = redis_client
    app.state.identity_store = store
    app.state.credentials = credentials
    app.state.key_resolver = KeyResolver(store, key_prefix=gateway.api_key_prefix)
    app.state.rate_limiter = RateLimiter(
        rate_limit_storage, gateway.rate_limit_per_minute
    )
    app.state.enforcer = Enforcer(
        catalog,
        credentials,
        billing,
        usage,
        feature_id=settings.billing.billing_feature_id,
    )
    app.state.provider_http = provider_http
    app.state.api_key_service = ApiKeyService(
        store,
        catalog,
        key_prefix=gateway.api_key_prefix,
        max_keys_per_user=gateway.max_keys_per_user,
    )


def create_app(
    settings: Optional[AppSettings] = None,
    catalog: Optional[ProviderCatalog] = None,
) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()
    if catalog is None:
        catalog = build_default_catalog(settings.oauth)

    setup_logging(settings.logging, env=settings.env)

    # Initialise Sentry before the lifespan runs so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(settings.db.mongodb_uri)
        app.state.mongo_client = mongo_client
        app.state.db = mongo_client[settings.db.db_name]

        store = MongoIdentityStore(app.state.db)
        try:
            await store.ensure_indexes()
        except Exception as e:
            log.error("ensure_indexes_failed", error=str(e), error_type=type(e).__name__)

        # Redis is optional; without it refresh locking is process-local and
        # the per-key rate limit is off
        redis_client = await create_redis_client(settings.redis.redis_uri)
        rate_limit_storage = create_rate_limit_storage(
            settings.redis.redis_uri if redis_client is not None else None
        )

        oauth_http = HttpClient(timeout=settings.gateway.oauth_timeout_seconds)
        billing_http = HttpClient(timeout=settings.billing.billing_timeout_seconds)
        provider_http = HttpClient(timeout=settings.gateway.provider_timeout_seconds)

        wire_services(
            app,
            settings,
            catalog,
            store,
            redis_client,
            token_client=OAuthTokenClient(oauth_http),
            billing=AutumnBillingProvider(
                settings.billing.autumn_secret_key,
                settings.billing.autumn_api_url,
                billing_http,
            ),
            provider_http=provider_http,
            rate_limit_storage=rate_limit_storage,
        )
        log.info(
            "app_started",
            env=settings.env,
            providers=catalog.ids(),
            redis_enabled=redis_client is not None,
        )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        for client in (oauth_http, billing_http, provider_http):
            await client.aclose()
        await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        openapi_tags=catalog.all_openapi_tags(),
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_logging_middleware(app)

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(api_v1)
    app.include_router(build_gateway_router(catalog))

    return app
