"""
Request gateway: one HTTP route per provider operation.

build_gateway_router() walks the catalog and registers every Operation at
``/api/v1/{provider_id}{operation.path}``. Each route runs the same
pipeline, so adding a provider never touches this module:

    key → rate limit → authorize(permission) → body → handler → JSON
"""

from typing import Any, Callable, Optional

from fastapi import APIRouter, Body, Depends, Request

from dependencies import get_enforcer, get_provider_http, require_api_key
from infrastructure.http_client import HttpClient
from providers.catalog import ProviderCatalog
from providers.types import Operation, ProviderCall
from schemas.dto.responses.common import GATEWAY_ERROR_RESPONSES
from services.enforcer import Authorization, Enforcer
from services.key_resolver import KeyIdentity
from shared.logging import get_logger, should_sample

log = get_logger(__name__)


def _authorizer(provider_id: str, permission: str) -> Callable:
    """Dependency that authorizes the caller for one permission."""

    async def authorize(
        identity: KeyIdentity = Depends(require_api_key),
        enforcer: Enforcer = Depends(get_enforcer),
    ) -> Authorization:
        return await enforcer.authorize(identity, provider_id, permission)

    return authorize


async def _dispatch(
    provider_id: str,
    operation: Operation,
    request: Request,
    auth: Authorization,
    http: HttpClient,
    body: Optional[Any],
) -> Any:
    if should_sample("gateway_request"):
        log.info(
            "gateway_request",
            provider=provider_id,
            operation=operation.name,
            user_id=auth.user_id,
        )
    call = ProviderCall(
        access_token=auth.access_token,
        http=http,
        path_params=dict(request.path_params),
        query=dict(request.query_params),
        body=body,
    )
    return await operation.handler(call)


def _endpoint(provider_id: str, operation: Operation) -> Callable:
    authorize = _authorizer(provider_id, operation.permission)
    body_model = operation.body_model

    if body_model is None:

        async def endpoint(
            request: Request,
            auth: Authorization = Depends(authorize),
            http: HttpClient = Depends(get_provider_http),
        ) -> Any:
            return await _dispatch(provider_id, operation, request, auth, http, None)

    else:

        async def endpoint(
            request: Request,
            body: body_model = Body(...),  # type: ignore[valid-type]
            auth: Authorization = Depends(authorize),
            http: HttpClient = Depends(get_provider_http),
        ) -> Any:
            return await _dispatch(provider_id, operation, request, auth, http, body)

    endpoint.__name__ = f"{provider_id}_{operation.name}"
    return endpoint


def build_gateway_router(catalog: ProviderCatalog) -> APIRouter:
    router = APIRouter(prefix="/api/v1", responses=GATEWAY_ERROR_RESPONSES)
    for provider in catalog.all():
        for operation in provider.operations:
            router.add_api_route(
                f"/{provider.id}{operation.path}",
                _endpoint(provider.id, operation),
                methods=[operation.method],
                name=f"{provider.id}_{operation.name}",
                operation_id=f"{provider.id}_{operation.name}",
                summary=operation.summary or None,
                description=f"Requires `{operation.permission}` permission.",
                tags=[operation.tag] if operation.tag else None,
            )
        log.debug("gateway_routes_registered", provider=provider.id, count=len(provider.operations))
    return router
