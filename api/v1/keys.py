"""
API key management endpoints, called by the dashboard.

Authenticated with the shared internal secret (X-Internal-Secret) plus the
acting user's id (X-User-Id); callers never reach these with their own keys.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from dependencies import get_api_key_service, require_internal_user
from schemas.dto.requests.api_key import CreateApiKeyRequest
from schemas.dto.responses.api_key import (
    ApiKeyActionResponse,
    ApiKeyCreatedResponse,
    ApiKeyResponse,
    ApiKeysListResponse,
)
from schemas.dto.responses.common import ErrorResponse
from services.api_keys import ApiKeyService

router = APIRouter(
    prefix="/keys",
    tags=["API Keys"],
    responses={401: {"model": ErrorResponse}},
)


@router.post("", status_code=201, response_model=ApiKeyCreatedResponse)
async def create_api_key(
    body: CreateApiKeyRequest,
    user_id: str = Depends(require_internal_user),
    service: ApiKeyService = Depends(get_api_key_service),
) -> ApiKeyCreatedResponse:
    """Create a key. The full ``key`` is returned only in this response."""
    doc, raw_key = await service.create(
        user_id, body.name, body.permissions, body.expires_at
    )
    return ApiKeyCreatedResponse.from_created(doc, raw_key)


@router.get("", response_model=ApiKeysListResponse)
async def list_api_keys(
    user_id: str = Depends(require_internal_user),
    service: ApiKeyService = Depends(get_api_key_service),
) -> ApiKeysListResponse:
    docs = await service.list(user_id)
    return ApiKeysListResponse(keys=[ApiKeyResponse.from_doc(d) for d in docs])


@router.delete("/{key_id}", response_model=ApiKeyActionResponse)
async def delete_api_key(
    key_id: str,
    user_id: str = Depends(require_internal_user),
    service: ApiKeyService = Depends(get_api_key_service),
) -> ApiKeyActionResponse:
    await service.delete(user_id, key_id)
    return ApiKeyActionResponse(success=True, action="deleted")


@router.post("/{key_id}/disable", response_model=ApiKeyActionResponse)
async def disable_api_key(
    key_id: str,
    user_id: str = Depends(require_internal_user),
    service: ApiKeyService = Depends(get_api_key_service),
) -> ApiKeyActionResponse:
    await service.set_enabled(user_id, key_id, False)
    return ApiKeyActionResponse(success=True, action="disabled")


@router.post("/{key_id}/enable", response_model=ApiKeyActionResponse)
async def enable_api_key(
    key_id: str,
    user_id: str = Depends(require_internal_user),
    service: ApiKeyService = Depends(get_api_key_service),
) -> ApiKeyActionResponse:
    await service.set_enabled(user_id, key_id, True)
    return ApiKeyActionResponse(success=True, action="enabled")
