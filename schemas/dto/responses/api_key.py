"""
Response DTOs for API key management endpoints.

ApiKeyResponse        — one key entry in GET /api/v1/keys list
ApiKeyCreatedResponse — POST /api/v1/keys (201); includes ``key`` once
ApiKeysListResponse   — GET /api/v1/keys (200)
ApiKeyActionResponse  — DELETE / enable / disable (200)

``created_at`` and ``expires_at`` are Unix timestamp integers.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.api_key import ApiKeyDoc
from shared.datetime_utils import to_epoch


class ApiKeyResponse(BaseModel):
    """A single API key entry. Only ``token_prefix`` identifies the secret."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    permissions: dict[str, list[str]]
    enabled: bool
    created_at: Optional[int] = None
    expires_at: Optional[int] = None
    token_prefix: str

    @classmethod
    def from_doc(cls, doc: ApiKeyDoc) -> "ApiKeyResponse":
        return cls(
            id=str(doc.id),
            name=doc.name,
            permissions=doc.permissions,
            enabled=doc.enabled,
            created_at=to_epoch(doc.created_at),
            expires_at=to_epoch(doc.expires_at),
            token_prefix=doc.token_prefix,
        )


class ApiKeyCreatedResponse(ApiKeyResponse):
    """Response for POST /api/v1/keys (201).

    ``key`` is the full secret. It is hashed before storage and this is the
    only response that ever contains it.
    """

    key: str

    @classmethod
    def from_created(cls, doc: ApiKeyDoc, raw_key: str) -> "ApiKeyCreatedResponse":
        return cls(**ApiKeyResponse.from_doc(doc).model_dump(), key=raw_key)


class ApiKeysListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    keys: list[ApiKeyResponse]


class ApiKeyActionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    action: str  # "deleted", "enabled" or "disabled"
