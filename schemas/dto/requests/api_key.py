"""
Request DTOs for API key management endpoints.

CreateApiKeyRequest — POST /api/v1/keys

Permission ids are checked against the provider catalog by ApiKeyService;
this model only checks shape.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator


class CreateApiKeyRequest(BaseModel):
    """Request body for POST /api/v1/keys."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    # provider id → permission ids, e.g. {"google": ["mail:read"]}
    permissions: dict[str, list[str]]
    # ISO 8601 string or Unix epoch seconds; null means no expiration
    expires_at: Optional[Union[str, int, float]] = None

    @field_validator("name", mode="after")
    @classmethod
    def _name_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("permissions", mode="after")
    @classmethod
    def _permissions_not_empty(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        if not any(v.values()):
            raise ValueError("permissions must grant at least one permission")
        return v
