"""
API key document model.

Maps to the `api-keys` MongoDB collection.

token_hash stores SHA-256(raw_key); the raw key is shown once at creation and
never stored. token_prefix (first 12 chars) is kept for display.
permissions maps provider id → granted permission ids for that provider.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel, UtcDatetime


class ApiKeyDoc(MongoBaseModel):
    """Document model for the `api-keys` collection."""

    user_id: str
    token_prefix: str
    token_hash: str
    name: str
    permissions: dict[str, list[str]] = Field(default_factory=dict)
    enabled: bool = True
    expires_at: Optional[UtcDatetime] = None
    created_at: Optional[UtcDatetime] = None

