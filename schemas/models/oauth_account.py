"""
Linked OAuth account document model.

Maps to the `oauth-accounts` MongoDB collection, one document per
(user_id, provider_id). The consent callback that creates these documents
lives in the dashboard; this service only reads them and rewrites the token
fields after a refresh.

``scopes`` is None for accounts linked before granted scopes were recorded.
"""

from __future__ import annotations

from typing import Optional

from schemas.models.base import MongoBaseModel, UtcDatetime


class OAuthAccountDoc(MongoBaseModel):
    """Document model for the `oauth-accounts` collection."""

    user_id: str
    provider_id: str
    access_token: str
    refresh_token: Optional[str] = None
    access_token_expires_at: Optional[UtcDatetime] = None
    scopes: Optional[list[str]] = None
    updated_at: Optional[UtcDatetime] = None
