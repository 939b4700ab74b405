"""IdentityStore protocol: linked accounts and API keys."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from schemas.models.api_key import ApiKeyDoc
from schemas.models.oauth_account import OAuthAccountDoc


class IdentityStore(Protocol):
    async def find_account(
        self, user_id: str, provider_id: str
    ) -> Optional[OAuthAccountDoc]: ...

    async def update_account_tokens(
        self,
        account_id: object,
        access_token: str,
        expires_at: datetime,
        refresh_token: Optional[str] = None,
    ) -> None:
        """Persist a refreshed token in a single write."""
        ...

    async def find_api_key_by_hash(self, token_hash: str) -> Optional[ApiKeyDoc]: ...

    async def insert_api_key(self, doc: ApiKeyDoc) -> ApiKeyDoc:
        """Insert *doc* and return it with its generated id."""
        ...

    async def list_api_keys(self, user_id: str) -> list[ApiKeyDoc]: ...

    async def count_api_keys(self, user_id: str) -> int: ...

    async def delete_api_key(self, user_id: str, key_id: str) -> bool: ...

    async def set_api_key_enabled(self, user_id: str, key_id: str, enabled: bool) -> bool:
        """Returns False when no key with that id belongs to *user_id*."""
        ...
