"""
ApiKeyService — create, list, enable/disable and delete caller keys.

Grants are validated against the provider catalog at creation, so a stored
key only ever references permissions that existed when it was issued.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from errors import NotFoundError, ValidationError
from providers.catalog import ProviderCatalog
from repositories.protocol import IdentityStore
from schemas.models.api_key import ApiKeyDoc
from shared.crypto import hash_token
from shared.datetime_utils import parse_datetime, utcnow
from shared.generators import generate_api_key
from shared.logging import get_logger

log = get_logger(__name__)


class ApiKeyService:
    def __init__(
        self,
        store: IdentityStore,
        catalog: ProviderCatalog,
        key_prefix: str = "wsc_",
        max_keys_per_user: int = 20,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._prefix = key_prefix
        self._max_keys = max_keys_per_user

    async def create(
        self,
        user_id: str,
        name: str,
        permissions: Mapping[str, list[str]],
        expires_at: Optional[Any] = None,
    ) -> tuple[ApiKeyDoc, str]:
        """Create a key and return ``(doc, raw_key)``. The raw key is not stored."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required", field="name")

        grants = self._catalog.validate_grants(permissions)

        expires = parse_datetime(expires_at)
        if expires_at is not None and expires is None:
            raise ValidationError(
                "expires_at must be ISO8601 or epoch seconds", field="expires_at"
            )
        if expires is not None and expires <= utcnow():
            raise ValidationError("expires_at must be in the future", field="expires_at")

        if await self._store.count_api_keys(user_id) >= self._max_keys:
            raise ValidationError(f"maximum {self._max_keys} keys allowed")

        raw_key, display_prefix = generate_api_key(self._prefix)
        doc = await self._store.insert_api_key(
            ApiKeyDoc(
                user_id=user_id,
                token_prefix=display_prefix,
                token_hash=hash_token(raw_key),
                name=name,
                permissions=grants,
                enabled=True,
                expires_at=expires,
                created_at=utcnow(),
            )
        )
        log.info(
            "api_key_created",
            user_id=user_id,
            key_id=str(doc.id),
            key_prefix=display_prefix,
            providers=sorted(grants),
            expires_at=expires.isoformat() if expires else None,
        )
        return doc, raw_key

    async def list(self, user_id: str) -> list[ApiKeyDoc]:
        return await self._store.list_api_keys(user_id)

    async def delete(self, user_id: str, key_id: str) -> None:
        if not await self._store.delete_api_key(user_id, key_id):
            raise NotFoundError("API key not found")
        log.info("api_key_deleted", user_id=user_id, key_id=key_id)

    async def set_enabled(self, user_id: str, key_id: str, enabled: bool) -> None:
        if not await self._store.set_api_key_enabled(user_id, key_id, enabled):
            raise NotFoundError("API key not found")
        log.info(
            "api_key_enabled" if enabled else "api_key_disabled",
            user_id=user_id,
            key_id=key_id,
        )

