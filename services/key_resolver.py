"""
KeyResolver — maps a raw caller key to its owner and permission grants.

Provider-agnostic: it knows about key validity, not OAuth. Nothing is
cached, so disabling or deleting a key takes effect on the next request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping

from errors import InvalidKeyError, KeyDisabledError, KeyExpiredError
from repositories.protocol import IdentityStore
from shared.crypto import hash_token
from shared.datetime_utils import ensure_utc, utcnow
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class KeyIdentity:
    key_id: str
    user_id: str
    # provider id → granted permission ids
    permissions: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def grants(self, provider_id: str, permission: str) -> bool:
        return permission in self.permissions.get(provider_id, frozenset())


class KeyResolver:
    def __init__(
        self,
        store: IdentityStore,
        key_prefix: str = "wsc_",
        clock: Callable = utcnow,
    ) -> None:
        self._store = store
        self._prefix = key_prefix
        self._clock = clock

    async def resolve(self, raw_key: str) -> KeyIdentity:
        if not raw_key or not raw_key.startswith(self._prefix):
            log.warning("api_key_invalid", reason="bad_prefix")
            raise InvalidKeyError("Invalid API key")

        doc = await self._store.find_api_key_by_hash(hash_token(raw_key))
        if doc is None:
            log.warning("api_key_invalid", reason="not_found")
            raise InvalidKeyError("Invalid API key")

        key_id = str(doc.id)
        if not doc.enabled:
            log.warning("api_key_invalid", reason="disabled", key_id=key_id)
            raise KeyDisabledError("API key is disabled")

        expires_at = ensure_utc(doc.expires_at)
        if expires_at is not None and expires_at <= self._clock():
            log.warning("api_key_invalid", reason="expired", key_id=key_id)
            raise KeyExpiredError("API key has expired")

        return KeyIdentity(
            key_id=key_id,
            user_id=doc.user_id,
            permissions={p: frozenset(perms) for p, perms in doc.permissions.items()},
        )
