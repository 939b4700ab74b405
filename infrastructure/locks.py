"""Redis lease lock (SET NX PX + compare-and-delete release).

A lease is a lock with a TTL: a holder that crashes mid-refresh cannot keep
other processes out for longer than ``ttl_seconds``. Each acquisition stores
a random token so a holder whose lease already expired cannot delete a lease
that now belongs to someone else.
"""

from __future__ import annotations

import secrets
from typing import Optional

import redis.asyncio as aioredis

from shared.logging import get_logger

log = get_logger(__name__)

# Delete the key only if it still holds our token.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisLease:
    """One named lease. Not reusable across acquisitions by different owners."""

    def __init__(
        self,
        redis_client: aioredis.Redis,
        name: str,
        ttl_seconds: int = 30,
    ) -> None:
        self._redis = redis_client
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._token: Optional[str] = None

    @property
    def held(self) -> bool:
        return self._token is not None

    async def acquire(self) -> bool:
        """Try once to take the lease. Returns True if acquired."""
        token = secrets.token_hex(16)
        result = await self._redis.set(
            self.name, token, nx=True, px=int(self.ttl_seconds * 1000)
        )
        if result:
            self._token = token
            return True
        return False

    async def release(self) -> None:
        """Release the lease if we still own it. Never raises."""
        if self._token is None:
            return
        token, self._token = self._token, None
        try:
            await self._redis.eval(_RELEASE_SCRIPT, 1, self.name, token)
        except Exception as e:
            # The TTL reclaims the lease.
            log.warning(
                "lease_release_failed",
                lease=self.name,
                error=str(e),
                error_type=type(e).__name__,
            )
