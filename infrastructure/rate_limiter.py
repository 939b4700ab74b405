"""Per-key fixed-window rate limiting on the ``limits`` library.

Same strategy as the public API limiter: a fixed one-minute window per
bucket, kept in a shared storage. Production uses the Redis storage at
REDIS_URI; tests use ``async+memory://``. Without a storage, or when the
storage errors, requests are allowed.
"""

from __future__ import annotations

from typing import Optional

from limits import parse
from limits.aio.storage import Storage
from limits.storage import storage_from_string
from limits.aio.strategies import FixedWindowRateLimiter

from shared.logging import get_logger

log = get_logger(__name__)

WINDOW_SECONDS = 60


def create_rate_limit_storage(storage_uri: Optional[str]) -> Optional[Storage]:
    """Async limits storage for *storage_uri* (``redis://``, ``memory://`` ...)."""
    if not storage_uri:
        return None
    if not storage_uri.startswith("async+"):
        storage_uri = f"async+{storage_uri}"
    return storage_from_string(storage_uri)


class RateLimiter:
    def __init__(
        self,
        storage: Optional[Storage],
        limit_per_minute: int = 100,
    ) -> None:
        self.limit = limit_per_minute
        self._strategy: Optional[FixedWindowRateLimiter] = None
        if storage is not None and limit_per_minute > 0:
            self._strategy = FixedWindowRateLimiter(storage)
            self._item = parse(f"{limit_per_minute}/minute")

    async def hit(self, bucket: str) -> bool:
        """Count one request against *bucket*. Returns False once over the limit."""
        if self._strategy is None:
            return True

        try:
            allowed = await self._strategy.hit(self._item, "ratelimit", bucket)
        except Exception as e:
            log.warning(
                "rate_limit_check_failed",
                bucket=bucket,
                error=str(e),
                error_type=type(e).__name__,
            )
            return True

        if not allowed:
            log.info("rate_limit_exceeded", bucket=bucket, limit=self.limit)
        return allowed
