"""Async Redis connection for refresh leases.

Its startup probe also decides whether the per-key rate limiter gets a
Redis storage.

Redis is optional. create_redis_client() returns None when it is not
configured or unreachable at startup; the credential store then coordinates
refreshes in-process only and the rate limiter lets every request through.
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from shared.logging import get_logger

log = get_logger(__name__)

# Lease calls sit on the request path
_SOCKET_TIMEOUT_SECONDS = 2.0


def _host_part(redis_uri: str) -> str:
    return redis_uri.split("@")[-1]


async def create_redis_client(
    redis_uri: Optional[str],
    socket_timeout: float = _SOCKET_TIMEOUT_SECONDS,
) -> Optional[aioredis.Redis]:
    if not redis_uri:
        log.info("redis_not_configured", fallback="in_process_locks")
        return None

    client: aioredis.Redis = aioredis.from_url(
        redis_uri,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        log.warning(
            "redis_unavailable",
            host=_host_part(redis_uri),
            error=str(e),
            error_type=type(e).__name__,
            fallback="in_process_locks",
        )
        await client.aclose()
        return None

    log.info("redis_connected", host=_host_part(redis_uri))
    return client
