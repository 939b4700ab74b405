"""
CredentialStore — hands out valid provider access tokens.

A stored token is returned as-is while it expires more than
``refresh_margin_seconds`` from now. Otherwise it is refreshed, and the
refresh for any one (user, provider) runs at most once at a time:

- in-process: concurrent callers share one asyncio.Task per key
- cross-process: that task holds a Redis lease while it talks to the token
  endpoint; a process that finds the lease taken polls the stored account
  until the holder's result lands (or takes the lease over if it frees up)

A failed refresh raises and never falls back to the stale token.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import redis.asyncio as aioredis

from infrastructure.locks import RedisLease
from infrastructure.oauth.token_client import OAuthTokenClient, TokenExchangeError
from providers.catalog import ProviderCatalog
from repositories.protocol import IdentityStore
from schemas.models.oauth_account import OAuthAccountDoc
from shared.datetime_utils import ensure_utc, utcnow
from shared.logging import get_logger, should_sample

log = get_logger(__name__)


class CredentialError(Exception):
    """Base for credential-layer failures."""


class AccountNotLinked(CredentialError):
    def __init__(self, user_id: str, provider_id: str) -> None:
        super().__init__(f"no {provider_id} account linked for user {user_id}")
        self.user_id = user_id
        self.provider_id = provider_id


class RefreshFailed(CredentialError):
    """The stored token is stale and could not be refreshed."""


class RevokedCredential(RefreshFailed):
    """The grant is gone (revoked, expired refresh token, missing client). Not retryable."""


class TransientUpstream(RefreshFailed):
    """Network error, timeout or 5xx from the token endpoint. The caller may retry later."""


@dataclass(frozen=True)
class ValidCredential:
    access_token: str
    expires_at: Optional[datetime]
    # None when the consent-time grant was never recorded
    scopes: Optional[frozenset[str]]


def _credential(account: OAuthAccountDoc, **overrides) -> ValidCredential:
    values = {
        "access_token": account.access_token,
        "expires_at": account.access_token_expires_at,
        "scopes": frozenset(account.scopes) if account.scopes is not None else None,
    }
    values.update(overrides)
    return ValidCredential(**values)


class CredentialStore:
    def __init__(
        self,
        store: IdentityStore,
        catalog: ProviderCatalog,
        token_client: OAuthTokenClient,
        redis_client: Optional[aioredis.Redis] = None,
        *,
        refresh_margin_seconds: int = 300,
        lock_ttl_seconds: int = 30,
        wait_timeout_seconds: float = 10.0,
        poll_interval_seconds: float = 0.2,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._token_client = token_client
        self._redis = redis_client
        self._margin = timedelta(seconds=refresh_margin_seconds)
        self._lock_ttl = lock_ttl_seconds
        self._wait_timeout = wait_timeout_seconds
        self._poll_interval = poll_interval_seconds
        self._clock = clock
        self._inflight: dict[tuple[str, str], asyncio.Task[ValidCredential]] = {}

    async def get_valid_access_token(self, user_id: str, provider_id: str) -> str:
        credential = await self.get_credential(user_id, provider_id)
        return credential.access_token

    async def get_credential(self, user_id: str, provider_id: str) -> ValidCredential:
        account = await self._store.find_account(user_id, provider_id)
        if account is None:
            raise AccountNotLinked(user_id, provider_id)

        if self._is_fresh(account):
            if should_sample("token_cache_hit"):
                log.debug("token_cache_hit", provider=provider_id, user_id=user_id)
            return _credential(account)

        return await self._refresh_once(user_id, provider_id)

    def _is_fresh(self, account: OAuthAccountDoc) -> bool:
        # Unknown expiry counts as stale
        expires_at = ensure_utc(account.access_token_expires_at)
        if expires_at is None:
            return False
        return expires_at - self._clock() > self._margin

    # ── Single-flight ────────────────────────────────────────────────────────

    async def _refresh_once(self, user_id: str, provider_id: str) -> ValidCredential:
        key = (user_id, provider_id)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._refresh(user_id, provider_id))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            log.debug("token_refresh_joined", provider=provider_id, user_id=user_id)
        # A cancelled caller must not cancel the refresh other callers wait on
        return await asyncio.shield(task)

    def _forget(self, key: tuple[str, str], task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception retrieved; every waiter already re-raises it
            task.exception()

    async def _refresh(self, user_id: str, provider_id: str) -> ValidCredential:
        lease: Optional[RedisLease] = None
        if self._redis is not None:
            lease = RedisLease(
                self._redis, f"refresh_lock:{provider_id}:{user_id}", self._lock_ttl
            )
            try:
                acquired = await lease.acquire()
            except Exception as e:
                log.warning(
                    "refresh_lease_unavailable",
                    provider=provider_id,
                    user_id=user_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                lease, acquired = None, True
            if not acquired:
                result = await self._wait_for_peer(user_id, provider_id, lease)
                if result is not None:
                    return result

        try:
            account = await self._store.find_account(user_id, provider_id)
            if account is None:
                raise AccountNotLinked(user_id, provider_id)
            if self._is_fresh(account):
                log.info("token_refreshed_by_peer", provider=provider_id, user_id=user_id)
                return _credential(account)
            return await self._exchange(account)
        finally:
            if lease is not None:
                await lease.release()

    async def _wait_for_peer(
        self, user_id: str, provider_id: str, lease: RedisLease
    ) -> Optional[ValidCredential]:
        """Poll until another process's refresh lands.

        Returns the refreshed credential, or None once this process has taken
        over the lease itself. Raises TransientUpstream on timeout.
        """
        log.info("token_refresh_waiting_for_peer", provider=provider_id, user_id=user_id)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._wait_timeout
        while loop.time() < deadline:
            await asyncio.sleep(self._poll_interval)
            account = await self._store.find_account(user_id, provider_id)
            if account is None:
                raise AccountNotLinked(user_id, provider_id)
            if self._is_fresh(account):
                return _credential(account)
            try:
                if await lease.acquire():
                    return None
            except Exception as e:
                # Lease not held; release() is a no-op and the in-process
                # singleflight still covers this process.
                log.warning(
                    "refresh_lease_unavailable",
                    provider=provider_id,
                    user_id=user_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return None

        log.warning(
            "token_refresh_wait_timeout",
            provider=provider_id,
            user_id=user_id,
            timeout_seconds=self._wait_timeout,
        )
        raise TransientUpstream(
            f"timed out waiting for a concurrent {provider_id} token refresh"
        )

    # ── Exchange ─────────────────────────────────────────────────────────────

    async def _exchange(self, account: OAuthAccountDoc) -> ValidCredential:
        provider_id, user_id = account.provider_id, account.user_id
        provider = self._catalog.find(provider_id)
        if provider is None:
            raise RevokedCredential(f"provider {provider_id} is not registered")

        try:
            grant = await self._token_client.refresh(
                provider_id, provider.oauth, account.refresh_token
            )
        except TokenExchangeError as e:
            log.warning(
                "token_refresh_failed",
                provider=provider_id,
                user_id=user_id,
                revoked=e.revoked,
                status_code=e.status_code,
                error_code=e.error_code,
                reason=str(e),
            )
            if e.revoked:
                raise RevokedCredential(str(e)) from e
            raise TransientUpstream(str(e)) from e

        await self._store.update_account_tokens(
            account.id,
            grant.access_token,
            grant.expires_at,
            refresh_token=grant.refresh_token,
        )
        log.info(
            "token_refreshed",
            provider=provider_id,
            user_id=user_id,
            expires_at=grant.expires_at.isoformat(),
            rotated=grant.refresh_token is not None,
        )
        return _credential(
            account, access_token=grant.access_token, expires_at=grant.expires_at
        )
