"""OAuth refresh-token exchange against a provider's token endpoint.

Classifies every failure so callers can tell a revoked grant (the user must
re-link the account) from a transient upstream problem (retry later).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import httpx

from infrastructure.http_client import HttpClient
from providers.types import OAuthConfig
from shared.datetime_utils import utcnow
from shared.logging import get_logger

log = get_logger(__name__)

_DEFAULT_EXPIRES_IN = 3600
_REVOKED_ERROR_CODES = {"invalid_grant", "unauthorized_client", "invalid_client"}


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    expires_at: datetime
    # Set only when the provider rotated the refresh token
    refresh_token: Optional[str] = None


class TokenExchangeError(Exception):
    """Refresh exchange failed. ``revoked`` is True when retrying cannot help."""

    def __init__(
        self,
        message: str,
        *,
        revoked: bool,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.revoked = revoked
        self.status_code = status_code
        self.error_code = error_code


class OAuthTokenClient:
    def __init__(self, http_client: HttpClient) -> None:
        self._http = http_client

    async def refresh(
        self, provider_id: str, oauth: OAuthConfig, refresh_token: Optional[str]
    ) -> TokenGrant:
        if not oauth.is_configured:
            raise TokenExchangeError(
                f"OAuth client for {provider_id} is not configured", revoked=True
            )
        if not refresh_token:
            raise TokenExchangeError("no refresh token stored", revoked=True)

        try:
            response = await self._http.post(
                oauth.token_endpoint,
                data={
                    "client_id": oauth.client_id,
                    "client_secret": oauth.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Accept": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise TokenExchangeError(
                f"token endpoint timed out: {type(e).__name__}", revoked=False
            ) from e
        except httpx.HTTPError as e:
            raise TokenExchangeError(
                f"token endpoint unreachable: {type(e).__name__}", revoked=False
            ) from e

        if response.status_code != 200:
            error_code = _error_code(response)
            revoked = (
                response.status_code in (400, 401)
                and error_code in _REVOKED_ERROR_CODES
            )
            log.warning(
                "token_endpoint_error",
                provider=provider_id,
                status_code=response.status_code,
                error_code=error_code,
                revoked=revoked,
            )
            raise TokenExchangeError(
                f"token endpoint returned {response.status_code}",
                revoked=revoked,
                status_code=response.status_code,
                error_code=error_code,
            )

        try:
            data = response.json()
            access_token = data["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise TokenExchangeError(
                "token endpoint returned a malformed body", revoked=False
            ) from e

        try:
            expires_in = int(data.get("expires_in") or _DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = _DEFAULT_EXPIRES_IN

        return TokenGrant(
            access_token=access_token,
            expires_at=utcnow() + timedelta(seconds=expires_in),
            refresh_token=data.get("refresh_token") or None,
        )


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        error = body.get("error")
        return error if isinstance(error, str) else None
    return None
