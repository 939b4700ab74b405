"""Shared request/response handling for provider REST APIs.

Every provider call goes through ``provider_request`` so upstream failures
map onto the same AppError types regardless of provider:

- 404 → NotFoundError
- 429 → RateLimitError
- 403 for a missing OAuth scope → NeedsReauthError
- timeout or connection error → ProviderCallFailedError(details.transient)
- anything else non-2xx → ProviderCallFailedError
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from errors import (
    NeedsReauthError,
    NotFoundError,
    ProviderCallFailedError,
    RateLimitError,
)
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

_SCOPE_MARKERS = (
    "insufficientpermissions",
    "access_token_scope_insufficient",
    "insufficient authentication scopes",
)


async def provider_request(
    http: HttpClient,
    provider_id: str,
    method: str,
    url: str,
    access_token: str,
    *,
    params: Optional[dict] = None,
    json: Any = None,
) -> Any:
    """Send one authenticated request and return the decoded JSON body."""
    if params:
        params = {k: v for k, v in params.items() if v is not None}
    try:
        response = await http.request(
            method,
            url,
            params=params or None,
            json=json,
            headers={"Authorization": f"Bearer {access_token}"},
        )
    except httpx.TimeoutException as e:
        log.warning("provider_call_timeout", provider=provider_id, method=method, url=url)
        raise ProviderCallFailedError(
            f"{provider_id} did not respond in time",
            details={"transient": True},
        ) from e
    except httpx.HTTPError as e:
        log.warning(
            "provider_call_failed",
            provider=provider_id,
            method=method,
            url=url,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise ProviderCallFailedError(
            f"{provider_id} could not be reached",
            details={"transient": True},
        ) from e

    raise_for_provider_status(response, provider_id)

    if response.status_code == 204 or not response.content:
        return {}
    try:
        return response.json()
    except ValueError as e:
        raise ProviderCallFailedError(f"{provider_id} returned a malformed body") from e


def raise_for_provider_status(response: httpx.Response, provider_id: str) -> None:
    status = response.status_code
    if status < 400:
        return

    message = _error_message(response)
    if status == 404:
        raise NotFoundError(message or "resource not found")
    if status == 429:
        raise RateLimitError(f"{provider_id} rate limit exceeded")
    if status == 403 and _is_scope_error(response):
        raise NeedsReauthError(
            f"The {provider_id} account must be re-linked to grant the required access."
        )

    log.warning(
        "provider_call_rejected",
        provider=provider_id,
        status_code=status,
        response_text=response.text[:200],
    )
    raise ProviderCallFailedError(
        f"{provider_id} returned {status}" + (f": {message}" if message else ""),
        details={"status": status, "transient": status >= 500},
    )


def _error_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    return {}


def _error_message(response: httpx.Response) -> Optional[str]:
    message = _error_body(response).get("message")
    return message if isinstance(message, str) else None


def _is_scope_error(response: httpx.Response) -> bool:
    error = _error_body(response)
    haystack = " ".join(
        [str(error.get("message", "")), str(error.get("status", "")), str(error.get("code", ""))]
        + [str(e.get("reason", "")) for e in error.get("errors") or [] if isinstance(e, dict)]
        + [str(d.get("reason", "")) for d in error.get("details") or [] if isinstance(d, dict)]
    ).lower()
    return any(marker in haystack for marker in _SCOPE_MARKERS)
