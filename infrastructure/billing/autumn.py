"""Autumn implementation of BillingProvider.

Without AUTUMN_SECRET_KEY, check() allows every call and track() records
nothing. Once configured, both calls raise on transport or API errors; the
enforcer decides the fail-open policy, not the adapter.
"""

from typing import Optional

import httpx

from infrastructure.billing.protocol import BillingDecision
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)


class BillingUnavailableError(Exception):
    """Autumn could not answer (unreachable or non-2xx)."""


class AutumnBillingProvider:
    def __init__(self, secret_key: str, api_url: str, http_client: HttpClient) -> None:
        self._secret_key = secret_key
        self._api_url = api_url.rstrip("/")
        self._http = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self._secret_key)

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        response = await self._http.post(
            f"{self._api_url}{path}",
            json=payload,
            headers={"Authorization": f"Bearer {self._secret_key}"},
        )
        if response.status_code >= 400:
            log.error(
                "autumn_api_error",
                path=path,
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            raise BillingUnavailableError(
                f"Autumn {path} returned {response.status_code}"
            )
        return response

    async def check(self, customer_id: str, feature_id: str) -> BillingDecision:
        if not self.is_configured:
            log.debug("billing_not_configured", action="check", feature_id=feature_id)
            return BillingDecision(allowed=True)

        response = await self._post(
            "/check", {"customer_id": customer_id, "feature_id": feature_id}
        )
        data = response.json()
        allowed = bool(data.get("allowed", False))
        if not allowed:
            log.info("billing_check_denied", customer_id=customer_id, feature_id=feature_id)
        return BillingDecision(allowed=allowed)

    async def track(
        self,
        customer_id: str,
        feature_id: str,
        value: int = 1,
        idempotency_key: Optional[str] = None,
    ) -> None:
        if not self.is_configured:
            log.debug("billing_not_configured", action="track", feature_id=feature_id)
            return

        payload = {"customer_id": customer_id, "feature_id": feature_id, "value": value}
        if idempotency_key:
            payload["idempotency_key"] = idempotency_key
        await self._post("/track", payload)
