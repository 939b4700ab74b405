"""
UsageRecorder — best-effort usage events for billing.

record() never raises: a failed track call is logged and dropped, and the
request it belongs to still succeeds.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from infrastructure.billing.protocol import BillingProvider
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class UsageEvent:
    user_id: str
    feature_id: str
    # Milliseconds since epoch, strictly increasing per recorder
    timestamp: int


class UsageRecorder:
    def __init__(
        self,
        billing: BillingProvider,
        feature_id: str,
        clock_ms: Callable[[], int] = lambda: time.time_ns() // 1_000_000,
    ) -> None:
        self._billing = billing
        self._feature_id = feature_id
        self._clock_ms = clock_ms
        self._last_ts = 0

    def _next_timestamp(self) -> int:
        # Wall clock can repeat or step back; never hand out a timestamp twice
        ts = max(self._clock_ms(), self._last_ts + 1)
        self._last_ts = ts
        return ts

    def event(self, user_id: str) -> UsageEvent:
        return UsageEvent(user_id, self._feature_id, self._next_timestamp())

    async def record(self, user_id: str) -> None:
        event = self.event(user_id)
        try:
            await self._billing.track(
                event.user_id,
                event.feature_id,
                1,
                idempotency_key=f"{event.user_id}:{event.timestamp}",
            )
        except Exception as e:
            log.warning(
                "usage_record_failed",
                user_id=event.user_id,
                feature_id=event.feature_id,
                timestamp=event.timestamp,
                error=str(e),
                error_type=type(e).__name__,
            )
