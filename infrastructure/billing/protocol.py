"""BillingProvider protocol."""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class BillingDecision:
    allowed: bool


class BillingProvider(Protocol):
    async def check(self, customer_id: str, feature_id: str) -> BillingDecision: ...

    async def track(
        self,
        customer_id: str,
        feature_id: str,
        value: int = 1,
        idempotency_key: Optional[str] = None,
    ) -> None: ...
