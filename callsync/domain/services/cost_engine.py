"""Per-call billing cost computation."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from callsync.domain.entities.base import CallDirection
from callsync.domain.entities.billing import INCLUDED_DISPLAY_COST, BillingPlan, CostResult

UNLIMITED_PLANS = frozenset({"inbound_unlimited", "unlimited"})
CENTS = Decimal("0.01")


class CostEngine:
    """Computes call cost from the tenant's plan and rates.

    cost = duration_seconds / 60 * rate_cents / 100, rounded half-up to
    2 places. Inbound calls on an unlimited plan cost 0 and carry the
    ``INCLUDED`` display override. A direction without a configured rate
    (or a tenant without a billing account) is charged the default rate.
    """

    def __init__(self, default_rate_cents: int = 100):
        self._default_rate_cents = default_rate_cents

    @staticmethod
    def is_unlimited(plan: Optional[str]) -> bool:
        return bool(plan) and plan.strip().lower() in UNLIMITED_PLANS

    def compute(
        self,
        direction: CallDirection,
        duration_seconds: int,
        plan: Optional[BillingPlan],
    ) -> CostResult:
        if (
            direction is CallDirection.INBOUND
            and plan is not None
            and self.is_unlimited(plan.inbound_plan)
        ):
            return CostResult(cost=Decimal("0.00"), display_cost=INCLUDED_DISPLAY_COST)

        rate = plan.rate_for(direction) if plan is not None else None
        if rate is None:
            rate = self._default_rate_cents

        seconds = max(int(duration_seconds or 0), 0)
        cost = (Decimal(seconds) / Decimal(60)) * Decimal(rate) / Decimal(100)
        return CostResult(
            cost=cost.quantize(CENTS, rounding=ROUND_HALF_UP),
            rate_cents=rate,
        )
