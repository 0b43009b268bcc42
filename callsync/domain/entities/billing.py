"""Billing plan configuration and cost results."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from callsync.domain.entities.base import CallDirection

INCLUDED_DISPLAY_COST = "INCLUDED"


class BillingPlan(BaseModel):
    """Per-tenant billing account as read from billing_accounts."""

    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    inbound_rate_cents: Optional[int] = None
    outbound_rate_cents: Optional[int] = None
    inbound_plan: Optional[str] = None
    outbound_plan: Optional[str] = None
    calls_reset_at: Optional[datetime] = None

    def rate_for(self, direction: CallDirection) -> Optional[int]:
        """Configured rate in cents per minute, or None when unset."""
        if direction is CallDirection.OUTBOUND:
            return self.outbound_rate_cents
        return self.inbound_rate_cents


@dataclass(frozen=True)
class CostResult:
    """Computed cost of one call.

    ``display_cost`` is set when the numeric cost is suppressed, e.g.
    ``INCLUDED`` for inbound calls on an unlimited plan.
    """

    cost: Decimal
    display_cost: Optional[str] = None
    rate_cents: Optional[int] = None
