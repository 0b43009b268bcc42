"""Maps raw HighLevel call logs into stored call records."""

import re
from typing import Any, Optional

from pydantic import ValidationError

from callsync.core.logging import get_logger
from callsync.domain.entities.base import CallDirection, SkipReason, SyncKind
from callsync.domain.entities.billing import BillingPlan
from callsync.domain.entities.call import (
    NormalizedCall,
    RawCall,
    SkippedCall,
    extract_call_id,
    extract_from_number,
)
from callsync.domain.entities.reference import AgentIndex, AgentRef, normalize_phone
from callsync.domain.services.cost_engine import CostEngine

logger = get_logger(__name__)

UNKNOWN_CONTACT = "Unknown"

PLACEHOLDER_NUMBERS = frozenset(
    {"unknown", "anonymous", "restricted", "private", "null", "none", "undefined", "n/a"}
)

# Values that look like identifiers rather than a person's name
_PHONE_LIKE = re.compile(r"^[\d\s()+\-.]+$")
_ID_TOKEN = re.compile(r"^[A-Za-z0-9_-]{16,}$")


def is_placeholder_number(value: Optional[str]) -> bool:
    """True for empty, whitespace-only or placeholder origin numbers."""
    if value is None:
        return True
    stripped = value.strip()
    if not stripped:
        return True
    if stripped.lower() in PLACEHOLDER_NUMBERS:
        return True
    return not any(ch.isdigit() for ch in stripped)


def looks_like_identifier(value: str, contact_id: Optional[str] = None) -> bool:
    if contact_id and value == contact_id:
        return True
    if _PHONE_LIKE.match(value):
        return True
    if " " not in value and _ID_TOKEN.match(value):
        has_digit = any(ch.isdigit() for ch in value)
        has_alpha = any(ch.isalpha() for ch in value)
        return has_digit and has_alpha
    return False


def build_display_name(raw: RawCall) -> str:
    """Contact name, else first + last name, else ``Unknown``."""
    candidate = (raw.contact_name or "").strip()
    if not candidate:
        parts = [p.strip() for p in (raw.first_name, raw.last_name) if p and p.strip()]
        candidate = " ".join(parts)
    if not candidate or looks_like_identifier(candidate, raw.contact_id):
        return UNKNOWN_CONTACT
    return candidate


def resolve_phone_number_id(
    agent: Optional[AgentRef],
    direction: CallDirection,
    from_number: Optional[str],
    to_number: Optional[str],
) -> Optional[int]:
    """Match the call's numbers against the agent's numbers.

    The tenant-side number (``to`` for inbound, ``from`` for outbound) is
    tried first, then the other side. An agent with exactly one number
    falls back to that number.
    """
    if agent is None or not agent.phone_numbers:
        return None

    if direction is CallDirection.OUTBOUND:
        candidates = (from_number, to_number)
    else:
        candidates = (to_number, from_number)

    by_number = {phone.normalized: phone.id for phone in agent.phone_numbers if phone.normalized}
    for number in candidates:
        normalized = normalize_phone(number)
        if normalized and normalized in by_number:
            return by_number[normalized]

    if len(agent.phone_numbers) == 1:
        return agent.phone_numbers[0].id
    return None


class CallNormalizer:
    """Classifies a raw call as skipped or normalized.

    Skip order (first match wins): missing call id, no from number, test
    call, previously deleted (not applied to admin backfills).
    """

    def __init__(self, cost_engine: CostEngine | None = None):
        self._cost_engine = cost_engine or CostEngine()

    def normalize(
        self,
        payload: dict[str, Any],
        tenant_id: str,
        plan: Optional[BillingPlan],
        agents: AgentIndex,
        deleted_call_ids: set[str],
        kind: SyncKind = SyncKind.MANUAL,
    ) -> NormalizedCall | SkippedCall:
        call_id = extract_call_id(payload)
        if call_id is None:
            return SkippedCall(
                SkipReason.MISSING_CALL_ID, message="Call log has no id", payload=payload
            )

        from_number = extract_from_number(payload)
        if is_placeholder_number(from_number):
            return SkippedCall(
                SkipReason.NO_FROM_NUMBER,
                call_id=call_id,
                message=f"from number {from_number!r}",
                payload=payload,
            )

        try:
            raw = RawCall.from_payload(payload)
        except ValidationError as e:
            logger.warning("Call log failed validation", call_id=call_id, error=str(e))
            return SkippedCall(
                SkipReason.NORMALIZATION_ERROR,
                call_id=call_id,
                message=str(e),
                payload=payload,
            )

        if raw.is_test_call:
            return SkippedCall(SkipReason.IS_TEST_CALL, call_id=call_id, payload=payload)

        if call_id in deleted_call_ids and kind is not SyncKind.ADMIN_BACKFILL:
            return SkippedCall(
                SkipReason.PREVIOUSLY_DELETED, call_id=call_id, payload=payload
            )

        direction = CallDirection.from_upstream(raw.direction)
        agent = agents.get(raw.agent_id)
        duration = raw.duration or 0
        cost = self._cost_engine.compute(direction, duration, plan)

        return NormalizedCall(
            tenant_id=tenant_id,
            upstream_call_id=call_id,
            direction=direction,
            from_number=raw.from_number.strip(),
            to_number=(raw.to_number or "").strip(),
            status=raw.status,
            duration_seconds=duration,
            cost=cost.cost,
            display_cost=cost.display_cost,
            agent_id=agent.id if agent else None,
            agent_name=raw.agent_name,
            phone_number_id=resolve_phone_number_id(
                agent, direction, raw.from_number, raw.to_number
            ),
            contact_name=build_display_name(raw),
            recording_url=raw.recording_url or None,
            transcript=raw.transcript or None,
            message_id=raw.message_id or None,
            location_id=raw.location_id,
            is_test_call=bool(raw.is_test_call),
            started_at=raw.started_at,
            ended_at=raw.ended_at,
            raw_payload=payload,
        )
