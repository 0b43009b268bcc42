"""Call entities: the upstream call-log payload and its stored form."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from dateutil import parser
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
    model_validator,
)

from callsync.domain.entities.base import CallDirection

CALL_ID_ALIASES = ("id", "_id", "callId", "call_id")
FROM_NUMBER_ALIASES = ("fromNumber", "from_number", "from")


def extract_call_id(payload: dict[str, Any]) -> str | None:
    """Return the upstream call id of a raw payload, or None if it has none."""
    for key in CALL_ID_ALIASES:
        value = payload.get(key)
        if value not in (None, ""):
            return str(value).strip() or None
    return None


def extract_from_number(payload: dict[str, Any]) -> str | None:
    """Return the origin number of a raw payload without validating the rest."""
    for key in FROM_NUMBER_ALIASES:
        if key in payload:
            value = payload[key]
            return None if value is None else str(value).strip()
    return None


class RawCall(BaseModel):
    """HighLevel Voice AI call log (voice-ai/dashboard/call-logs).

    HighLevel has shipped several spellings of the same fields over time;
    all of them are folded into one canonical attribute here so nothing
    downstream needs to know about the aliases.
    """

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    # Identifiers
    id: Optional[str] = Field(None, validation_alias=AliasChoices(*CALL_ID_ALIASES))
    location_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("locationId", "location_id")
    )
    message_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("messageId", "message_id", "conversationMessageId"),
    )

    # Parties
    direction: Optional[str] = None
    from_number: Optional[str] = Field(
        None, validation_alias=AliasChoices(*FROM_NUMBER_ALIASES)
    )
    to_number: Optional[str] = Field(
        None, validation_alias=AliasChoices("toNumber", "to_number", "to")
    )
    agent_id: Optional[str] = Field(None, validation_alias=AliasChoices("agentId", "agent_id"))
    agent_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("agentName", "agent_name")
    )
    contact_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("contactId", "contact_id")
    )
    contact_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("contactName", "contact_name")
    )
    first_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("firstName", "first_name")
    )
    last_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("lastName", "last_name")
    )

    # Outcome
    status: Optional[str] = None
    duration: Optional[int] = Field(
        None, validation_alias=AliasChoices("duration", "durationInSeconds", "duration_seconds")
    )
    is_test_call: Optional[bool] = Field(
        None, validation_alias=AliasChoices("isTestCall", "is_test_call", "testCall")
    )

    # Artifacts
    recording_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("recordingUrl", "recordingLink", "recording_url")
    )
    transcript: Optional[str] = None

    # Timing
    started_at: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("createdAt", "startTime", "startedAt", "call_started_at"),
    )
    ended_at: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("endTime", "completedAt", "endedAt", "call_ended_at"),
    )

    _payload: dict[str, Any] = PrivateAttr(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _flatten_nested(cls, data: Any) -> Any:
        """Lift agent/contact details that some payloads nest one level down."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        agent = data.get("agent")
        if isinstance(agent, dict):
            data.setdefault("agentId", agent.get("id") or agent.get("_id"))
            data.setdefault("agentName", agent.get("name"))
        contact = data.get("contact")
        if isinstance(contact, dict):
            data.setdefault("contactId", contact.get("id") or contact.get("_id"))
            data.setdefault("contactName", contact.get("name"))
            data.setdefault("firstName", contact.get("firstName"))
            data.setdefault("lastName", contact.get("lastName"))
        return data

    @field_validator(
        "id",
        "location_id",
        "message_id",
        "from_number",
        "to_number",
        "agent_id",
        "contact_id",
        mode="before",
    )
    @classmethod
    def _coerce_to_str(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value))
        return value

    @field_validator("duration", mode="before")
    @classmethod
    def _coerce_duration(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, str):
            return int(float(value))
        if isinstance(value, float):
            return int(value)
        return value

    @field_validator("started_at", "ended_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        """Accept epoch milliseconds and loosely formatted date strings."""
        if value is None or value == "":
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            seconds = value / 1000 if value > 10_000_000_000 else value
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        if isinstance(value, str):
            return parser.parse(value)
        return value

    @field_validator("started_at", "ended_at")
    @classmethod
    def _ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RawCall":
        """Validate an upstream payload, keeping the original dict for storage."""
        call = cls.model_validate(payload)
        call._payload = dict(payload)
        return call

    @property
    def payload(self) -> dict[str, Any]:
        """The untouched upstream payload."""
        return self._payload


class NormalizedCall(BaseModel):
    """A call mapped into the stored CallRecord shape, cost included."""

    tenant_id: str
    upstream_call_id: str
    direction: CallDirection
    from_number: str
    to_number: str = ""
    status: Optional[str] = None
    duration_seconds: int = 0
    cost: Decimal = Decimal("0.00")
    display_cost: Optional[str] = None
    agent_id: Optional[int] = None
    agent_name: Optional[str] = None
    phone_number_id: Optional[int] = None
    contact_name: str = "Unknown"
    recording_url: Optional[str] = None
    transcript: Optional[str] = None
    message_id: Optional[str] = None
    location_id: Optional[str] = None
    is_test_call: bool = False
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_billable(self) -> bool:
        """Billable calls get exactly one usage ledger entry."""
        return self.cost > 0 and self.display_cost is None

    @property
    def cost_cents(self) -> int:
        return int((self.cost * 100).to_integral_value(rounding=ROUND_HALF_UP))

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to the call_records column mapping."""
        return {
            "tenant_id": self.tenant_id,
            "highlevel_call_id": self.upstream_call_id,
            "direction": self.direction.value,
            "from_number": self.from_number,
            "to_number": self.to_number,
            "status": self.status,
            "duration_seconds": self.duration_seconds,
            "cost": self.cost,
            "display_cost": self.display_cost,
            "agent_id": self.agent_id,
            "phone_number_id": self.phone_number_id,
            "contact_name": self.contact_name,
            "recording_url": self.recording_url,
            "transcript": self.transcript,
            "message_id": self.message_id,
            "location_id": self.location_id,
            "is_test_call": self.is_test_call,
            "call_started_at": self.started_at,
            "call_ended_at": self.ended_at,
            "raw_payload": self.raw_payload,
        }


@dataclass
class SkippedCall:
    """A record that will not be persisted, with the reason code."""

    reason: str
    call_id: Optional[str] = None
    message: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)
