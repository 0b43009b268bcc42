"""Reference entities read by the pipeline: credentials, agents, phone numbers."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict


def normalize_phone(value: Optional[str]) -> str:
    """Digits only, country code stripped (last 10 digits)."""
    if not value:
        return ""
    digits = "".join(ch for ch in value if ch.isdigit())
    return digits[-10:]


class Credential(BaseModel):
    """Stored HighLevel OAuth connection of a tenant."""

    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    access_token: str
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    location_id: Optional[str] = None
    user_type: Optional[str] = None

    def is_expired(self, now: datetime, skew_seconds: int = 0) -> bool:
        """True when the access token must be refreshed before use.

        A credential without a stored expiry is treated as valid; the
        fetcher's reactive refresh covers upstream-side revocation.
        """
        if self.token_expires_at is None:
            return False
        expires_at = self.token_expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now + timedelta(seconds=skew_seconds)

    @property
    def resolved_user_type(self) -> str:
        if self.user_type:
            return self.user_type
        return "Location" if self.location_id else "Company"


@dataclass(frozen=True)
class PhoneRef:
    id: int
    number: str

    @property
    def normalized(self) -> str:
        return normalize_phone(self.number)


@dataclass
class AgentRef:
    """Agent known locally, with the phone numbers assigned to it."""

    id: int
    highlevel_agent_id: str
    name: Optional[str] = None
    is_active: bool = True
    phone_numbers: list[PhoneRef] = field(default_factory=list)


@dataclass
class AgentIndex:
    """Tenant agents keyed by upstream (HighLevel) agent id."""

    agents: dict[str, AgentRef] = field(default_factory=dict)

    def get(self, highlevel_agent_id: Optional[str]) -> Optional[AgentRef]:
        if not highlevel_agent_id:
            return None
        return self.agents.get(highlevel_agent_id)

    def __len__(self) -> int:
        return len(self.agents)
