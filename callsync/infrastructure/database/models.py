"""SQLAlchemy database models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from callsync.infrastructure.database.connection import Base


class ApiCredential(Base):
    """HighLevel OAuth connection per tenant."""

    __tablename__ = "api_credentials"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    location_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # Location/Company
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class BillingAccount(Base):
    """Per-tenant plan configuration. Rates are cents per minute."""

    __tablename__ = "billing_accounts"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    inbound_rate_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    outbound_rate_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    inbound_plan: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    outbound_plan: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    calls_reset_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    month_spent_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class Agent(Base):
    """HighLevel Voice AI agent assigned to a tenant."""

    __tablename__ = "agents"
    __table_args__ = (
        UniqueConstraint("tenant_id", "highlevel_agent_id", name="uq_agents_tenant_hl_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    highlevel_agent_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class PhoneNumber(Base):
    """Phone number owned by a tenant."""

    __tablename__ = "phone_numbers"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class AgentPhoneNumber(Base):
    """Assignment of phone numbers to agents."""

    __tablename__ = "agent_phone_numbers"

    agent_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True
    )
    phone_number_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("phone_numbers.id", ondelete="CASCADE"), primary_key=True
    )


class DeletedCall(Base):
    """Calls removed by the tenant; never re-imported by regular syncs."""

    __tablename__ = "deleted_calls"
    __table_args__ = (
        UniqueConstraint("tenant_id", "highlevel_call_id", name="uq_deleted_calls_tenant_call"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    highlevel_call_id: Mapped[str] = mapped_column(String(64), nullable=False)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    deleted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class CallRecord(Base):
    """A synced HighLevel call."""

    __tablename__ = "call_records"
    __table_args__ = (
        UniqueConstraint("tenant_id", "highlevel_call_id", name="uq_call_records_tenant_call"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    highlevel_call_id: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)  # inbound/outbound
    from_number: Mapped[str] = mapped_column(String(32), nullable=False)
    to_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    display_cost: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    agent_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("agents.id", ondelete="SET NULL"), nullable=True
    )
    phone_number_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("phone_numbers.id", ondelete="SET NULL"), nullable=True
    )
    recording_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transcript: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    message_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    location_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_test_call: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    call_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    call_ended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    raw_payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class UsageLedgerEntry(Base):
    """Billable usage of one call. At most one row per call."""

    __tablename__ = "usage_ledger_entries"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    call_record_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("call_records.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    usage_type: Mapped[str] = mapped_column(String(20), nullable=False)  # inbound/outbound
    occurred_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class CallSyncRun(Base):
    """Audit record of one call sync invocation."""

    __tablename__ = "call_sync_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sync_kind: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # manual/auto/admin_backfill
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )  # in_progress/completed/failed
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    triggered_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    requested_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    requested_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    effective_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    effective_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    bypassed_cutoff: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    page_trace: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    log_lines: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    skip_reasons: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    skipped_sample: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    total_fetched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    inserted_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duplicates_dropped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    enrichment_failures: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ledger_errors: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    api_time_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_time_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
