"""Create call sync tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # api_credentials table
    op.create_table(
        "api_credentials",
        sa.Column("id", sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location_id", sa.String(64), nullable=True),
        sa.Column("user_type", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", name="uq_api_credentials_tenant"),
    )

    # billing_accounts table
    op.create_table(
        "billing_accounts",
        sa.Column("id", sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("inbound_rate_cents", sa.Integer(), nullable=True),
        sa.Column("outbound_rate_cents", sa.Integer(), nullable=True),
        sa.Column("inbound_plan", sa.String(50), nullable=True),
        sa.Column("outbound_plan", sa.String(50), nullable=True),
        sa.Column("calls_reset_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("month_spent_cents", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", name="uq_billing_accounts_tenant"),
    )

    # agents table
    op.create_table(
        "agents",
        sa.Column("id", sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("highlevel_agent_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "highlevel_agent_id", name="uq_agents_tenant_hl_id"),
    )
    op.create_index("ix_agents_tenant_id", "agents", ["tenant_id"])

    # phone_numbers table
    op.create_table(
        "phone_numbers",
        sa.Column("id", sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("phone_number", sa.String(32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_phone_numbers_tenant_id", "phone_numbers", ["tenant_id"])

    # agent_phone_numbers association table
    op.create_table(
        "agent_phone_numbers",
        sa.Column("agent_id", sa.BigInteger(), nullable=False),
        sa.Column("phone_number_id", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["agent_id"], ["agents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["phone_number_id"], ["phone_numbers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("agent_id", "phone_number_id"),
    )

    # deleted_calls table
    op.create_table(
        "deleted_calls",
        sa.Column("id", sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("highlevel_call_id", sa.String(64), nullable=False),
        sa.Column("deleted_by", sa.String(64), nullable=True),
        sa.Column(
            "deleted_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id", "highlevel_call_id", name="uq_deleted_calls_tenant_call"
        ),
    )
    op.create_index("ix_deleted_calls_tenant_id", "deleted_calls", ["tenant_id"])

    # call_records table
    op.create_table(
        "call_records",
        sa.Column("id", sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("highlevel_call_id", sa.String(64), nullable=False),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("from_number", sa.String(32), nullable=False),
        sa.Column("to_number", sa.String(32), nullable=True),
        sa.Column("contact_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(50), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("display_cost", sa.String(20), nullable=True),
        sa.Column("agent_id", sa.BigInteger(), nullable=True),
        sa.Column("phone_number_id", sa.BigInteger(), nullable=True),
        sa.Column("recording_url", sa.Text(), nullable=True),
        sa.Column("transcript", sa.Text(), nullable=True),
        sa.Column("message_id", sa.String(64), nullable=True),
        sa.Column("location_id", sa.String(64), nullable=True),
        sa.Column("is_test_call", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("call_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("call_ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("raw_payload", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["agent_id"], ["agents.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["phone_number_id"], ["phone_numbers.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id", "highlevel_call_id", name="uq_call_records_tenant_call"
        ),
    )
    op.create_index("ix_call_records_tenant_id", "call_records", ["tenant_id"])
    op.create_index("ix_call_records_call_started_at", "call_records", ["call_started_at"])

    # usage_ledger_entries table
    op.create_table(
        "usage_ledger_entries",
        sa.Column("id", sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column("call_record_id", sa.BigInteger(), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("usage_type", sa.String(20), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["call_record_id"], ["call_records.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("call_record_id", name="uq_usage_ledger_call_record"),
    )
    op.create_index("ix_usage_ledger_entries_tenant_id", "usage_ledger_entries", ["tenant_id"])

    # call_sync_runs table
    op.create_table(
        "call_sync_runs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("sync_kind", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("triggered_by", sa.String(64), nullable=True),
        sa.Column("requested_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("requested_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("effective_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("effective_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("bypassed_cutoff", sa.DateTime(timezone=True), nullable=True),
        sa.Column("page_trace", sa.JSON(), nullable=True),
        sa.Column("log_lines", sa.JSON(), nullable=True),
        sa.Column("skip_reasons", sa.JSON(), nullable=True),
        sa.Column("skipped_sample", sa.JSON(), nullable=True),
        sa.Column("total_fetched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("inserted_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duplicates_dropped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("enrichment_failures", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ledger_errors", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("api_time_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_time_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_details", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_call_sync_runs_tenant_id", "call_sync_runs", ["tenant_id"])
    op.create_index("ix_call_sync_runs_status", "call_sync_runs", ["status"])


def downgrade() -> None:
    op.drop_table("call_sync_runs")
    op.drop_table("usage_ledger_entries")
    op.drop_table("call_records")
    op.drop_table("deleted_calls")
    op.drop_table("agent_phone_numbers")
    op.drop_table("phone_numbers")
    op.drop_table("agents")
    op.drop_table("billing_accounts")
    op.drop_table("api_credentials")
