"""Persistence for credentials, reference data, calls, usage ledger and sync runs.

All statements are plain SQL executed on the shared async engine with
PostgreSQL (ON CONFLICT) and MySQL (ON DUPLICATE KEY UPDATE) variants
where upserts are involved.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from callsync.core.exceptions import DatabaseError
from callsync.core.logging import get_logger
from callsync.domain.entities.billing import BillingPlan
from callsync.domain.entities.call import NormalizedCall
from callsync.domain.entities.reference import AgentIndex, AgentRef, Credential, PhoneRef
from callsync.domain.entities.sync_run import SyncRunState
from callsync.infrastructure.database.connection import get_dialect, get_engine

logger = get_logger(__name__)

CALL_COLUMNS = [
    "tenant_id",
    "highlevel_call_id",
    "direction",
    "from_number",
    "to_number",
    "status",
    "duration_seconds",
    "cost",
    "display_cost",
    "agent_id",
    "phone_number_id",
    "contact_name",
    "recording_url",
    "transcript",
    "message_id",
    "location_id",
    "is_test_call",
    "call_started_at",
    "call_ended_at",
    "raw_payload",
]

RUN_JSON_COLUMNS = ("page_trace", "log_lines", "skip_reasons", "skipped_sample", "error_details")


def _dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _load_json(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _Repository:
    """Base for repositories sharing the engine and dialect."""

    def __init__(self, engine: AsyncEngine | None = None, dialect: str | None = None):
        self._engine = engine
        self._dialect = dialect

    @property
    def engine(self) -> AsyncEngine:
        return self._engine or get_engine()

    @property
    def dialect(self) -> str:
        return self._dialect or get_dialect()


class CredentialRepository(_Repository):
    """HighLevel OAuth tokens per tenant (api_credentials)."""

    async def get_active(self, tenant_id: str) -> Credential | None:
        query = text(
            "SELECT tenant_id, access_token, refresh_token, token_expires_at, "
            "location_id, user_type "
            "FROM api_credentials "
            "WHERE tenant_id = :tenant_id AND is_active = :active"
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(query, {"tenant_id": tenant_id, "active": True})
            row = result.mappings().first()

        if row is None:
            return None
        data = dict(row)
        data["token_expires_at"] = _as_utc(data.get("token_expires_at"))
        return Credential.model_validate(data)

    async def save_tokens(
        self,
        tenant_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: datetime,
    ) -> None:
        """Store a refreshed token pair in one UPDATE."""
        query = text(
            "UPDATE api_credentials "
            "SET access_token = :access_token, "
            "    refresh_token = :refresh_token, "
            "    token_expires_at = :expires_at, "
            "    last_used_at = :now, "
            "    updated_at = :now "
            "WHERE tenant_id = :tenant_id"
        )
        async with self.engine.begin() as conn:
            await conn.execute(
                query,
                {
                    "tenant_id": tenant_id,
                    "access_token": access_token,
                    "refresh_token": refresh_token,
                    "expires_at": expires_at,
                    "now": _utcnow(),
                },
            )
        logger.info("Stored refreshed token", tenant_id=tenant_id, expires_at=expires_at.isoformat())

    async def list_active_tenant_ids(self) -> list[str]:
        query = text(
            "SELECT tenant_id FROM api_credentials "
            "WHERE is_active = :active ORDER BY tenant_id"
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(query, {"active": True})
            return [row[0] for row in result.fetchall()]


class ReferenceRepository(_Repository):
    """Read access to billing accounts, agents, phone numbers and deleted calls."""

    async def get_billing_plan(self, tenant_id: str) -> BillingPlan | None:
        query = text(
            "SELECT tenant_id, inbound_rate_cents, outbound_rate_cents, "
            "inbound_plan, outbound_plan, calls_reset_at "
            "FROM billing_accounts WHERE tenant_id = :tenant_id"
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(query, {"tenant_id": tenant_id})
            row = result.mappings().first()

        if row is None:
            return None
        data = dict(row)
        data["calls_reset_at"] = _as_utc(data.get("calls_reset_at"))
        return BillingPlan.model_validate(data)

    async def get_agent_index(self, tenant_id: str) -> AgentIndex:
        """Agents of the tenant with their assigned phone numbers."""
        query = text(
            "SELECT a.id, a.highlevel_agent_id, a.name, a.is_active, "
            "       p.id AS phone_id, p.phone_number "
            "FROM agents a "
            "LEFT JOIN agent_phone_numbers apn ON apn.agent_id = a.id "
            "LEFT JOIN phone_numbers p ON p.id = apn.phone_number_id "
            "WHERE a.tenant_id = :tenant_id "
            "ORDER BY a.id, p.id"
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(query, {"tenant_id": tenant_id})
            rows = result.mappings().all()

        index = AgentIndex()
        for row in rows:
            agent = index.agents.get(row["highlevel_agent_id"])
            if agent is None:
                agent = AgentRef(
                    id=row["id"],
                    highlevel_agent_id=row["highlevel_agent_id"],
                    name=row["name"],
                    is_active=bool(row["is_active"]),
                )
                index.agents[agent.highlevel_agent_id] = agent
            if row["phone_id"] is not None:
                agent.phone_numbers.append(PhoneRef(row["phone_id"], row["phone_number"] or ""))
        return index

    async def get_deleted_call_ids(self, tenant_id: str) -> set[str]:
        query = text(
            "SELECT highlevel_call_id FROM deleted_calls WHERE tenant_id = :tenant_id"
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(query, {"tenant_id": tenant_id})
            return {row[0] for row in result.fetchall()}

    async def mark_agents_seen(self, tenant_id: str, seen: dict[int, Optional[str]]) -> None:
        """Flag agents observed in this run as active and verified.

        The stored name is refreshed only when upstream supplied a
        non-empty one.
        """
        if not seen:
            return
        now = _utcnow()
        with_name = text(
            "UPDATE agents SET is_active = :active, last_verified_at = :now, name = :name "
            "WHERE id = :agent_id AND tenant_id = :tenant_id"
        )
        without_name = text(
            "UPDATE agents SET is_active = :active, last_verified_at = :now "
            "WHERE id = :agent_id AND tenant_id = :tenant_id"
        )
        async with self.engine.begin() as conn:
            for agent_id, name in seen.items():
                params = {"active": True, "now": now, "agent_id": agent_id, "tenant_id": tenant_id}
                if name and name.strip():
                    await conn.execute(with_name, {**params, "name": name.strip()})
                else:
                    await conn.execute(without_name, params)


class CallRepository(_Repository):
    """call_records keyed by (tenant_id, highlevel_call_id)."""

    async def find_id_by_upstream_id(self, tenant_id: str, upstream_call_id: str) -> int | None:
        query = text(
            "SELECT id FROM call_records "
            "WHERE tenant_id = :tenant_id AND highlevel_call_id = :call_id"
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(
                query, {"tenant_id": tenant_id, "call_id": upstream_call_id}
            )
            return result.scalar()

    @staticmethod
    def _params(call: NormalizedCall) -> dict[str, Any]:
        data = call.to_db_dict()
        data["raw_payload"] = _dump_json(data["raw_payload"])
        return data

    async def insert(self, call: NormalizedCall) -> int:
        """Insert a call; a concurrent insert of the same call turns into an update.

        Returns:
            The call_records primary key
        """
        data = self._params(call)
        cols = list(data.keys())
        placeholders = [f":{c}" for c in cols]
        mutable = [c for c in cols if c not in ("tenant_id", "highlevel_call_id")]

        async with self.engine.begin() as conn:
            if self.dialect == "mysql":
                update_cols = [f"{c} = VALUES({c})" for c in mutable]
                query = text(
                    f"INSERT INTO call_records ({', '.join(cols)}) "
                    f"VALUES ({', '.join(placeholders)}) "
                    f"ON DUPLICATE KEY UPDATE id = LAST_INSERT_ID(id), "
                    f"{', '.join(update_cols)}, "
                    f"updated_at = NOW()"
                )
                result = await conn.execute(query, data)
                return result.lastrowid

            update_cols = [f"{c} = EXCLUDED.{c}" for c in mutable]
            query = text(
                f"INSERT INTO call_records ({', '.join(cols)}) "
                f"VALUES ({', '.join(placeholders)}) "
                f"ON CONFLICT (tenant_id, highlevel_call_id) DO UPDATE SET "
                f"{', '.join(update_cols)}, "
                f"updated_at = NOW() "
                f"RETURNING id"
            )
            result = await conn.execute(query, data)
            return result.scalar()

    async def update(self, record_id: int, call: NormalizedCall) -> None:
        """Overwrite every mutable field of an existing call."""
        data = self._params(call)
        mutable = [c for c in CALL_COLUMNS if c not in ("tenant_id", "highlevel_call_id")]
        assignments = ", ".join(f"{c} = :{c}" for c in mutable)
        query = text(
            f"UPDATE call_records SET {assignments}, updated_at = NOW() "
            f"WHERE id = :record_id"
        )
        params = {c: data[c] for c in mutable}
        params["record_id"] = record_id
        async with self.engine.begin() as conn:
            await conn.execute(query, params)

    async def get_latest_started_at(self, tenant_id: str) -> datetime | None:
        query = text(
            "SELECT MAX(call_started_at) FROM call_records WHERE tenant_id = :tenant_id"
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(query, {"tenant_id": tenant_id})
            return _as_utc(result.scalar())


class UsageLedgerRepository(_Repository):
    """usage_ledger_entries, one row per billable call."""

    async def upsert_for_call(
        self,
        call_record_id: int,
        tenant_id: str,
        amount_cents: int,
        usage_type: str,
        occurred_at: Optional[datetime],
    ) -> None:
        """Create the entry or update amount/type/timestamp in place."""
        params = {
            "call_record_id": call_record_id,
            "tenant_id": tenant_id,
            "amount_cents": amount_cents,
            "usage_type": usage_type,
            "occurred_at": occurred_at,
        }
        cols = "call_record_id, tenant_id, amount_cents, usage_type, occurred_at"
        values = ":call_record_id, :tenant_id, :amount_cents, :usage_type, :occurred_at"

        if self.dialect == "mysql":
            query = text(
                f"INSERT INTO usage_ledger_entries ({cols}) VALUES ({values}) "
                "ON DUPLICATE KEY UPDATE "
                "amount_cents = VALUES(amount_cents), "
                "usage_type = VALUES(usage_type), "
                "occurred_at = VALUES(occurred_at), "
                "updated_at = NOW()"
            )
        else:
            query = text(
                f"INSERT INTO usage_ledger_entries ({cols}) VALUES ({values}) "
                "ON CONFLICT (call_record_id) DO UPDATE SET "
                "amount_cents = EXCLUDED.amount_cents, "
                "usage_type = EXCLUDED.usage_type, "
                "occurred_at = EXCLUDED.occurred_at, "
                "updated_at = NOW()"
            )

        async with self.engine.begin() as conn:
            await conn.execute(query, params)

    async def delete_for_call(self, call_record_id: int) -> int:
        query = text(
            "DELETE FROM usage_ledger_entries WHERE call_record_id = :call_record_id"
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(query, {"call_record_id": call_record_id})
            return result.rowcount or 0


class SyncRunRepository(_Repository):
    """call_sync_runs audit rows."""

    async def create(self, run: SyncRunState) -> None:
        query = text(
            "INSERT INTO call_sync_runs "
            "(id, tenant_id, sync_kind, status, timezone, triggered_by, "
            " requested_start, requested_end, started_at) "
            "VALUES (:id, :tenant_id, :sync_kind, :status, :timezone, :triggered_by, "
            " :requested_start, :requested_end, :started_at)"
        )
        data = run.to_db_dict()
        params = {
            key: data[key]
            for key in (
                "id",
                "tenant_id",
                "sync_kind",
                "status",
                "timezone",
                "triggered_by",
                "requested_start",
                "requested_end",
                "started_at",
            )
        }
        try:
            async with self.engine.begin() as conn:
                await conn.execute(query, params)
        except SQLAlchemyError as e:
            logger.error("Failed to create sync run", run_id=run.id, error=str(e))
            raise DatabaseError(f"Failed to create sync run: {e}", {"run_id": run.id}) from e

    async def finalize(self, run: SyncRunState) -> None:
        """Write the final state of a run."""
        data = run.to_db_dict()
        for key in RUN_JSON_COLUMNS:
            data[key] = _dump_json(data[key])

        fields = [key for key in data if key not in ("id", "tenant_id", "started_at")]
        assignments = ", ".join(f"{key} = :{key}" for key in fields)
        query = text(f"UPDATE call_sync_runs SET {assignments} WHERE id = :id")
        params = {key: data[key] for key in fields}
        params["id"] = run.id

        try:
            async with self.engine.begin() as conn:
                await conn.execute(query, params)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to finalize sync run: {e}", {"run_id": run.id}) from e

    async def get(self, run_id: str) -> dict[str, Any] | None:
        query = text("SELECT * FROM call_sync_runs WHERE id = :run_id")
        async with self.engine.begin() as conn:
            result = await conn.execute(query, {"run_id": run_id})
            row = result.mappings().first()
        return self._row_to_dict(row) if row else None

    async def list_for_tenant(self, tenant_id: str, limit: int = 20) -> list[dict[str, Any]]:
        query = text(
            "SELECT * FROM call_sync_runs "
            "WHERE tenant_id = :tenant_id "
            "ORDER BY started_at DESC "
            "LIMIT :limit"
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(query, {"tenant_id": tenant_id, "limit": limit})
            rows = result.mappings().all()
        return [self._row_to_dict(row) for row in rows]

    @staticmethod
    def _row_to_dict(row: Any) -> dict[str, Any]:
        data = dict(row)
        for key in RUN_JSON_COLUMNS:
            if key in data:
                data[key] = _load_json(data[key])
        return data
