"""In-memory stand-ins for repositories and the HighLevel client."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.exc import OperationalError

from callsync.core.exceptions import DatabaseError, HighLevelAPIError, HighLevelAuthError
from callsync.domain.entities.billing import BillingPlan
from callsync.domain.entities.call import NormalizedCall
from callsync.domain.entities.reference import AgentIndex, Credential
from callsync.domain.entities.sync_run import SyncRunState


def db_error(message: str = "database unavailable") -> OperationalError:
    return OperationalError("statement", {}, Exception(message))


def _parse(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class FakeHighLevelClient:
    """Serves ``call_logs`` filtered by createdAt within the requested window.

    Windows are inclusive on both ends, so a call stamped exactly on a
    shared boundary is returned by both windows.
    """

    def __init__(
        self,
        call_logs: list[dict[str, Any]] | None = None,
        details: dict[str, dict[str, Any]] | None = None,
        auth_failures: int = 0,
        error: Exception | None = None,
    ):
        self.call_logs = list(call_logs or [])
        self.details = dict(details or {})
        self.auth_failures = auth_failures
        self.error = error
        self.requests: list[dict[str, Any]] = []
        self.detail_requests: list[str] = []
        self.refresh_calls: list[dict[str, Any]] = []
        self.closed = False

    async def list_call_logs(
        self,
        access_token: str,
        location_id: str | None,
        start: datetime,
        end: datetime,
        tz_name: str,
        page: int = 1,
        page_size: int = 50,
    ) -> list[dict[str, Any]]:
        self.requests.append(
            {
                "access_token": access_token,
                "location_id": location_id,
                "start": start,
                "end": end,
                "timezone": tz_name,
                "page": page,
                "page_size": page_size,
            }
        )
        if self.auth_failures > 0:
            self.auth_failures -= 1
            raise HighLevelAuthError("HighLevel authentication failed", body="invalid token")
        if self.error is not None:
            raise self.error

        in_window = [
            log
            for log in self.call_logs
            if (created := _parse(log.get("createdAt"))) is not None and start <= created <= end
        ]
        offset = (page - 1) * page_size
        return in_window[offset:offset + page_size]

    async def get_call_log(
        self,
        access_token: str,
        call_id: str,
        location_id: str | None = None,
    ) -> dict[str, Any]:
        self.detail_requests.append(call_id)
        if call_id not in self.details:
            raise HighLevelAPIError("Not found", status_code=404, body="{}")
        return self.details[call_id]

    async def refresh_access_token(self, refresh_token: str, user_type: str) -> dict[str, Any]:
        self.refresh_calls.append({"refresh_token": refresh_token, "user_type": user_type})
        number = len(self.refresh_calls) + 1
        return {
            "access_token": f"access-{number}",
            "refresh_token": f"refresh-{number}",
            "expires_at": datetime.now(timezone.utc) + timedelta(hours=24),
        }

    async def close(self) -> None:
        self.closed = True


class FakeCredentialRepository:
    def __init__(self, credentials: dict[str, Credential] | None = None):
        self.credentials = dict(credentials or {})
        self.saved: list[dict[str, Any]] = []

    async def get_active(self, tenant_id: str) -> Credential | None:
        credential = self.credentials.get(tenant_id)
        return credential.model_copy() if credential else None

    async def save_tokens(
        self,
        tenant_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: datetime,
    ) -> None:
        self.saved.append(
            {
                "tenant_id": tenant_id,
                "access_token": access_token,
                "refresh_token": refresh_token,
                "expires_at": expires_at,
            }
        )
        current = self.credentials[tenant_id]
        self.credentials[tenant_id] = current.model_copy(
            update={
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_expires_at": expires_at,
            }
        )

    async def list_active_tenant_ids(self) -> list[str]:
        return sorted(self.credentials)


class FakeReferenceRepository:
    def __init__(
        self,
        plan: BillingPlan | None = None,
        agents: AgentIndex | None = None,
        deleted: set[str] | None = None,
    ):
        self.plan = plan
        self.agents = agents or AgentIndex()
        self.deleted = set(deleted or set())
        self.seen: dict[int, Optional[str]] = {}

    async def get_billing_plan(self, tenant_id: str) -> BillingPlan | None:
        return self.plan

    async def get_agent_index(self, tenant_id: str) -> AgentIndex:
        return self.agents

    async def get_deleted_call_ids(self, tenant_id: str) -> set[str]:
        return set(self.deleted)

    async def mark_agents_seen(self, tenant_id: str, seen: dict[int, Optional[str]]) -> None:
        self.seen.update(seen)


class FakeCallRepository:
    """call_records keyed by (tenant_id, upstream id)."""

    def __init__(self):
        self.rows: dict[tuple[str, str], dict[str, Any]] = {}
        self.fail_insert: set[str] = set()
        self.fail_update: set[str] = set()
        self._next_id = 1

    async def find_id_by_upstream_id(self, tenant_id: str, upstream_call_id: str) -> int | None:
        row = self.rows.get((tenant_id, upstream_call_id))
        return row["id"] if row else None

    async def insert(self, call: NormalizedCall) -> int:
        if call.upstream_call_id in self.fail_insert:
            raise db_error("insert failed")
        key = (call.tenant_id, call.upstream_call_id)
        existing = self.rows.get(key)
        record_id = existing["id"] if existing else self._next_id
        if not existing:
            self._next_id += 1
        self.rows[key] = {"id": record_id, **call.to_db_dict()}
        return record_id

    async def update(self, record_id: int, call: NormalizedCall) -> None:
        if call.upstream_call_id in self.fail_update:
            raise db_error("update failed")
        self.rows[(call.tenant_id, call.upstream_call_id)] = {"id": record_id, **call.to_db_dict()}

    async def get_latest_started_at(self, tenant_id: str) -> datetime | None:
        started = [
            row["call_started_at"]
            for (tenant, _), row in self.rows.items()
            if tenant == tenant_id and row["call_started_at"] is not None
        ]
        return max(started) if started else None

    def get(self, tenant_id: str, upstream_call_id: str) -> dict[str, Any] | None:
        return self.rows.get((tenant_id, upstream_call_id))


class FakeUsageLedgerRepository:
    """usage_ledger_entries keyed by call_record_id."""

    def __init__(self):
        self.entries: dict[int, dict[str, Any]] = {}
        self.fail = False

    async def upsert_for_call(
        self,
        call_record_id: int,
        tenant_id: str,
        amount_cents: int,
        usage_type: str,
        occurred_at: Optional[datetime],
    ) -> None:
        if self.fail:
            raise db_error("ledger unavailable")
        self.entries[call_record_id] = {
            "call_record_id": call_record_id,
            "tenant_id": tenant_id,
            "amount_cents": amount_cents,
            "usage_type": usage_type,
            "occurred_at": occurred_at,
        }

    async def delete_for_call(self, call_record_id: int) -> int:
        if self.fail:
            raise db_error("ledger unavailable")
        return 1 if self.entries.pop(call_record_id, None) else 0


class FakeSyncRunRepository:
    def __init__(self):
        self.rows: dict[str, dict[str, Any]] = {}
        self.fail_finalize = False
        self.fail_create = False

    async def create(self, run: SyncRunState) -> None:
        if self.fail_create:
            raise DatabaseError("Failed to create sync run", {"run_id": run.id})
        self.rows[run.id] = run.to_db_dict()

    async def finalize(self, run: SyncRunState) -> None:
        if self.fail_finalize:
            raise DatabaseError("Failed to finalize sync run", {"run_id": run.id})
        self.rows[run.id] = run.to_db_dict()

    async def get(self, run_id: str) -> dict[str, Any] | None:
        return self.rows.get(run_id)

    async def list_for_tenant(self, tenant_id: str, limit: int = 20) -> list[dict[str, Any]]:
        rows = [row for row in self.rows.values() if row["tenant_id"] == tenant_id]
        rows.sort(key=lambda row: row["started_at"], reverse=True)
        return rows[:limit]
