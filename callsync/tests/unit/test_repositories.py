"""Unit tests for the SQL repositories against a mocked engine."""

import json
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from callsync.core.exceptions import DatabaseError
from callsync.domain.entities.base import CallDirection, SyncKind
from callsync.domain.entities.call import NormalizedCall
from callsync.domain.entities.sync_run import SyncRunState
from callsync.infrastructure.database.repositories import (
    CallRepository,
    CredentialRepository,
    ReferenceRepository,
    SyncRunRepository,
    UsageLedgerRepository,
)

TENANT_ID = "tenant-1"


@pytest.fixture
def conn(mock_db_engine):
    connection = mock_db_engine.begin.return_value.__aenter__.return_value
    connection.execute.return_value = MagicMock()
    return connection


@pytest.fixture
def result(conn):
    return conn.execute.return_value


def executed_sql(conn, index=-1) -> str:
    return str(conn.execute.call_args_list[index].args[0])


def executed_params(conn, index=-1) -> dict:
    return conn.execute.call_args_list[index].args[1]


@pytest.fixture
def call() -> NormalizedCall:
    return NormalizedCall(
        tenant_id=TENANT_ID,
        upstream_call_id="call-1",
        direction=CallDirection.INBOUND,
        from_number="+15551234567",
        duration_seconds=350,
        cost=Decimal("5.83"),
        raw_payload={"id": "call-1"},
    )


class TestCallRepository:
    """Test suite for CallRepository."""

    async def test_insert_postgres_upserts_on_natural_key(self, mock_db_engine, conn, result, call):
        """Test PostgreSQL insert uses ON CONFLICT on (tenant_id, highlevel_call_id)."""
        result.scalar.return_value = 42
        repo = CallRepository(mock_db_engine, dialect="postgresql")

        record_id = await repo.insert(call)

        sql = executed_sql(conn)
        assert record_id == 42
        assert "ON CONFLICT (tenant_id, highlevel_call_id) DO UPDATE" in sql
        assert "RETURNING id" in sql
        params = executed_params(conn)
        assert params["highlevel_call_id"] == "call-1"
        assert json.loads(params["raw_payload"]) == {"id": "call-1"}

    async def test_insert_mysql_uses_duplicate_key(self, mock_db_engine, conn, result, call):
        """Test MySQL insert returns the existing id on a duplicate key."""
        result.lastrowid = 7
        repo = CallRepository(mock_db_engine, dialect="mysql")

        record_id = await repo.insert(call)

        sql = executed_sql(conn)
        assert record_id == 7
        assert "ON DUPLICATE KEY UPDATE id = LAST_INSERT_ID(id)" in sql
        assert "ON CONFLICT" not in sql

    async def test_update_does_not_touch_natural_key(self, mock_db_engine, conn, call):
        repo = CallRepository(mock_db_engine, dialect="postgresql")

        await repo.update(5, call)

        sql = executed_sql(conn)
        params = executed_params(conn)
        assert sql.startswith("UPDATE call_records SET")
        assert "highlevel_call_id =" not in sql
        assert params["record_id"] == 5
        assert params["cost"] == Decimal("5.83")

    async def test_find_id_by_upstream_id(self, mock_db_engine, conn, result):
        result.scalar.return_value = 3
        repo = CallRepository(mock_db_engine, dialect="postgresql")

        assert await repo.find_id_by_upstream_id(TENANT_ID, "call-1") == 3
        assert executed_params(conn) == {"tenant_id": TENANT_ID, "call_id": "call-1"}

    async def test_latest_started_at_is_utc(self, mock_db_engine, result):
        result.scalar.return_value = datetime(2024, 3, 10, 15, 0)
        repo = CallRepository(mock_db_engine, dialect="postgresql")

        latest = await repo.get_latest_started_at(TENANT_ID)

        assert latest == datetime(2024, 3, 10, 15, 0, tzinfo=timezone.utc)


class TestUsageLedgerRepository:
    """Test suite for UsageLedgerRepository."""

    async def test_upsert_postgres(self, mock_db_engine, conn):
        repo = UsageLedgerRepository(mock_db_engine, dialect="postgresql")

        await repo.upsert_for_call(1, TENANT_ID, 583, "inbound", None)

        assert "ON CONFLICT (call_record_id) DO UPDATE" in executed_sql(conn)
        assert executed_params(conn)["amount_cents"] == 583

    async def test_upsert_mysql(self, mock_db_engine, conn):
        repo = UsageLedgerRepository(mock_db_engine, dialect="mysql")

        await repo.upsert_for_call(1, TENANT_ID, 583, "inbound", None)

        assert "ON DUPLICATE KEY UPDATE" in executed_sql(conn)

    async def test_delete_returns_rowcount(self, mock_db_engine, result):
        result.rowcount = 1
        repo = UsageLedgerRepository(mock_db_engine, dialect="postgresql")

        assert await repo.delete_for_call(1) == 1


class TestCredentialRepository:
    """Test suite for CredentialRepository."""

    async def test_get_active_maps_row(self, mock_db_engine, result):
        result.mappings.return_value.first.return_value = {
            "tenant_id": TENANT_ID,
            "access_token": "a",
            "refresh_token": "r",
            "token_expires_at": datetime(2024, 3, 10, 12, 0),
            "location_id": "loc-123",
            "user_type": None,
        }
        repo = CredentialRepository(mock_db_engine, dialect="postgresql")

        credential = await repo.get_active(TENANT_ID)

        assert credential.access_token == "a"
        assert credential.token_expires_at.tzinfo is timezone.utc
        assert credential.resolved_user_type == "Location"

    async def test_get_active_missing(self, mock_db_engine, result):
        result.mappings.return_value.first.return_value = None
        repo = CredentialRepository(mock_db_engine, dialect="postgresql")

        assert await repo.get_active(TENANT_ID) is None


class TestReferenceRepository:
    """Test suite for ReferenceRepository."""

    async def test_agent_index_groups_phone_numbers(self, mock_db_engine, result):
        """Test joined agent/phone rows fold into one AgentRef per agent."""
        result.mappings.return_value.all.return_value = [
            {"id": 1, "highlevel_agent_id": "a1", "name": "A", "is_active": True,
             "phone_id": 10, "phone_number": "+15550001111"},
            {"id": 1, "highlevel_agent_id": "a1", "name": "A", "is_active": True,
             "phone_id": 11, "phone_number": "+15550002222"},
            {"id": 2, "highlevel_agent_id": "a2", "name": None, "is_active": False,
             "phone_id": None, "phone_number": None},
        ]
        repo = ReferenceRepository(mock_db_engine, dialect="postgresql")

        index = await repo.get_agent_index(TENANT_ID)

        assert len(index) == 2
        assert [p.id for p in index.get("a1").phone_numbers] == [10, 11]
        assert index.get("a2").phone_numbers == []

    async def test_mark_agents_seen_keeps_name_when_missing(self, mock_db_engine, conn):
        repo = ReferenceRepository(mock_db_engine, dialect="postgresql")

        await repo.mark_agents_seen(TENANT_ID, {1: "New Name", 2: None})

        assert "name = :name" in executed_sql(conn, 0)
        assert "name" not in executed_params(conn, 1)


class TestSyncRunRepository:
    """Test suite for SyncRunRepository."""

    @pytest.fixture
    def run(self) -> SyncRunState:
        run = SyncRunState(id="run-1", tenant_id=TENANT_ID, sync_kind=SyncKind.MANUAL, timezone="UTC")
        run.skip_reasons = {"no_from_number": 2}
        return run

    async def test_finalize_serializes_json_columns(self, mock_db_engine, conn, run):
        repo = SyncRunRepository(mock_db_engine, dialect="postgresql")

        await repo.finalize(run)

        params = executed_params(conn)
        assert json.loads(params["skip_reasons"]) == {"no_from_number": 2}
        assert params["id"] == "run-1"
        assert "tenant_id" not in params

    async def test_create_failure_is_database_error(self, mock_db_engine, conn, run):
        """Test driver failures surface as DatabaseError with the run id."""
        conn.execute.side_effect = OperationalError("INSERT", {}, Exception("down"))
        repo = SyncRunRepository(mock_db_engine, dialect="postgresql")

        with pytest.raises(DatabaseError) as exc_info:
            await repo.create(run)

        assert exc_info.value.details == {"run_id": "run-1"}

    async def test_get_loads_json_columns(self, mock_db_engine, result):
        result.mappings.return_value.first.return_value = {
            "id": "run-1",
            "skip_reasons": '{"is_test_call": 1}',
            "log_lines": '["opened"]',
            "page_trace": None,
        }
        repo = SyncRunRepository(mock_db_engine, dialect="postgresql")

        row = await repo.get("run-1")

        assert row["skip_reasons"] == {"is_test_call": 1}
        assert row["log_lines"] == ["opened"]
        assert row["page_trace"] is None
