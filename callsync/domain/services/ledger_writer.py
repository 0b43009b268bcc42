"""Idempotent persistence of calls and their usage ledger entries."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from callsync.core.exceptions import DatabaseError
from callsync.core.logging import get_logger
from callsync.domain.entities.base import SkipReason
from callsync.domain.entities.call import NormalizedCall
from callsync.infrastructure.database.repositories import CallRepository, UsageLedgerRepository

logger = get_logger(__name__)


class PersistStatus:
    """Enum-like class for persist outcomes."""

    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass
class PersistOutcome:
    status: str
    call_record_id: Optional[int] = None
    skip_reason: Optional[str] = None
    error: Optional[str] = None
    ledger_error: Optional[str] = None


class CallLedgerWriter:
    """Upserts a call by upstream id and keeps its usage entry in step.

    A billable call (cost > 0, no display override) has exactly one usage
    entry; a call that is not billable has none.
    """

    def __init__(self, calls: CallRepository, usage: UsageLedgerRepository):
        self._calls = calls
        self._usage = usage

    async def persist(self, call: NormalizedCall) -> PersistOutcome:
        try:
            record_id = await self._calls.find_id_by_upstream_id(
                call.tenant_id, call.upstream_call_id
            )
        except (SQLAlchemyError, DatabaseError) as e:
            return self._failed(call, SkipReason.INSERT_ERROR, e)

        if record_id is not None:
            try:
                await self._calls.update(record_id, call)
            except (SQLAlchemyError, DatabaseError) as e:
                return self._failed(call, SkipReason.UPDATE_ERROR, e)
            outcome = PersistOutcome(PersistStatus.UPDATED, call_record_id=record_id)
        else:
            try:
                record_id = await self._calls.insert(call)
            except (SQLAlchemyError, DatabaseError) as e:
                return self._failed(call, SkipReason.INSERT_ERROR, e)
            outcome = PersistOutcome(PersistStatus.INSERTED, call_record_id=record_id)

        outcome.ledger_error = await self._sync_usage(record_id, call)
        return outcome

    async def _sync_usage(self, record_id: int, call: NormalizedCall) -> Optional[str]:
        """Apply the usage entry for the call; return an error message on failure."""
        try:
            if call.is_billable:
                await self._usage.upsert_for_call(
                    record_id,
                    call.tenant_id,
                    call.cost_cents,
                    call.direction.value,
                    call.started_at,
                )
            else:
                await self._usage.delete_for_call(record_id)
        except (SQLAlchemyError, DatabaseError) as e:
            logger.error(
                "Usage ledger write failed",
                tenant_id=call.tenant_id,
                call_id=call.upstream_call_id,
                error=str(e),
            )
            return str(e)
        return None

    @staticmethod
    def _failed(call: NormalizedCall, reason: str, error: Exception) -> PersistOutcome:
        logger.error(
            "Call persist failed",
            tenant_id=call.tenant_id,
            call_id=call.upstream_call_id,
            reason=reason,
            error=str(error),
        )
        return PersistOutcome(PersistStatus.SKIPPED, skip_reason=reason, error=str(error))
