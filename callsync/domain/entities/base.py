"""Shared enumerations for the call sync domain."""

from enum import Enum


class CallDirection(str, Enum):
    """Direction of a call as stored locally."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"

    @classmethod
    def from_upstream(cls, value: str | None) -> "CallDirection":
        """Map HighLevel direction values (and their synonyms) to a direction.

        Anything that is not recognisably outbound is treated as inbound.
        """
        if value and value.strip().lower() in ("outbound", "outgoing", "out"):
            return cls.OUTBOUND
        return cls.INBOUND


class SyncKind(str, Enum):
    """What triggered a sync run."""

    MANUAL = "manual"
    AUTO = "auto"
    ADMIN_BACKFILL = "admin_backfill"


class SyncRunStatus(str, Enum):
    """Lifecycle of a sync run. COMPLETED and FAILED are terminal."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not SyncRunStatus.IN_PROGRESS


class SkipReason:
    """Enum-like class for skip reason codes stored in the run histogram."""

    NO_FROM_NUMBER = "no_from_number"
    IS_TEST_CALL = "is_test_call"
    PREVIOUSLY_DELETED = "previously_deleted"
    MISSING_CALL_ID = "missing_call_id"
    NORMALIZATION_ERROR = "normalization_error"
    INSERT_ERROR = "insert_error"
    UPDATE_ERROR = "update_error"
