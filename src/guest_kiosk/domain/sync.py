"""Domain models for the offline sync queue."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from uuid import uuid4

from guest_kiosk.domain.sessions import Session


class OperationKind(StrEnum):
    """Remote mutation replayed by the sync engine."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncStatus(StrEnum):
    """Status reported to sync observers."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


@dataclass(frozen=True)
class PendingOperation:
    """A local mutation not yet confirmed by the remote store."""

    operation_id: str
    kind: OperationKind
    target_session_id: str
    payload: dict[str, object]
    enqueued_at: datetime
    attempt_count: int = 0

    @classmethod
    def new(
        cls,
        kind: OperationKind,
        target_session_id: str,
        payload: dict[str, object],
        enqueued_at: datetime,
    ) -> "PendingOperation":
        """Create an operation with a unique, time-prefixed id."""
        stamp = int(enqueued_at.timestamp() * 1000)
        operation_id = f"{target_session_id}:{kind}:{stamp}:{uuid4().hex[:8]}"
        return cls(
            operation_id=operation_id,
            kind=kind,
            target_session_id=target_session_id,
            payload=payload,
            enqueued_at=enqueued_at,
        )

    def with_failed_attempt(self) -> "PendingOperation":
        """Return a copy with one more failed attempt recorded."""
        return replace(self, attempt_count=self.attempt_count + 1)


@dataclass(frozen=True)
class SyncSnapshot:
    """State published to sync observers."""

    status: SyncStatus
    pending_count: int
    last_error: str | None = None
    dropped_operations: tuple[PendingOperation, ...] = ()
    last_synced_at: datetime | None = None


@dataclass
class SyncReport:
    """What a single sync cycle did."""

    ran: bool = True
    pulled: bool = False
    applied: list[PendingOperation] = field(default_factory=list)
    failed: list[PendingOperation] = field(default_factory=list)
    dropped: list[PendingOperation] = field(default_factory=list)
    forced_closures: list[Session] = field(default_factory=list)
    error: str | None = None
