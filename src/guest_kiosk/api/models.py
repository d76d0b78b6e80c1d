"""Pydantic models for the kiosk API."""

from datetime import datetime

from pydantic import BaseModel, Field

from guest_kiosk.domain.sessions import GuestType, Session
from guest_kiosk.domain.sync import PendingOperation, SyncReport, SyncSnapshot


class TapRequest(BaseModel):
    tag_id: str = Field(min_length=1)


class CheckInRequest(BaseModel):
    tag_id: str = Field(min_length=1)
    guest_type: GuestType
    adults: int = Field(ge=0)
    children: int = Field(ge=0)


class CheckOutRequest(BaseModel):
    tag_id: str = Field(min_length=1)


class ConnectivityRequest(BaseModel):
    online: bool


class SessionOut(BaseModel):
    session_id: str
    tag_id: str
    guest_type: GuestType
    adult_count: int
    child_count: int
    entry_time: datetime
    exit_time: datetime | None
    duration_seconds: float | None

    @classmethod
    def from_session(cls, session: Session) -> "SessionOut":
        duration = session.duration
        return cls(
            session_id=session.session_id,
            tag_id=session.tag_id,
            guest_type=session.guest_type,
            adult_count=session.adult_count,
            child_count=session.child_count,
            entry_time=session.entry_time,
            exit_time=session.exit_time,
            duration_seconds=(
                duration.total_seconds() if duration is not None else None
            ),
        )


class OperationOut(BaseModel):
    operation_id: str
    kind: str
    target_session_id: str
    enqueued_at: datetime
    attempt_count: int

    @classmethod
    def from_operation(cls, operation: PendingOperation) -> "OperationOut":
        return cls(
            operation_id=operation.operation_id,
            kind=operation.kind.value,
            target_session_id=operation.target_session_id,
            enqueued_at=operation.enqueued_at,
            attempt_count=operation.attempt_count,
        )


class SyncStatusOut(BaseModel):
    status: str
    pending_count: int
    last_error: str | None
    last_synced_at: datetime | None
    dropped_operations: list[OperationOut]

    @classmethod
    def from_snapshot(cls, snapshot: SyncSnapshot) -> "SyncStatusOut":
        return cls(
            status=snapshot.status.value,
            pending_count=snapshot.pending_count,
            last_error=snapshot.last_error,
            last_synced_at=snapshot.last_synced_at,
            dropped_operations=[
                OperationOut.from_operation(op) for op in snapshot.dropped_operations
            ],
        )


class SyncReportOut(BaseModel):
    ran: bool
    pulled: bool
    applied: int
    failed: int
    dropped: int
    forced_closures: list[str]
    error: str | None

    @classmethod
    def from_report(cls, report: SyncReport) -> "SyncReportOut":
        return cls(
            ran=report.ran,
            pulled=report.pulled,
            applied=len(report.applied),
            failed=len(report.failed),
            dropped=len(report.dropped),
            forced_closures=[s.session_id for s in report.forced_closures],
            error=report.error,
        )
