"""Check-in and check-out of wristband taps against the local store."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from guest_kiosk.domain.errors import InvalidScanError
from guest_kiosk.domain.sessions import (
    GuestType,
    ScanOutcome,
    ScanResult,
    Session,
    build_session_id,
)
from guest_kiosk.domain.sync import OperationKind, PendingOperation
from guest_kiosk.services.local_store import LocalStore
from guest_kiosk.services.reconciler import dedupe_active_sessions

logger = logging.getLogger(__name__)


class SyncTrigger(Protocol):
    """Anything that accepts fire-and-forget sync requests."""

    def request_sync(self, reason: str) -> None:
        """Ask for a sync cycle without waiting for it."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class ScanSessionService:
    """Facade used by the kiosk screens for tag taps."""

    local_store: LocalStore
    sync_trigger: SyncTrigger
    clock: Callable[[], datetime] = _utc_now

    def list_sessions(self) -> list[Session]:
        """Return local sessions, newest first."""
        return sorted(
            self.local_store.list_sessions(),
            key=lambda session: (session.entry_time, session.session_id),
            reverse=True,
        )

    def lookup_active(self, tag_id: str) -> Session | None:
        """Return the active session for a tag, resolving duplicates if found."""
        active = self._active_for_tag(tag_id.strip())
        if not active:
            return None
        if len(active) == 1:
            return active[0]
        deduped = dedupe_active_sessions(active, self.clock())
        self._write_closures(deduped.closed)
        self.sync_trigger.request_sync("duplicate-cleanup")
        return next(session for session in deduped.sessions if session.is_active)

    def check_in(
        self, tag_id: str, guest_type: GuestType, adults: int, children: int
    ) -> ScanResult:
        """Start a new visit, closing any visit the tag still has open."""
        tag_id = tag_id.strip()
        if not tag_id:
            raise InvalidScanError("Tag id is required")
        if adults < 0 or children < 0:
            raise InvalidScanError("Guest counts cannot be negative")
        try:
            guest_type = GuestType(guest_type)
        except ValueError as exc:
            raise InvalidScanError(f"Unknown guest type: {guest_type!r}") from exc

        now = self.clock()
        closures = [session.close(now) for session in self._active_for_tag(tag_id)]
        if closures:
            logger.warning(
                "Tag %s checked in with %d open session(s); closing them first",
                tag_id,
                len(closures),
            )
            self._write_closures(closures)

        session = Session(
            session_id=self._free_session_id(tag_id, now),
            tag_id=tag_id,
            guest_type=guest_type,
            adult_count=adults,
            child_count=children,
            entry_time=now,
        )
        self.local_store.upsert_session(session)
        self._enqueue(OperationKind.CREATE, session.session_id, session.to_fields())
        logger.info("Checked in %s as %s", tag_id, session.session_id)
        self.sync_trigger.request_sync("check-in")
        return ScanResult(
            outcome=ScanOutcome.CHECKED_IN,
            session=session,
            forced_closures=tuple(closures),
        )

    def check_out(self, tag_id: str) -> ScanResult:
        """Close the active visit of a tag."""
        active = self.lookup_active(tag_id.strip())
        if active is None:
            logger.info("No active session for tag %s", tag_id)
            return ScanResult(outcome=ScanOutcome.NOT_FOUND)

        closed = self.local_store.upsert_session(active.close(self.clock()))
        self._enqueue(
            OperationKind.UPDATE,
            closed.session_id,
            {"exit_time": closed.exit_time.isoformat()},
        )
        logger.info("Checked out %s", closed.session_id)
        self.sync_trigger.request_sync("check-out")
        return ScanResult(outcome=ScanOutcome.CHECKED_OUT, session=closed)

    def _active_for_tag(self, tag_id: str) -> list[Session]:
        return [
            session
            for session in self.local_store.list_sessions()
            if session.tag_id == tag_id and session.is_active
        ]

    def _write_closures(self, closures: list[Session]) -> None:
        for session in closures:
            stored = self.local_store.upsert_session(session)
            self._enqueue(
                OperationKind.UPDATE,
                stored.session_id,
                {"exit_time": stored.exit_time.isoformat()},
            )

    def _enqueue(
        self, kind: OperationKind, session_id: str, payload: dict[str, object]
    ) -> None:
        self.local_store.enqueue_operation(
            PendingOperation.new(kind, session_id, payload, self.clock())
        )

    def _free_session_id(self, tag_id: str, created_at: datetime) -> str:
        session_id = build_session_id(tag_id, created_at)
        while self.local_store.get_session(session_id) is not None:
            created_at += timedelta(milliseconds=1)
            session_id = build_session_id(tag_id, created_at)
        return session_id
