"""Local durable store interface and its in-memory stand-in."""

from dataclasses import dataclass
from typing import Protocol

from guest_kiosk.domain.sessions import Session
from guest_kiosk.domain.sync import PendingOperation
from guest_kiosk.services.reconciler import prevent_reopen


class LocalStore(Protocol):
    """Client-side persistence for sessions and the pending-operation queue."""

    def list_sessions(self) -> list[Session]:
        """Return every stored session."""

    def get_session(self, session_id: str) -> Session | None:
        """Return a session by id, if present."""

    def upsert_session(self, session: Session) -> Session:
        """Insert or replace a session and return what was stored."""

    def delete_session(self, session_id: str) -> None:
        """Delete a session by id."""

    def replace_sessions(self, sessions: list[Session]) -> None:
        """Replace the whole session set in one write."""

    def enqueue_operation(self, operation: PendingOperation) -> None:
        """Insert or replace a pending operation by id."""

    def list_operations(self) -> list[PendingOperation]:
        """Return pending operations, oldest first."""

    def remove_operation(self, operation_id: str) -> None:
        """Remove a pending operation by id."""

    def replace_operations(self, operations: list[PendingOperation]) -> None:
        """Replace the whole queue in one write."""

    def count_operations(self) -> int:
        """Return the number of pending operations."""


@dataclass
class InMemoryLocalStore(LocalStore):
    """Process-lifetime store used when the durable store is unavailable."""

    _sessions: dict[str, Session]
    _operations: dict[str, PendingOperation]

    def __init__(self) -> None:
        self._sessions = {}
        self._operations = {}

    def list_sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def upsert_session(self, session: Session) -> Session:
        stored = prevent_reopen(self._sessions.get(session.session_id), session)
        self._sessions[stored.session_id] = stored
        return stored

    def delete_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def replace_sessions(self, sessions: list[Session]) -> None:
        self._sessions = {session.session_id: session for session in sessions}

    def enqueue_operation(self, operation: PendingOperation) -> None:
        self._operations[operation.operation_id] = operation

    def list_operations(self) -> list[PendingOperation]:
        return sorted(self._operations.values(), key=lambda op: op.enqueued_at)

    def remove_operation(self, operation_id: str) -> None:
        self._operations.pop(operation_id, None)

    def replace_operations(self, operations: list[PendingOperation]) -> None:
        self._operations = {op.operation_id: op for op in operations}

    def count_operations(self) -> int:
        return len(self._operations)
