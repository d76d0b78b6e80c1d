"""SQLite-backed local durable store."""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from guest_kiosk.domain.errors import LocalStoreUnavailableError
from guest_kiosk.domain.sessions import GuestType, Session
from guest_kiosk.domain.sync import OperationKind, PendingOperation
from guest_kiosk.services.local_store import InMemoryLocalStore, LocalStore
from guest_kiosk.services.reconciler import prevent_reopen

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    session_id  TEXT PRIMARY KEY,
    tag_id      TEXT NOT NULL,
    guest_type  TEXT NOT NULL,
    adult_count INTEGER NOT NULL,
    child_count INTEGER NOT NULL,
    entry_time  TEXT NOT NULL,
    exit_time   TEXT
);

CREATE INDEX IF NOT EXISTS idx_sessions_tag_exit
    ON sessions(tag_id, exit_time);

CREATE TABLE IF NOT EXISTS pending_operations (
    seq               INTEGER PRIMARY KEY AUTOINCREMENT,
    operation_id      TEXT NOT NULL UNIQUE,
    kind              TEXT NOT NULL,
    target_session_id TEXT NOT NULL,
    payload_json      TEXT NOT NULL,
    enqueued_at       TEXT NOT NULL,
    attempt_count     INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_pending_enqueued_at
    ON pending_operations(enqueued_at);
"""

_SESSION_COLUMNS = (
    "session_id, tag_id, guest_type, adult_count, child_count, entry_time, exit_time"
)
_OPERATION_COLUMNS = (
    "operation_id, kind, target_session_id, payload_json, enqueued_at, attempt_count"
)


@dataclass
class SqliteLocalStore(LocalStore):
    """Local store persisting sessions and the sync queue in one SQLite file."""

    conn: sqlite3.Connection
    _lock: threading.Lock

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()

    @classmethod
    def open(cls, path: str | Path) -> "SqliteLocalStore":
        """Open (and create if needed) the store at ``path``."""
        try:
            if str(path) != ":memory:":
                Path(path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path), check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            raise LocalStoreUnavailableError(
                f"Cannot open local store at {path}: {exc}"
            ) from exc
        return cls(conn)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock, self.conn:
            yield self.conn

    def close(self) -> None:
        """Close the underlying connection."""
        self.conn.close()

    def list_sessions(self) -> list[Session]:
        """Return every stored session."""
        rows = self.conn.execute(f"SELECT {_SESSION_COLUMNS} FROM sessions").fetchall()
        return [_session_from_row(row) for row in rows]

    def get_session(self, session_id: str) -> Session | None:
        """Return a session by id, if present."""
        row = self.conn.execute(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE session_id = ?",
            (session_id,),
        ).fetchone()
        return _session_from_row(row) if row else None

    def upsert_session(self, session: Session) -> Session:
        """Insert or replace a session without ever reopening a closed one."""
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE session_id = ?",
                (session.session_id,),
            ).fetchone()
            existing = _session_from_row(row) if row else None
            stored = prevent_reopen(existing, session)
            conn.execute(
                f"INSERT OR REPLACE INTO sessions ({_SESSION_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                _session_to_row(stored),
            )
        return stored

    def delete_session(self, session_id: str) -> None:
        """Delete a session by id."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))

    def replace_sessions(self, sessions: list[Session]) -> None:
        """Replace the whole session set atomically."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM sessions")
            conn.executemany(
                f"INSERT INTO sessions ({_SESSION_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                [_session_to_row(session) for session in sessions],
            )

    def enqueue_operation(self, operation: PendingOperation) -> None:
        """Insert an operation, or update it in place keeping its queue slot."""
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO pending_operations ({_OPERATION_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(operation_id) DO UPDATE SET "
                "payload_json = excluded.payload_json, "
                "attempt_count = excluded.attempt_count",
                _operation_to_row(operation),
            )

    def list_operations(self) -> list[PendingOperation]:
        """Return pending operations ordered by enqueue time."""
        rows = self.conn.execute(
            f"SELECT {_OPERATION_COLUMNS} FROM pending_operations "
            "ORDER BY enqueued_at, seq"
        ).fetchall()
        return [_operation_from_row(row) for row in rows]

    def remove_operation(self, operation_id: str) -> None:
        """Remove a pending operation by id."""
        with self._transaction() as conn:
            conn.execute(
                "DELETE FROM pending_operations WHERE operation_id = ?",
                (operation_id,),
            )

    def replace_operations(self, operations: list[PendingOperation]) -> None:
        """Replace the whole queue atomically."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM pending_operations")
            conn.executemany(
                f"INSERT INTO pending_operations ({_OPERATION_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [_operation_to_row(op) for op in operations],
            )

    def count_operations(self) -> int:
        """Return the number of pending operations."""
        row = self.conn.execute("SELECT COUNT(*) FROM pending_operations").fetchone()
        return int(row[0])


def open_local_store(path: str | Path) -> LocalStore:
    """Open the durable store, falling back to memory if it is unavailable."""
    try:
        return SqliteLocalStore.open(path)
    except LocalStoreUnavailableError:
        logger.exception("Local store unavailable; keeping sessions in memory only")
        return InMemoryLocalStore()


def _session_to_row(session: Session) -> tuple[object, ...]:
    return (
        session.session_id,
        session.tag_id,
        session.guest_type.value,
        session.adult_count,
        session.child_count,
        session.entry_time.isoformat(),
        session.exit_time.isoformat() if session.exit_time else None,
    )


def _session_from_row(row: sqlite3.Row) -> Session:
    return Session(
        session_id=row["session_id"],
        tag_id=row["tag_id"],
        guest_type=GuestType(row["guest_type"]),
        adult_count=int(row["adult_count"]),
        child_count=int(row["child_count"]),
        entry_time=datetime.fromisoformat(row["entry_time"]),
        exit_time=(
            datetime.fromisoformat(row["exit_time"]) if row["exit_time"] else None
        ),
    )


def _operation_to_row(operation: PendingOperation) -> tuple[object, ...]:
    return (
        operation.operation_id,
        operation.kind.value,
        operation.target_session_id,
        json.dumps(operation.payload),
        operation.enqueued_at.isoformat(timespec="microseconds"),
        operation.attempt_count,
    )


def _operation_from_row(row: sqlite3.Row) -> PendingOperation:
    return PendingOperation(
        operation_id=row["operation_id"],
        kind=OperationKind(row["kind"]),
        target_session_id=row["target_session_id"],
        payload=json.loads(row["payload_json"]),
        enqueued_at=datetime.fromisoformat(row["enqueued_at"]),
        attempt_count=int(row["attempt_count"]),
    )
