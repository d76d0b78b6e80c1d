"""Supabase-backed remote session store."""

import asyncio
from dataclasses import dataclass

from supabase import Client

from guest_kiosk.adapters.session_payloads import parse_session, parse_session_rows
from guest_kiosk.domain.errors import RemoteErrorKind, RemoteStoreError
from guest_kiosk.domain.sessions import Session
from guest_kiosk.services.sync import RemoteSessionStore

_COLUMNS = "id, tag_id, guest_type, adults, children, entry_time, exit_time"
_UNIQUE_VIOLATION = "23505"
_COLUMN_NAMES = {
    "tag_id": "tag_id",
    "guest_type": "guest_type",
    "adult_count": "adults",
    "child_count": "children",
    "entry_time": "entry_time",
    "exit_time": "exit_time",
}


@dataclass
class SupabaseRemoteSessionStore(RemoteSessionStore):
    """Stores sessions in a Supabase table.

    The Supabase client is synchronous, so every query runs in a worker
    thread to keep the event loop free.
    """

    client: Client
    table: str = "scans"

    async def list_sessions(self) -> list[Session]:
        """Return every session row."""
        query = self.client.table(self.table).select(_COLUMNS)
        return parse_session_rows(await self._execute(query))

    async def create_session(self, session: Session) -> Session:
        """Insert a session row; a duplicate id is reported as a conflict."""
        query = self.client.table(self.table).insert(_session_to_row(session))
        rows = await self._execute(query)
        return parse_session(rows[0]) if rows else session

    async def update_session(
        self, session_id: str, fields: dict[str, object]
    ) -> Session:
        """Update columns of an existing session row."""
        payload = {
            _COLUMN_NAMES[name]: value
            for name, value in fields.items()
            if name in _COLUMN_NAMES
        }
        query = self.client.table(self.table).update(payload).eq("id", session_id)
        rows = await self._execute(query)
        if not rows:
            raise RemoteStoreError(
                RemoteErrorKind.NOT_FOUND, f"session {session_id} does not exist"
            )
        return parse_session(rows[0])

    async def delete_session(self, session_id: str) -> None:
        """Delete a session row."""
        query = self.client.table(self.table).delete().eq("id", session_id)
        await self._execute(query)

    async def find_active_by_tag(self, tag_id: str) -> Session | None:
        """Return the most recent active session for a tag."""
        query = (
            self.client.table(self.table)
            .select(_COLUMNS)
            .eq("tag_id", tag_id)
            .is_("exit_time", "null")
            .order("entry_time", desc=True)
            .limit(1)
        )
        sessions = parse_session_rows(await self._execute(query))
        return sessions[0] if sessions else None

    async def _execute(self, query) -> list[dict[str, object]]:  # type: ignore[no-untyped-def]
        try:
            response = await asyncio.to_thread(query.execute)
        except Exception as exc:
            kind = (
                RemoteErrorKind.CONFLICT
                if getattr(exc, "code", None) == _UNIQUE_VIOLATION
                else RemoteErrorKind.NETWORK
            )
            raise RemoteStoreError(kind, str(exc)) from exc
        return response.data or []


def _session_to_row(session: Session) -> dict[str, object]:
    return {
        "id": session.session_id,
        "tag_id": session.tag_id,
        "guest_type": session.guest_type.value,
        "adults": session.adult_count,
        "children": session.child_count,
        "entry_time": session.entry_time.isoformat(),
        "exit_time": session.exit_time.isoformat() if session.exit_time else None,
    }
