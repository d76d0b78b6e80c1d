"""Shared test fixtures."""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta

import pytest

from guest_kiosk.config import Settings
from guest_kiosk.containers import AppContainer
from guest_kiosk.domain.errors import RemoteErrorKind, RemoteStoreError
from guest_kiosk.domain.sessions import GuestType, Session
from guest_kiosk.services.local_store import InMemoryLocalStore
from guest_kiosk.services.scans import ScanSessionService
from guest_kiosk.services.sync import ConnectivityFlag, RemoteSessionStore, SyncEngine

BASE_TIME = datetime(2025, 7, 1, 9, 0, tzinfo=UTC)


@dataclass
class FakeClock:
    """Clock that only moves when told to."""

    now: datetime = BASE_TIME

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@dataclass
class RecordingSyncTrigger:
    """Sync trigger that records requests instead of syncing."""

    reasons: list[str] = field(default_factory=list)

    def request_sync(self, reason: str) -> None:
        self.reasons.append(reason)


@dataclass
class InMemoryRemoteSessionStore(RemoteSessionStore):
    """In-memory remote store with scriptable failures."""

    sessions: dict[str, Session] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    failing_session_ids: set[str] = field(default_factory=set)
    fail_list: bool = False
    list_payload_override: list[Session] | None = None

    async def list_sessions(self) -> list[Session]:
        self.calls.append(("list", ""))
        if self.fail_list:
            raise RemoteStoreError(RemoteErrorKind.NETWORK, "connection refused")
        if self.list_payload_override is not None:
            return list(self.list_payload_override)
        return list(self.sessions.values())

    async def create_session(self, session: Session) -> Session:
        self.calls.append(("create", session.session_id))
        self._maybe_fail(session.session_id)
        if session.session_id in self.sessions:
            raise RemoteStoreError(RemoteErrorKind.CONFLICT, "already exists")
        self.sessions[session.session_id] = session
        return session

    async def update_session(
        self, session_id: str, fields: dict[str, object]
    ) -> Session:
        self.calls.append(("update", session_id))
        self._maybe_fail(session_id)
        current = self.sessions.get(session_id)
        if current is None:
            raise RemoteStoreError(RemoteErrorKind.NOT_FOUND, "missing")
        exit_time = fields.get("exit_time")
        updated = replace(
            current,
            exit_time=(
                datetime.fromisoformat(str(exit_time))
                if exit_time
                else current.exit_time
            ),
        )
        self.sessions[session_id] = updated
        return updated

    async def delete_session(self, session_id: str) -> None:
        self.calls.append(("delete", session_id))
        self._maybe_fail(session_id)
        self.sessions.pop(session_id, None)

    async def find_active_by_tag(self, tag_id: str) -> Session | None:
        for session in self.sessions.values():
            if session.tag_id == tag_id and session.is_active:
                return session
        return None

    def _maybe_fail(self, session_id: str) -> None:
        if session_id in self.failing_session_ids:
            raise RemoteStoreError(RemoteErrorKind.NETWORK, "simulated outage")


def make_session(
    session_id: str,
    tag_id: str = "T1",
    entry_offset_minutes: int = 0,
    exit_offset_minutes: int | None = None,
    guest_type: GuestType = GuestType.DAY,
) -> Session:
    """Build a session relative to ``BASE_TIME``."""
    entry_time = BASE_TIME + timedelta(minutes=entry_offset_minutes)
    exit_time = (
        BASE_TIME + timedelta(minutes=exit_offset_minutes)
        if exit_offset_minutes is not None
        else None
    )
    return Session(
        session_id=session_id,
        tag_id=tag_id,
        guest_type=guest_type,
        adult_count=2,
        child_count=1,
        entry_time=entry_time,
        exit_time=exit_time,
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        admin_token="admin-token",
        local_store_path=str(tmp_path / "kiosk.sqlite3"),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def local_store() -> InMemoryLocalStore:
    return InMemoryLocalStore()


@pytest.fixture
def remote_store() -> InMemoryRemoteSessionStore:
    return InMemoryRemoteSessionStore()


@pytest.fixture
def sync_engine(
    local_store: InMemoryLocalStore,
    remote_store: InMemoryRemoteSessionStore,
    clock: FakeClock,
) -> SyncEngine:
    return SyncEngine(
        local_store=local_store,
        remote_store=remote_store,
        connectivity=ConnectivityFlag(),
        clock=clock,
    )


@pytest.fixture
def scan_service(
    local_store: InMemoryLocalStore, clock: FakeClock
) -> ScanSessionService:
    return ScanSessionService(
        local_store=local_store,
        sync_trigger=RecordingSyncTrigger(),
        clock=clock,
    )


@pytest.fixture
def container(
    settings: Settings,
    local_store: InMemoryLocalStore,
    remote_store: InMemoryRemoteSessionStore,
    sync_engine: SyncEngine,
    clock: FakeClock,
) -> AppContainer:
    scan_service = ScanSessionService(
        local_store=local_store, sync_trigger=sync_engine, clock=clock
    )

    async def close_resources() -> None:
        await sync_engine.stop()

    return AppContainer(
        settings=settings,
        local_store=local_store,
        remote_store=remote_store,
        sync_engine=sync_engine,
        scan_service=scan_service,
        close_resources=close_resources,
    )
