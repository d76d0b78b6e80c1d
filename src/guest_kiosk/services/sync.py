"""Background sync between the local store and the remote store.

A cycle always runs in the same order: drain the pending-operation queue,
skip the pull if anything is still queued, otherwise pull the remote session
list, reconcile it with the local one and write the result back locally.

Sync requests come from three places: the interval timer, the connectivity
signal coming back online, and the scan service after every local write. They
are posted into a size-one channel read by a single consumer task, so only
one cycle ever runs at a time and bursts of requests collapse into one.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol, TypeVar

from guest_kiosk.domain.errors import RemoteErrorKind, RemoteStoreError
from guest_kiosk.domain.sessions import Session
from guest_kiosk.domain.sync import (
    OperationKind,
    PendingOperation,
    SyncReport,
    SyncSnapshot,
    SyncStatus,
)
from guest_kiosk.services.local_store import LocalStore
from guest_kiosk.services.reconciler import (
    dedupe_active_sessions,
    merge_remote_into_local,
    unpushed_closures,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SyncListener = Callable[[SyncSnapshot], None]


class RemoteSessionStore(Protocol):
    """Interface every remote backend exposes to the sync engine."""

    async def list_sessions(self) -> list[Session]:
        """Return every session known to the remote store."""

    async def create_session(self, session: Session) -> Session:
        """Create a session; fails with a conflict if the id exists."""

    async def update_session(
        self, session_id: str, fields: dict[str, object]
    ) -> Session:
        """Update fields of a session; fails with not-found if it is missing."""

    async def delete_session(self, session_id: str) -> None:
        """Delete a session by id."""

    async def find_active_by_tag(self, tag_id: str) -> Session | None:
        """Return the active session for a tag, if any."""


class Connectivity(Protocol):
    """Device-level network signal."""

    def is_online(self) -> bool:
        """Return True when the device reports a network connection."""


@dataclass
class ConnectivityFlag(Connectivity):
    """Connectivity signal set by whoever observes the network."""

    online: bool = True

    def is_online(self) -> bool:
        return self.online


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SyncEngine:
    """Replays queued mutations and reconciles local and remote sessions."""

    local_store: LocalStore
    remote_store: RemoteSessionStore
    connectivity: Connectivity = field(default_factory=ConnectivityFlag)
    interval_seconds: float = 10.0
    max_attempts: int = 5
    remote_timeout_seconds: float = 10.0
    clock: Callable[[], datetime] = _utc_now
    _listeners: list[SyncListener] = field(default_factory=list, init=False)
    _snapshot: SyncSnapshot | None = field(default=None, init=False)
    _syncing: bool = field(default=False, init=False)
    _requests: asyncio.Queue[str] | None = field(default=None, init=False)
    _tasks: list[asyncio.Task[None]] = field(default_factory=list, init=False)

    @property
    def started(self) -> bool:
        """Return True while the background tasks are running."""
        return bool(self._tasks)

    @property
    def snapshot(self) -> SyncSnapshot:
        """Return the most recently published state."""
        if self._snapshot is None:
            return SyncSnapshot(
                status=SyncStatus.IDLE,
                pending_count=self.local_store.count_operations(),
            )
        return self._snapshot

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Register a status listener and return a function removing it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self) -> None:
        """Start the timer and consumer tasks on the running event loop."""
        if self.started:
            logger.debug("Sync engine already started")
            return
        self._requests = asyncio.Queue(maxsize=1)
        self._tasks = [
            asyncio.create_task(self._consume(self._requests), name="sync-consumer"),
            asyncio.create_task(self._tick(), name="sync-timer"),
        ]
        logger.info("Sync engine started (interval %ss)", self.interval_seconds)
        self.request_sync("startup")

    async def stop(self) -> None:
        """Cancel the background tasks."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._requests = None

    def request_sync(self, reason: str) -> None:
        """Ask for a cycle without waiting for it."""
        if self._requests is None:
            logger.debug("Sync engine not started; ignoring %s request", reason)
            return
        if self._syncing:
            logger.debug("Sync already in progress; dropping %s request", reason)
            return
        try:
            self._requests.put_nowait(reason)
        except asyncio.QueueFull:
            logger.debug("Sync already requested; coalescing %s request", reason)

    def set_online(self, online: bool) -> None:
        """Record the connectivity signal; coming back online triggers a sync."""
        was_online = self.connectivity.is_online()
        if isinstance(self.connectivity, ConnectivityFlag):
            self.connectivity.online = online
        if online and not was_online:
            logger.info("Connection restored; triggering sync")
            self.request_sync("network-restored")
        elif not online:
            self._publish(SyncSnapshot(SyncStatus.OFFLINE, self._pending_count()))

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.request_sync("interval")

    async def _consume(self, requests: asyncio.Queue[str]) -> None:
        while True:
            reason = await requests.get()
            logger.debug("Running sync cycle (%s)", reason)
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Sync cycle crashed")

    async def run_cycle(self) -> SyncReport:
        """Run one drain/pull cycle unless one is already in flight."""
        if self._syncing:
            logger.info("Sync already in progress, skipping")
            return SyncReport(ran=False)
        if not self.connectivity.is_online():
            logger.info("Offline; skipping sync")
            self._publish(SyncSnapshot(SyncStatus.OFFLINE, self._pending_count()))
            return SyncReport(ran=False)

        self._syncing = True
        report = SyncReport()
        try:
            self._publish(SyncSnapshot(SyncStatus.SYNCING, self._pending_count()))
            await self._drain(report)
            pending = self._pending_count()
            if pending:
                logger.info("Skipping pull; %d operation(s) still pending", pending)
            else:
                await self._pull(report)
        finally:
            self._syncing = False

        pending = self._pending_count()
        if report.error or report.failed or report.dropped:
            status = SyncStatus.ERROR
            last_synced_at = self.snapshot.last_synced_at
        else:
            status = SyncStatus.IDLE
            last_synced_at = self.clock()
        self._publish(
            SyncSnapshot(
                status=status,
                pending_count=pending,
                last_error=report.error,
                dropped_operations=tuple(report.dropped),
                last_synced_at=last_synced_at,
            )
        )
        return report

    async def _drain(self, report: SyncReport) -> None:
        queue = self.local_store.list_operations()
        if not queue:
            return
        logger.info("Processing %d pending operation(s)", len(queue))
        for operation in queue:
            try:
                await self._apply(operation)
            except RemoteStoreError as exc:
                self._record_failure(operation, exc, report)
                continue
            self.local_store.remove_operation(operation.operation_id)
            report.applied.append(operation)
            logger.info(
                "Synced %s %s", operation.kind, operation.target_session_id
            )

    def _record_failure(
        self, operation: PendingOperation, exc: RemoteStoreError, report: SyncReport
    ) -> None:
        failed = operation.with_failed_attempt()
        report.error = str(exc)
        if failed.attempt_count >= self.max_attempts:
            self.local_store.remove_operation(failed.operation_id)
            report.dropped.append(failed)
            logger.error(
                "Dropping %s %s after %d attempts: %s",
                failed.kind,
                failed.target_session_id,
                failed.attempt_count,
                exc,
            )
            return
        self.local_store.enqueue_operation(failed)
        report.failed.append(failed)
        logger.warning(
            "Failed %s %s (attempt %d/%d): %s",
            failed.kind,
            failed.target_session_id,
            failed.attempt_count,
            self.max_attempts,
            exc,
        )

    async def _apply(self, operation: PendingOperation) -> None:
        session_id = operation.target_session_id
        if operation.kind is OperationKind.CREATE:
            try:
                session = Session.from_fields(operation.payload)
            except (KeyError, ValueError) as exc:
                raise RemoteStoreError(
                    RemoteErrorKind.UNEXPECTED, f"malformed create payload: {exc}"
                ) from exc
            try:
                await self._call(self.remote_store.create_session(session))
            except RemoteStoreError as exc:
                if exc.kind is not RemoteErrorKind.CONFLICT:
                    raise
                logger.info("Session %s already on remote; create applied", session_id)
        elif operation.kind is OperationKind.UPDATE:
            await self._call(
                self.remote_store.update_session(session_id, operation.payload)
            )
        else:
            await self._call(self.remote_store.delete_session(session_id))

    async def _pull(self, report: SyncReport) -> None:
        try:
            remote = await self._call(self.remote_store.list_sessions())
        except RemoteStoreError as exc:
            logger.warning("Failed to fetch remote sessions: %s", exc)
            report.error = str(exc)
            return

        # No await between reading and replacing the local set.
        merged = merge_remote_into_local(remote, self.local_store.list_sessions())
        deduped = dedupe_active_sessions(merged, self.clock())
        self.local_store.replace_sessions(deduped.sessions)
        report.pulled = True
        report.forced_closures = list(deduped.closed)
        logger.info("Updated local cache with %d session(s)", len(deduped.sessions))

        to_push = {session.session_id: session for session in deduped.closed}
        for session in unpushed_closures(remote, deduped.sessions):
            to_push.setdefault(session.session_id, session)
        for session in to_push.values():
            try:
                await self._call(
                    self.remote_store.update_session(
                        session.session_id,
                        {"exit_time": session.exit_time.isoformat()},
                    )
                )
            except RemoteStoreError as exc:
                logger.warning(
                    "Failed to push closure of %s: %s", session.session_id, exc
                )

    async def _call(self, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.remote_timeout_seconds)
        except TimeoutError as exc:
            raise RemoteStoreError(
                RemoteErrorKind.TIMEOUT,
                f"no response within {self.remote_timeout_seconds}s",
            ) from exc
        except RemoteStoreError:
            raise
        except Exception as exc:
            logger.exception("Unexpected remote store failure")
            raise RemoteStoreError(RemoteErrorKind.UNEXPECTED, str(exc)) from exc

    def _pending_count(self) -> int:
        return self.local_store.count_operations()

    def _publish(self, snapshot: SyncSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Sync listener failed")
