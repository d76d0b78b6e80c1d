"""Dependency container wiring for the kiosk."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from guest_kiosk.adapters.http_remote_store import HttpxRemoteSessionStore
from guest_kiosk.adapters.sqlite_local_store import SqliteLocalStore, open_local_store
from guest_kiosk.adapters.supabase_remote_store import SupabaseRemoteSessionStore
from guest_kiosk.config import Settings, parse_remote_backend
from guest_kiosk.services.local_store import LocalStore
from guest_kiosk.services.scans import ScanSessionService
from guest_kiosk.services.sync import RemoteSessionStore, SyncEngine


@dataclass
class AppContainer:
    """Holds kiosk-wide dependencies."""

    settings: Settings
    local_store: LocalStore
    remote_store: RemoteSessionStore
    sync_engine: SyncEngine
    scan_service: ScanSessionService
    close_resources: Callable[[], Awaitable[None]]


def build_remote_store(settings: Settings) -> RemoteSessionStore:
    """Create the remote store selected by ``settings.remote_backend``."""
    backend = parse_remote_backend(settings.remote_backend)
    if backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise ValueError("Supabase backend needs SUPABASE_URL and a service key")
        client = create_client(settings.supabase_url, settings.supabase_service_key)
        return SupabaseRemoteSessionStore(client, table=settings.supabase_table)
    return HttpxRemoteSessionStore.create(
        settings.remote_base_url, timeout=settings.remote_timeout_seconds
    )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    local_store = open_local_store(resolved_settings.local_store_path)
    remote_store = build_remote_store(resolved_settings)
    sync_engine = SyncEngine(
        local_store=local_store,
        remote_store=remote_store,
        interval_seconds=resolved_settings.sync_interval_seconds,
        max_attempts=resolved_settings.sync_max_attempts,
        remote_timeout_seconds=resolved_settings.remote_timeout_seconds,
    )
    scan_service = ScanSessionService(local_store=local_store, sync_trigger=sync_engine)

    async def close_resources() -> None:
        await sync_engine.stop()
        if isinstance(remote_store, HttpxRemoteSessionStore):
            await remote_store.close()
        if isinstance(local_store, SqliteLocalStore):
            local_store.close()

    return AppContainer(
        settings=resolved_settings,
        local_store=local_store,
        remote_store=remote_store,
        sync_engine=sync_engine,
        scan_service=scan_service,
        close_resources=close_resources,
    )
