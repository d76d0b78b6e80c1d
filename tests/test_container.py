"""Tests for container wiring."""

import asyncio

import pytest

from guest_kiosk.adapters.http_remote_store import HttpxRemoteSessionStore
from guest_kiosk.adapters.sqlite_local_store import SqliteLocalStore
from guest_kiosk.containers import build_container, build_remote_store


def test_build_container_creates_services(settings) -> None:
    container = build_container(settings)

    assert isinstance(container.local_store, SqliteLocalStore)
    assert isinstance(container.remote_store, HttpxRemoteSessionStore)
    assert container.sync_engine.max_attempts == settings.sync_max_attempts
    assert container.scan_service.sync_trigger is container.sync_engine
    asyncio.run(container.close_resources())


def test_supabase_backend_requires_credentials(settings) -> None:
    settings.remote_backend = "supabase"

    with pytest.raises(ValueError):
        build_remote_store(settings)


def test_unknown_backend_is_rejected(settings) -> None:
    settings.remote_backend = "ftp"

    with pytest.raises(ValueError):
        build_remote_store(settings)
