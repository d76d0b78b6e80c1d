"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    admin_token: str
    remote_backend: str = "http"
    remote_base_url: str = "http://localhost:3000"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_table: str = "scans"
    local_store_path: str = "data/kiosk.sqlite3"
    sync_interval_seconds: float = 10.0
    sync_max_attempts: int = 5
    remote_timeout_seconds: float = 10.0
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_remote_backend(raw: str) -> str:
    """Normalize the configured remote backend name."""
    backend = raw.strip().lower()
    if backend not in {"http", "supabase"}:
        raise ValueError(f"Unknown remote backend: {raw!r}")
    return backend
