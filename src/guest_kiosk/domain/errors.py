"""Error types raised across the kiosk."""

from enum import StrEnum


class KioskError(Exception):
    """Base exception for the guest kiosk."""


class LocalStoreUnavailableError(KioskError):
    """Raised when the local durable store cannot be opened."""


class InvalidScanError(KioskError):
    """Raised when check-in input is rejected."""


class RemoteErrorKind(StrEnum):
    """Category of a failed remote store call."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP = "http"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNEXPECTED = "unexpected"


class RemoteStoreError(KioskError):
    """Raised by remote store adapters for any failed call."""

    def __init__(self, kind: RemoteErrorKind, message: str) -> None:
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message
