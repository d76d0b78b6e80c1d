"""Domain models for guest visit sessions."""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import StrEnum


class GuestType(StrEnum):
    """Kind of guest recorded at check-in."""

    HOTEL = "hotelgast"
    DAY = "daggast"
    POOL = "zwembadgast"


@dataclass(frozen=True)
class Session:
    """One visit of a wristband, from check-in to check-out."""

    session_id: str
    tag_id: str
    guest_type: GuestType
    adult_count: int
    child_count: int
    entry_time: datetime
    exit_time: datetime | None = None

    @property
    def is_active(self) -> bool:
        """Return True while the guest has not checked out."""
        return self.exit_time is None

    @property
    def duration(self) -> timedelta | None:
        """Return the length of a closed visit."""
        if self.exit_time is None:
            return None
        return self.exit_time - self.entry_time

    def close(self, at: datetime) -> "Session":
        """Return a closed copy; the exit never precedes the entry."""
        return replace(self, exit_time=max(at, self.entry_time))

    def to_fields(self) -> dict[str, object]:
        """Serialize to JSON-safe fields used by queue payloads."""
        return {
            "session_id": self.session_id,
            "tag_id": self.tag_id,
            "guest_type": self.guest_type.value,
            "adult_count": self.adult_count,
            "child_count": self.child_count,
            "entry_time": self.entry_time.isoformat(),
            "exit_time": self.exit_time.isoformat() if self.exit_time else None,
        }

    @classmethod
    def from_fields(cls, fields: dict[str, object]) -> "Session":
        """Build a session from fields produced by ``to_fields``."""
        exit_time = fields.get("exit_time")
        return cls(
            session_id=str(fields["session_id"]),
            tag_id=str(fields["tag_id"]),
            guest_type=GuestType(fields["guest_type"]),
            adult_count=int(fields["adult_count"]),
            child_count=int(fields["child_count"]),
            entry_time=datetime.fromisoformat(str(fields["entry_time"])),
            exit_time=datetime.fromisoformat(str(exit_time)) if exit_time else None,
        )


def build_session_id(tag_id: str, created_at: datetime) -> str:
    """Build a session id from the tag and its creation time in epoch ms."""
    return f"{tag_id}-{int(created_at.timestamp() * 1000)}"


class ScanOutcome(StrEnum):
    """Result kind of a tag scan handled by the kiosk."""

    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ScanResult:
    """Outcome of a check-in or check-out request."""

    outcome: ScanOutcome
    session: Session | None = None
    forced_closures: tuple[Session, ...] = ()

    @property
    def found(self) -> bool:
        """Return True unless no active session matched the tag."""
        return self.outcome is not ScanOutcome.NOT_FOUND
