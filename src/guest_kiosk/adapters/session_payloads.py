"""Validation of session rows received from remote stores."""

import logging
from datetime import UTC, datetime

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from guest_kiosk.domain.sessions import GuestType, Session

logger = logging.getLogger(__name__)


class SessionPayload(BaseModel):
    """A remote session row in either camelCase or snake_case form."""

    model_config = ConfigDict(extra="ignore")

    session_id: str = Field(
        min_length=1, validation_alias=AliasChoices("id", "session_id", "sessionId")
    )
    tag_id: str = Field(
        min_length=1, validation_alias=AliasChoices("tagId", "tag_id")
    )
    guest_type: GuestType = Field(
        validation_alias=AliasChoices("type", "guest_type", "guestType")
    )
    adult_count: int = Field(
        ge=0, validation_alias=AliasChoices("adults", "adult_count", "adultCount")
    )
    child_count: int = Field(
        ge=0, validation_alias=AliasChoices("children", "child_count", "childCount")
    )
    entry_time: datetime = Field(
        validation_alias=AliasChoices("entryTime", "entry_time")
    )
    exit_time: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("endTime", "exit_time", "exitTime"),
    )

    @model_validator(mode="before")
    @classmethod
    def _default_tag_to_id(cls, data: object) -> object:
        # Older rows were keyed by the wristband id alone.
        if isinstance(data, dict) and not any(
            data.get(key) for key in ("tagId", "tag_id")
        ):
            legacy_id = data.get("id") or data.get("session_id")
            if legacy_id:
                return {**data, "tag_id": legacy_id}
        return data

    @field_validator("entry_time", "exit_time")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def to_session(self) -> Session:
        """Convert to the domain session."""
        return Session(
            session_id=self.session_id,
            tag_id=self.tag_id,
            guest_type=self.guest_type,
            adult_count=self.adult_count,
            child_count=self.child_count,
            entry_time=self.entry_time,
            exit_time=self.exit_time,
        )


def parse_session(row: object) -> Session:
    """Validate a single row; raises ``ValidationError`` if it is malformed."""
    return SessionPayload.model_validate(row).to_session()


def parse_session_rows(rows: object) -> list[Session]:
    """Validate a list of rows, skipping malformed ones."""
    if not isinstance(rows, list):
        logger.warning("Remote sessions payload is not a list; treating as empty")
        return []
    sessions: list[Session] = []
    for row in rows:
        try:
            sessions.append(parse_session(row))
        except ValidationError:
            logger.warning("Skipping malformed remote session row: %r", row)
    return sessions


def session_to_wire(session: Session) -> dict[str, object]:
    """Serialize a session to the camelCase JSON used by the kiosk backend."""
    return {
        "id": session.session_id,
        "tagId": session.tag_id,
        "type": session.guest_type.value,
        "adults": session.adult_count,
        "children": session.child_count,
        "entryTime": session.entry_time.isoformat(),
        "endTime": session.exit_time.isoformat() if session.exit_time else None,
    }


_WIRE_FIELD_NAMES = {
    "tag_id": "tagId",
    "guest_type": "type",
    "adult_count": "adults",
    "child_count": "children",
    "entry_time": "entryTime",
    "exit_time": "endTime",
}


def fields_to_wire(fields: dict[str, object]) -> dict[str, object]:
    """Rename partial session fields to their camelCase wire names."""
    return {
        _WIRE_FIELD_NAMES[name]: value
        for name, value in fields.items()
        if name in _WIRE_FIELD_NAMES
    }
