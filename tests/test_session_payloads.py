"""Tests for remote session row validation."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from guest_kiosk.adapters.session_payloads import (
    fields_to_wire,
    parse_session,
    parse_session_rows,
    session_to_wire,
)
from guest_kiosk.domain.sessions import GuestType
from tests.conftest import make_session


def test_parse_camel_case_row() -> None:
    session = parse_session(
        {
            "id": "T1-1751360400000",
            "tagId": "T1",
            "type": "hotelgast",
            "adults": 2,
            "children": 0,
            "entryTime": "2025-07-01T09:00:00+00:00",
            "endTime": None,
        }
    )

    assert session.session_id == "T1-1751360400000"
    assert session.tag_id == "T1"
    assert session.guest_type is GuestType.HOTEL
    assert session.entry_time == datetime(2025, 7, 1, 9, 0, tzinfo=UTC)
    assert session.is_active


def test_parse_snake_case_row_with_naive_times() -> None:
    session = parse_session(
        {
            "id": "S1",
            "tag_id": "T1",
            "guest_type": "zwembadgast",
            "adults": 1,
            "children": 3,
            "entry_time": "2025-07-01T09:00:00",
            "exit_time": "2025-07-01T11:30:00",
        }
    )

    assert session.child_count == 3
    assert session.exit_time == datetime(2025, 7, 1, 11, 30, tzinfo=UTC)


def test_legacy_row_without_tag_uses_id() -> None:
    session = parse_session(
        {
            "id": "04A2B3C4",
            "type": "daggast",
            "adults": 1,
            "children": 0,
            "entryTime": "2025-07-01T09:00:00Z",
        }
    )

    assert session.tag_id == "04A2B3C4"


def test_parse_rejects_unknown_guest_type() -> None:
    with pytest.raises(ValidationError):
        parse_session(
            {
                "id": "S1",
                "tagId": "T1",
                "type": "vip",
                "adults": 1,
                "children": 0,
                "entryTime": "2025-07-01T09:00:00Z",
            }
        )


def test_parse_rows_skips_malformed_entries() -> None:
    good = session_to_wire(make_session("S1"))
    rows = [good, {"id": "S2", "tagId": "T2"}, "garbage"]

    sessions = parse_session_rows(rows)

    assert [s.session_id for s in sessions] == ["S1"]


@pytest.mark.parametrize("payload", [None, {"error": "boom"}, "scans"])
def test_parse_rows_treats_non_list_as_empty(payload: object) -> None:
    assert parse_session_rows(payload) == []


def test_session_to_wire_uses_camel_case() -> None:
    wire = session_to_wire(make_session("S1", exit_offset_minutes=90))

    assert wire["tagId"] == "T1"
    assert wire["type"] == "daggast"
    assert wire["adults"] == 2
    assert wire["children"] == 1
    assert wire["endTime"] == "2025-07-01T10:30:00+00:00"
    assert parse_session(wire) == make_session("S1", exit_offset_minutes=90)


def test_fields_to_wire_renames_known_fields() -> None:
    assert fields_to_wire({"exit_time": "2025-07-01T10:00:00+00:00", "bogus": 1}) == {
        "endTime": "2025-07-01T10:00:00+00:00"
    }
