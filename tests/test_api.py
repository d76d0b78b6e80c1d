"""Tests for the kiosk HTTP API."""

from fastapi.testclient import TestClient

from guest_kiosk.api.app import create_app
from guest_kiosk.containers import AppContainer
from tests.conftest import make_session

ADMIN_HEADERS = {"X-Admin-Token": "admin-token"}


def _client(container: AppContainer) -> TestClient:
    return TestClient(create_app(container))


def _check_in(client: TestClient, tag_id: str = "T1"):  # type: ignore[no-untyped-def]
    return client.post(
        "/sessions/check-in",
        json={"tag_id": tag_id, "guest_type": "hotelgast", "adults": 2, "children": 1},
    )


def test_health(container) -> None:
    response = _client(container).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_check_in_creates_session(container) -> None:
    client = _client(container)

    response = _check_in(client)

    assert response.status_code == 201
    data = response.json()
    assert data["outcome"] == "checked_in"
    assert data["session"]["tag_id"] == "T1"
    assert data["session"]["guest_type"] == "hotelgast"
    assert data["session"]["exit_time"] is None
    assert data["closed"] == []

    listed = client.get("/sessions").json()["sessions"]
    assert [s["session_id"] for s in listed] == [data["session"]["session_id"]]


def test_second_check_in_reports_forced_closure(container) -> None:
    client = _client(container)
    first = _check_in(client).json()["session"]["session_id"]

    data = _check_in(client).json()

    assert data["closed"] == [first]


def test_check_in_rejects_invalid_payload(container) -> None:
    client = _client(container)

    blank = _check_in(client, tag_id="   ")
    negative = client.post(
        "/sessions/check-in",
        json={"tag_id": "T1", "guest_type": "daggast", "adults": -1, "children": 0},
    )
    unknown_type = client.post(
        "/sessions/check-in",
        json={"tag_id": "T1", "guest_type": "vip", "adults": 1, "children": 0},
    )

    assert blank.status_code == 400
    assert negative.status_code == 422
    assert unknown_type.status_code == 422


def test_tap_routes_to_check_in_then_check_out(container) -> None:
    client = _client(container)

    assert client.post("/taps", json={"tag_id": "T1"}).json() == {
        "action": "check_in",
        "session": None,
    }

    _check_in(client)
    data = client.post("/taps", json={"tag_id": "T1"}).json()

    assert data["action"] == "check_out"
    assert data["session"]["tag_id"] == "T1"


def test_check_out_flow(container) -> None:
    client = _client(container)
    _check_in(client)

    response = client.post("/sessions/check-out", json={"tag_id": "T1"})

    assert response.status_code == 200
    data = response.json()
    assert data["outcome"] == "checked_out"
    assert data["session"]["exit_time"] is not None
    assert data["session"]["duration_seconds"] == 0.0

    again = client.post("/sessions/check-out", json={"tag_id": "T1"})
    assert again.status_code == 404


def test_active_session_lookup(container) -> None:
    client = _client(container)

    assert client.get("/sessions/active/T1").status_code == 404

    _check_in(client)
    response = client.get("/sessions/active/T1")

    assert response.status_code == 200
    assert response.json()["tag_id"] == "T1"


def test_sync_now_pushes_queue(container) -> None:
    client = _client(container)
    _check_in(client)

    response = client.post("/sync")

    assert response.status_code == 200
    data = response.json()
    assert data["ran"] is True
    assert data["applied"] == 1
    assert data["pulled"] is True
    remote_store = container.remote_store
    assert [s.tag_id for s in remote_store.sessions.values()] == ["T1"]

    status = client.get("/sync/status").json()
    assert status["status"] == "idle"
    assert status["pending_count"] == 0
    assert status["last_synced_at"] is not None


def test_connectivity_signal_controls_sync(container) -> None:
    client = _client(container)
    _check_in(client)

    offline = client.post("/connectivity", json={"online": False}).json()
    skipped = client.post("/sync").json()

    assert offline["status"] == "offline"
    assert offline["pending_count"] == 1
    assert skipped["ran"] is False

    client.post("/connectivity", json={"online": True})
    assert client.post("/sync").json()["applied"] == 1


def test_admin_requires_token(container) -> None:
    client = _client(container)

    assert client.get("/admin/queue").status_code == 401
    assert (
        client.get("/admin/queue", headers={"X-Admin-Token": "wrong"}).status_code
        == 401
    )


def test_admin_queue_listing_and_clearing(container) -> None:
    client = _client(container)
    _check_in(client)

    listed = client.get("/admin/queue", headers=ADMIN_HEADERS).json()
    assert [op["kind"] for op in listed["operations"]] == ["create"]
    assert listed["operations"][0]["attempt_count"] == 0

    cleared = client.delete("/admin/queue", headers=ADMIN_HEADERS).json()
    assert cleared == {"discarded": 1}
    assert container.local_store.count_operations() == 0


def test_admin_remote_sessions(container) -> None:
    client = _client(container)
    remote_store = container.remote_store
    remote_store.sessions["S1"] = make_session("S1")

    response = client.get("/admin/remote-sessions", headers=ADMIN_HEADERS)

    assert response.status_code == 200
    assert response.json()["sessions"][0]["session_id"] == "S1"

    remote_store.fail_list = True
    assert (
        client.get("/admin/remote-sessions", headers=ADMIN_HEADERS).status_code == 502
    )


def test_lifespan_starts_and_stops_sync_engine(container) -> None:
    app = create_app(container)

    with TestClient(app) as client:
        assert container.sync_engine.started
        assert client.get("/health").status_code == 200

    assert not container.sync_engine.started


def test_tap_with_padded_tag_offers_check_out(container) -> None:
    client = _client(container)
    _check_in(client)

    data = client.post("/taps", json={"tag_id": " T1 "}).json()

    assert data["action"] == "check_out"
    assert data["session"]["tag_id"] == "T1"
