import sqlite3

import pytest
from fastapi.testclient import TestClient

import rollcall.server as server
from rollcall.db_schema import ensure_schema
from rollcall.store import MemoryAttendanceStore

from conftest import StubFrameSource


def _seed(db):
    ensure_schema(db)
    with sqlite3.connect(db) as conn:
        conn.executemany(
            "INSERT INTO registrants (registrant_key, primary_id, secondary_ids_json, first_name, last_name) "
            "VALUES (?, ?, ?, ?, ?)",
            [
                ("m1", "2025-001", "[]", "Juan", "Dela Cruz"),
                ("m2", "2025-002", '["OSCA-77"]', "Maria", "Santos"),
            ],
        )
        conn.execute(
            "INSERT INTO events (event_id, title, date, time, location) "
            "VALUES ('e1', 'Monthly Assembly', '2999-01-01', '9:00 AM', 'Covered Court')"
        )


@pytest.fixture()
def client(tmp_path, monkeypatch):
    test_db = tmp_path / "rollcall_test.sqlite"
    _seed(test_db)

    # Point the app at a temp DB for isolation.
    monkeypatch.setattr(server, "DB_PATH", test_db)

    with TestClient(server.app) as c:
        yield c


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert body["scanner"] == "idle"
    assert body["selectedEventId"] == "e1"
    assert body["registrants"] == 2


def test_list_and_select_events(client):
    res = client.get("/events")
    assert res.status_code == 200
    assert [e["id"] for e in res.json()["events"]] == ["e1"]

    assert client.post("/events/select", json={"event_id": "nope"}).status_code == 404
    res = client.post("/events/select", json={"event_id": None})
    assert res.json()["selectedEventId"] is None


def test_manual_checkin_keeps_first_arrival(client):
    first = client.post("/checkin/manual", json={"id": "2025-001"})
    assert first.status_code == 200
    rec1 = first.json()["record"]
    assert rec1["method"] == "manual"
    assert rec1["recordedBy"] == "Front Desk"
    assert first.json()["message"].startswith("Checked in Juan Dela Cruz at ")

    again = client.post("/checkin/manual", json={"id": "2025 001",
                                                 "actor": {"id": "op-2", "label": "Side Gate"}})
    rec2 = again.json()["record"]
    assert rec2["firstCheckedInAt"] == rec1["firstCheckedInAt"]
    assert rec2["lastCheckedInAt"] >= rec1["lastCheckedInAt"]
    assert rec2["recordedBy"] == "Side Gate"

    listing = client.get("/events/e1/attendance").json()["attendance"]
    assert [r["registrantKey"] for r in listing] == ["m1"]


def test_manual_checkin_errors(client):
    assert client.post("/checkin/manual", json={"id": "9999-999"}).status_code == 404
    assert client.post("/checkin/manual", json={"id": "   "}).status_code == 400
    assert client.post("/checkin/manual", json={"id": "2025-001", "event_id": "gone"}).status_code == 409

    client.post("/events/select", json={"event_id": None})
    res = client.post("/checkin/manual", json={"id": "2025-001"})
    assert res.status_code == 409
    assert res.json()["detail"] == "Select an event before scanning."


def test_put_attendance_is_keyed_upsert(client):
    url = "/events/e1/attendance/m2"
    assert client.get(url).status_code == 404

    body = {
        "displayName": "Maria Santos",
        "primaryId": "2025-002",
        "firstCheckedInAt": "2999-01-01T01:00:00+00:00",
        "lastCheckedInAt": "2999-01-01T01:00:00+00:00",
        "recordedBy": "Side Gate",
        "method": "scan",
    }
    assert client.put(url, json=body).status_code == 200

    body2 = dict(body, firstCheckedInAt="2999-01-01T02:00:00+00:00",
                 lastCheckedInAt="2999-01-01T02:00:00+00:00", method="manual")
    res = client.put(url, json=body2)
    assert res.status_code == 200
    assert res.json()["firstCheckedInAt"] == "2999-01-01T01:00:00.000000+00:00"
    assert res.json()["lastCheckedInAt"] == "2999-01-01T02:00:00.000000+00:00"
    assert res.json()["method"] == "manual"

    assert client.get(url).json()["registrantKey"] == "m2"
    assert client.put(url, json={"displayName": "no time"}).status_code == 400
    assert client.put("/events/nope/attendance/m2", json=body).status_code == 404


def test_scanner_start_stop(client):
    stub = StubFrameSource()
    server._RT.controller.frame_source = stub

    res = client.post("/scanner/start")
    assert res.status_code == 200
    assert res.json()["started"] is True
    assert client.post("/scanner/start").json()["started"] is False

    status = client.get("/scanner/status").json()
    assert status["eventId"] == "e1"

    res = client.post("/scanner/stop")
    assert res.json()["state"] == "idle"
    assert len(stub.released) == len(stub.acquired)


def test_scanner_requires_event(client):
    client.post("/events/select", json={"event_id": None})
    assert client.post("/scanner/start").status_code == 409


def test_directory_reload(client):
    with sqlite3.connect(server.DB_PATH) as conn:
        conn.execute("INSERT INTO registrants (registrant_key, primary_id) VALUES ('m3', '2025-003')")
    res = client.post("/directory/reload")
    assert res.json() == {"ok": True, "registrants": 3, "events": 1}
    assert client.post("/checkin/manual", json={"id": "2025003"}).status_code == 200


class OfflineStore(MemoryAttendanceStore):
    async def upsert(self, record):
        raise ConnectionError("store offline")


def test_put_attendance_store_failure_is_502(client):
    server._RT.store = OfflineStore()
    body = {
        "displayName": "Maria Santos",
        "primaryId": "2025-002",
        "firstCheckedInAt": "2999-01-01T01:00:00+00:00",
        "method": "scan",
    }
    res = client.put("/events/e1/attendance/m2", json=body)
    assert res.status_code == 502
    assert "store offline" in res.json()["detail"]
