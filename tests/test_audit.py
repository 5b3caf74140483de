import asyncio
import json
import sqlite3

import pytest

from rollcall.audit import ACTION, LoggingAuditSink, SqliteAuditSink, build_audit_entry, build_audit_sink
from rollcall.db_schema import ensure_schema
from rollcall.models import AttendanceRecord, CheckInMethod, Event

from conftest import ACTOR, T0


def _entry():
    rec = AttendanceRecord(
        event_id="e1", registrant_key="m1", display_name="Juan Dela Cruz", primary_id="2025-001",
        first_checked_in_at=T0, last_checked_in_at=T0, recorded_by="Front Desk", method=CheckInMethod.SCAN,
    )
    return build_audit_entry(Event(id="e1", title="Monthly Assembly"), rec, ACTOR)


def test_sqlite_sink_writes_row(tmp_path):
    db = tmp_path / "audit.sqlite"
    ensure_schema(db)
    asyncio.run(SqliteAuditSink(db).emit(_entry()))

    with sqlite3.connect(db) as conn:
        action, event_id, actor_id, payload = conn.execute(
            "SELECT action, event_id, actor_id, payload_json FROM audit_log"
        ).fetchone()
    assert (action, event_id, actor_id) == (ACTION, "e1", "op-1")
    assert json.loads(payload)["displayName"] == "Juan Dela Cruz"


def test_build_audit_sink(tmp_path):
    assert isinstance(build_audit_sink({"sink": "log"}, tmp_path / "a.sqlite"), LoggingAuditSink)
    assert isinstance(build_audit_sink({}, tmp_path / "a.sqlite"), SqliteAuditSink)
    with pytest.raises(ValueError):
        build_audit_sink({"sink": "fax"}, tmp_path / "a.sqlite")
