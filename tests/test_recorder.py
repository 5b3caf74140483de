import asyncio
import logging

import pytest

from rollcall.audit import AuditSink
from rollcall.errors import PersistenceFailure
from rollcall.models import CheckInMethod
from rollcall.recorder import AttendanceRecorder
from rollcall.store import MemoryAttendanceStore

from conftest import ACTOR, T0, SteppingClock


class CollectingSink(AuditSink):
    def __init__(self):
        self.entries = []

    async def emit(self, entry):
        self.entries.append(entry)


class BrokenSink(AuditSink):
    async def emit(self, entry):
        raise ConnectionError("audit service down")


class FailingStore(MemoryAttendanceStore):
    async def upsert(self, record):
        raise ConnectionError("write rejected")


def test_first_arrival_is_idempotent(roster, event):
    store = MemoryAttendanceStore()
    rec = AttendanceRecorder(store, clock=SteppingClock())
    m1 = roster[0]

    async def go():
        first = await rec.record(event, m1, CheckInMethod.SCAN, ACTOR)
        second = await rec.record(event, m1, CheckInMethod.MANUAL, ACTOR)
        return first, second

    first, second = asyncio.run(go())
    assert first.first_checked_in_at == first.last_checked_in_at == T0
    assert second.first_checked_in_at == T0
    assert second.last_checked_in_at > first.last_checked_in_at
    assert second.method is CheckInMethod.MANUAL
    assert event.attendance_log["m1"] is second
    assert store.writes == 2


def test_snapshot_fields_and_actor(roster, event):
    rec = AttendanceRecorder(MemoryAttendanceStore(), clock=SteppingClock())
    out = asyncio.run(rec.record(event, roster[1], CheckInMethod.SCAN, ACTOR))
    assert out.display_name == "Maria Santos"
    assert out.primary_id == "2025-002"
    assert out.recorded_by == "Front Desk"
    assert out.recorded_by_id == "op-1"


def test_audit_entry_emitted_once(roster, event):
    sink = CollectingSink()
    rec = AttendanceRecorder(MemoryAttendanceStore(), sink, clock=SteppingClock())

    async def go():
        await rec.record(event, roster[0], CheckInMethod.SCAN, ACTOR)
        await rec.drain()

    asyncio.run(go())
    assert len(sink.entries) == 1
    entry = sink.entries[0]
    assert entry["eventId"] == "e1"
    assert entry["eventTitle"] == "Monthly Assembly"
    assert entry["registrantKey"] == "m1"
    assert entry["method"] == "scan"
    assert entry["actor"] == {"id": "op-1", "label": "Front Desk", "role": "staff"}


def test_audit_failure_does_not_fail_checkin(roster, event, caplog):
    rec = AttendanceRecorder(MemoryAttendanceStore(), BrokenSink(), clock=SteppingClock())

    async def go():
        out = await rec.record(event, roster[0], CheckInMethod.SCAN, ACTOR)
        await rec.drain()
        return out

    with caplog.at_level(logging.WARNING, logger="checkin.recorder"):
        out = asyncio.run(go())
    assert out.registrant_key == "m1"
    assert "m1" in event.attendance_log
    assert any(r.getMessage() == "audit_emit_failed" for r in caplog.records)


def test_persistence_failure_surfaces(roster, event):
    rec = AttendanceRecorder(FailingStore(), clock=SteppingClock())
    with pytest.raises(PersistenceFailure):
        asyncio.run(rec.record(event, roster[0], CheckInMethod.SCAN, ACTOR))
    assert event.attendance_log == {}
