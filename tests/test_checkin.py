import asyncio

import pytest

from rollcall.checkin import ERROR, NOT_FOUND, SUCCESS, CheckInService
from rollcall.directory import DirectoryFeed
from rollcall.errors import EventNotFound, InvalidPayload, NoEventSelected
from rollcall.manual import submit_manual
from rollcall.models import CheckInMethod, Event, Registrant
from rollcall.recorder import AttendanceRecorder
from rollcall.store import MemoryAttendanceStore

from conftest import ACTOR, T0, SteppingClock


def _service(roster, events):
    svc = CheckInService(AttendanceRecorder(MemoryAttendanceStore(), clock=SteppingClock()))
    svc.update_registrants(roster)
    svc.update_events(events)
    return svc


def _kinds(svc):
    seen = []
    svc.signals.subscribe(lambda s: seen.append(s.kind))
    return seen


def test_scan_then_manual_end_to_end():
    svc = _service([Registrant(key="m1", primary_id="2025-001")], [Event(id="e1")])
    assert svc.selected_event_id == "e1"

    async def go():
        scanned = await svc.check_in("2025-001", CheckInMethod.SCAN, ACTOR)
        typed = await submit_manual(svc, "2025001", ACTOR)
        return scanned, typed

    scanned, typed = asyncio.run(go())
    assert scanned.registrant_key == "m1"
    assert scanned.method is CheckInMethod.SCAN
    assert scanned.first_checked_in_at == scanned.last_checked_in_at == T0

    assert typed.first_checked_in_at == T0
    assert typed.last_checked_in_at > scanned.last_checked_in_at
    assert typed.method is CheckInMethod.MANUAL
    assert svc.last_success["method"] == "manual"
    assert svc.last_success["primaryId"] == "2025-001"


def test_not_found_is_reported_not_raised(roster, event):
    svc = _service(roster, [event])
    kinds = _kinds(svc)
    out = asyncio.run(svc.check_in("https://x/v?id=2025-404", CheckInMethod.SCAN, ACTOR))
    assert out is None
    assert kinds == [NOT_FOUND]
    assert svc.signals.last.message == "No member found with ID 2025-404."
    assert event.attendance_log == {}


def test_no_event_selected(roster):
    svc = _service(roster, [])
    kinds = _kinds(svc)
    with pytest.raises(NoEventSelected):
        asyncio.run(svc.check_in("2025-001", CheckInMethod.SCAN, ACTOR))
    assert kinds == [ERROR]


def test_event_vanished_mid_session(roster, event):
    svc = _service(roster, [event])
    with pytest.raises(EventNotFound):
        asyncio.run(svc.check_in("2025-001", CheckInMethod.SCAN, ACTOR, event_id="gone"))


def test_manual_blank_input(roster, event):
    svc = _service(roster, [event])
    with pytest.raises(InvalidPayload):
        asyncio.run(submit_manual(svc, "   ", ACTOR))


def test_success_signal_carries_record(roster, event):
    svc = _service(roster, [event])
    kinds = _kinds(svc)
    asyncio.run(submit_manual(svc, "osca-77", ACTOR))
    assert kinds == [SUCCESS]
    sig = svc.signals.last
    assert sig.record.registrant_key == "m2"
    assert sig.message.startswith("Checked in Maria Santos at ")
    assert sig.as_dict()["record"]["method"] == "manual"


def test_feeds_replace_snapshots_and_keep_selection(roster):
    svc = _service([], [])
    reg_feed, ev_feed = DirectoryFeed("registrants"), DirectoryFeed("events")
    detach = svc.attach(reg_feed, ev_feed)

    reg_feed.publish(roster)
    ev_feed.publish([Event(id="e1"), Event(id="e2")])
    svc.select_event("e2")
    ev_feed.publish([Event(id="e2"), Event(id="e3")])
    assert svc.selected_event_id == "e2"
    assert len(svc.registrants) == 2

    changes = []
    svc.on_selection_change(changes.append)
    ev_feed.publish([])
    assert svc.selected_event_id is None
    assert changes == [None]

    detach()
    reg_feed.publish([])
    assert len(svc.registrants) == 2


def test_select_unknown_event(roster, event):
    svc = _service(roster, [event])
    with pytest.raises(EventNotFound):
        svc.select_event("nope")
    assert svc.selected_event_id == "e1"


def test_attendance_for_newest_first(roster, event):
    svc = _service(roster, [event])

    async def go():
        await svc.check_in("2025-001", CheckInMethod.SCAN, ACTOR)
        await svc.check_in("2025-002", CheckInMethod.SCAN, ACTOR)

    asyncio.run(go())
    assert [r.registrant_key for r in svc.attendance_for("e1")] == ["m2", "m1"]
    with pytest.raises(EventNotFound):
        svc.attendance_for("nope")
