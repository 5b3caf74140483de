from __future__ import annotations

"""
RollCall - rollcall/server.py
-----------------------------
HTTP surface for the check-in desk.

1) Events
   - GET  /events                              : directory snapshot + current selection
   - POST /events/select                       : change (or clear) the active event

2) Attendance (also the wire API used by HttpAttendanceStore)
   - GET  /events/{event_id}/attendance        : newest check-ins first
   - GET  /events/{event_id}/attendance/{key}  : one record or 404
   - PUT  /events/{event_id}/attendance/{key}  : keyed upsert, first arrival preserved

3) Check-in
   - POST /checkin/manual                      : typed registration number
   - POST /scanner/start | /scanner/stop       : toggle the camera scan loop
   - GET  /scanner/status                      : state, counters, last signal

4) Housekeeping
   - GET  /health
   - POST /directory/reload                    : re-read registrants/events from SQLite

Errors map onto status codes: invalid payload 400, unknown id 404,
no/unknown event 409, store failure 502, camera unavailable 503.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from . import __version__
from .config_loader import get_db_path
from .errors import (
    CameraUnavailable,
    CheckInError,
    EventNotFound,
    IdentifierNotFound,
    InvalidPayload,
    NoEventSelected,
    PersistenceFailure,
    RollCallError,
)
from .manual import submit_manual
from .models import Actor, AttendanceRecord
from .runtime import Runtime, build_runtime

log = logging.getLogger("rollcall")

# Resolved from config; tests point this at a scratch database before startup.
DB_PATH = get_db_path()

_RT: Optional[Runtime] = None

# ------------------------------------------------------------
# FastAPI app bootstrap
# ------------------------------------------------------------
app = FastAPI(title="RollCall Check-in", version=__version__)


@app.on_event("startup")
async def _startup() -> None:
    global _RT
    _RT = build_runtime(DB_PATH)
    log.info("rollcall_ready", extra={"db_path": str(DB_PATH)})


@app.on_event("shutdown")
async def _shutdown() -> None:
    """Stop the scan loop (releases the camera) and let in-flight writes finish."""
    global _RT
    if _RT is None:
        return
    await _RT.aclose()
    _RT = None
    log.info("rollcall_stopped")


def _rt() -> Runtime:
    if _RT is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return _RT


_STATUS_FOR = (
    (InvalidPayload, 400),
    (IdentifierNotFound, 404),
    (NoEventSelected, 409),
    (EventNotFound, 409),
    (PersistenceFailure, 502),
    (CameraUnavailable, 503),
)


def _http_error(err: RollCallError) -> HTTPException:
    for cls, code in _STATUS_FOR:
        if isinstance(err, cls):
            return HTTPException(status_code=code, detail=str(err))
    return HTTPException(status_code=500, detail=str(err))


# ------------------------------------------------------------
# Request models
# ------------------------------------------------------------

class ActorIn(BaseModel):
    id: str
    label: str
    role: Optional[str] = None


class SelectReq(BaseModel):
    event_id: Optional[str] = None


class ManualReq(BaseModel):
    id: str = Field(..., description="Registration number as typed by the operator")
    event_id: Optional[str] = None
    actor: Optional[ActorIn] = None


# ------------------------------------------------------------
# Health / directory
# ------------------------------------------------------------

@app.get("/health")
async def health() -> Dict[str, Any]:
    rt = _rt()
    return {
        "ok": True,
        "version": __version__,
        "scanner": rt.controller.state.value,
        "selectedEventId": rt.service.selected_event_id,
        "registrants": len(rt.service.registrants),
    }


@app.post("/directory/reload")
async def reload_directory() -> Dict[str, Any]:
    registrants, events = _rt().reload_directory()
    return {"ok": True, "registrants": registrants, "events": events}


# ------------------------------------------------------------
# Events
# ------------------------------------------------------------

@app.get("/events")
async def list_events() -> Dict[str, Any]:
    svc = _rt().service
    return {
        "events": [e.summary() for e in svc.events.values()],
        "selectedEventId": svc.selected_event_id,
    }


@app.post("/events/select")
async def select_event(req: SelectReq) -> Dict[str, Any]:
    svc = _rt().service
    try:
        svc.select_event(req.event_id)
    except EventNotFound:
        raise HTTPException(status_code=404, detail=f"event {req.event_id} not found")
    return {"ok": True, "selectedEventId": svc.selected_event_id}


# ------------------------------------------------------------
# Attendance
# ------------------------------------------------------------

def _require_event(event_id: str):
    ev = _rt().service.events.get(event_id)
    if ev is None:
        raise HTTPException(status_code=404, detail=f"event {event_id} not found")
    return ev


@app.get("/events/{event_id}/attendance")
async def event_attendance(event_id: str) -> Dict[str, Any]:
    _require_event(event_id)
    records = await _rt().store.list_event(event_id)
    records.sort(key=lambda r: r.last_checked_in_at, reverse=True)
    return {"eventId": event_id, "attendance": [r.to_dict() for r in records]}


@app.get("/events/{event_id}/attendance/{registrant_key}")
async def get_attendance(event_id: str, registrant_key: str) -> Dict[str, Any]:
    _require_event(event_id)
    rec = await _rt().store.get(event_id, registrant_key)
    if rec is None:
        raise HTTPException(status_code=404, detail="attendance not found")
    return rec.to_dict()


@app.put("/events/{event_id}/attendance/{registrant_key}")
async def put_attendance(event_id: str, registrant_key: str, body: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keyed upsert for remote scanners. The path decides the key; an existing
    row keeps its first_checked_in_at whatever the body says.
    """
    ev = _require_event(event_id)
    try:
        record = AttendanceRecord.from_dict(body, event_id=event_id, registrant_key=registrant_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        persisted = await _rt().store.upsert(record)
    except Exception as e:
        log.warning("attendance_put_failed", extra={"event_id": event_id, "registrant_key": registrant_key,
                                                    "err": str(e)})
        raise _http_error(PersistenceFailure(f"Unable to save attendance for {registrant_key}: {e}"))
    ev.attendance_log[registrant_key] = persisted
    log.info("attendance_put", extra={"event_id": event_id, "registrant_key": registrant_key,
                                      "method": persisted.method.value})
    return persisted.to_dict()


# ------------------------------------------------------------
# Check-in
# ------------------------------------------------------------

@app.post("/checkin/manual")
async def manual_checkin(req: ManualReq) -> Dict[str, Any]:
    rt = _rt()
    actor = Actor(id=req.actor.id, label=req.actor.label, role=req.actor.role) if req.actor else rt.actor
    try:
        record = await submit_manual(rt.service, req.id, actor, event_id=req.event_id)
        if record is None:
            raise IdentifierNotFound(req.id.strip())
    except CheckInError as e:
        raise _http_error(e)
    return {"ok": True, "record": record.to_dict(), "message": rt.service.signals.last.message}


@app.post("/scanner/start")
async def scanner_start() -> Dict[str, Any]:
    rt = _rt()
    if not rt.service.selected_event_id:
        raise _http_error(NoEventSelected())
    started = rt.controller.start()
    return {"started": started, **rt.controller.status()}


@app.post("/scanner/stop")
async def scanner_stop() -> Dict[str, Any]:
    rt = _rt()
    await rt.controller.stop()
    return rt.controller.status()


@app.get("/scanner/status")
async def scanner_status() -> Dict[str, Any]:
    rt = _rt()
    last = rt.service.signals.last
    return {
        **rt.controller.status(),
        "lastSignal": last.as_dict() if last else None,
        "lastSuccess": rt.service.last_success,
    }


if __name__ == "__main__":
    # running from repo root:  python -m rollcall.server
    import uvicorn

    from .config_loader import get_log_level, get_server_bind

    host, port = get_server_bind()
    logging.basicConfig(
        level=getattr(logging, get_log_level("INFO"), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=host, port=port)
