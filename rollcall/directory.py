from __future__ import annotations
"""
Directory ingestion and push feeds.

The registrant and event directories are owned elsewhere. What reaches the
engine is a full-replacement snapshot, pushed whenever the directory
changes. This module turns raw directory rows into Registrant/Event records
and fans snapshots out to subscribers.

Alias id fields (oscaNumber, idNumber, ...) are folded into
Registrant.secondary_ids here, so matching never has to know field names.
"""

import datetime as dt
import json
import logging
import re
import sqlite3
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterable, List, Mapping, Optional, Tuple, TypeVar

from .models import AttendanceRecord, Event, Registrant
from .store import record_from_row

log = logging.getLogger("checkin.directory")

T = TypeVar("T")

PRIMARY_ID_FIELDS = ("primary_id", "primaryId", "oscaID")
SECONDARY_ID_FIELDS = ("oscaNumber", "idNumber", "id_number")
NAME_FIELDS = ("display_name", "displayName", "fullName", "name")
GROUP_FIELDS = ("group_tag", "groupTag", "barangay")

_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})\s*([AaPp][Mm])?", re.ASCII)


# ---------- row -> record ----------

def _first_text(row: Mapping[str, Any], fields: Iterable[str]) -> str:
    for f in fields:
        v = row.get(f)
        if v is not None and str(v).strip():
            return str(v).strip()
    return ""


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        s = value.strip()
        if s.startswith("["):
            try:
                value = json.loads(s)
            except ValueError:
                return [s]
        else:
            return [s] if s else []
    if isinstance(value, Mapping):
        value = value.values()
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def registrant_from_row(key: str, row: Mapping[str, Any]) -> Registrant:
    primary = _first_text(row, PRIMARY_ID_FIELDS)

    secondary: List[str] = []
    for candidate in _as_list(row.get("secondary_ids") or row.get("secondaryIds")) + [
        _first_text(row, (f,)) for f in SECONDARY_ID_FIELDS
    ]:
        if candidate and candidate != primary and candidate not in secondary:
            secondary.append(candidate)

    full = " ".join(f"{row.get('firstName') or row.get('first_name') or ''} "
                    f"{row.get('lastName') or row.get('last_name') or ''}".split())
    name = full or _first_text(row, NAME_FIELDS) or "Member"

    return Registrant(
        key=str(key),
        primary_id=primary,
        secondary_ids=tuple(secondary),
        display_name=name,
        group_tag=_first_text(row, GROUP_FIELDS),
    )


def event_timestamp(date: Optional[str], time_text: Optional[str]) -> Optional[dt.datetime]:
    """
    Scheduled start (naive local time) from a date plus free-text time.
    The first "H:MM" in the time text wins (AM/PM honored); no usable time
    means midnight. An unparseable date gives None.
    """
    if not date or not str(date).strip():
        return None
    base = str(date).strip()

    hh, mm = 0, 0
    m = _TIME_RE.search(time_text or "")
    if m:
        hh, mm = int(m.group(1)), int(m.group(2))
        suffix = (m.group(3) or "").lower()
        if suffix == "pm" and hh < 12:
            hh += 12
        elif suffix == "am" and hh == 12:
            hh = 0
        if hh > 23 or mm > 59:
            hh, mm = 0, 0

    try:
        day = dt.date.fromisoformat(base[:10])
    except ValueError:
        return None
    if len(base) > 10:
        # full timestamp in the date field: it carries its own time
        try:
            ts = dt.datetime.fromisoformat(base.replace("Z", "+00:00"))
        except ValueError:
            ts = None
        if ts is not None:
            return ts.astimezone().replace(tzinfo=None) if ts.tzinfo else ts
    return dt.datetime.combine(day, dt.time(hh, mm))


def event_from_row(event_id: str, row: Mapping[str, Any],
                   attendance: Optional[Mapping[str, Any]] = None) -> Event:
    log_map: Dict[str, AttendanceRecord] = {}
    raw_att = attendance if attendance is not None else (row.get("attendance") or {})
    for key, value in (raw_att or {}).items():
        if isinstance(value, AttendanceRecord):
            log_map[str(key)] = value
            continue
        try:
            log_map[str(key)] = AttendanceRecord.from_dict(value, event_id=str(event_id), registrant_key=str(key))
        except ValueError:
            log.warning("attendance_row_skipped", extra={"event_id": event_id, "registrant_key": key})

    date = row.get("date")
    time_text = row.get("time")
    return Event(
        id=str(event_id),
        title=str(row.get("title") or "Untitled"),
        date=str(date) if date else None,
        time=str(time_text) if time_text else None,
        scheduled_at=event_timestamp(date, time_text),
        location=str(row.get("location") or ""),
        attendance_log=log_map,
    )


# ---------- ordering / selection ----------

def sort_events(events: Iterable[Event]) -> List[Event]:
    """Chronological; undated events sort first."""
    return sorted(events, key=lambda e: (e.scheduled_at is not None, e.scheduled_at or dt.datetime.min))


def pick_default_event(events: Iterable[Event], current_id: Optional[str] = None,
                       now: Optional[dt.datetime] = None) -> Optional[str]:
    """
    Keep the current selection while it still exists; otherwise choose the
    first upcoming event, falling back to the earliest one.
    """
    evs = list(events)
    if not evs:
        return None
    if current_id and any(e.id == current_id for e in evs):
        return current_id
    now = now or dt.datetime.now()
    ordered = sort_events(evs)
    upcoming = next((e for e in ordered if e.scheduled_at is not None and e.scheduled_at >= now), None)
    return (upcoming or ordered[0]).id


# ---------- push feed ----------

class DirectoryFeed(Generic[T]):
    """
    Push subscription carrying full-replacement snapshots.
    Late subscribers get the latest snapshot immediately.
    """
    def __init__(self, name: str):
        self.name = name
        self._subs: List[Callable[[List[T]], None]] = []
        self._latest: Optional[List[T]] = None

    @property
    def latest(self) -> Optional[List[T]]:
        return None if self._latest is None else list(self._latest)

    def subscribe(self, callback: Callable[[List[T]], None]) -> Callable[[], None]:
        self._subs.append(callback)
        if self._latest is not None:
            callback(list(self._latest))

        def _unsubscribe() -> None:
            if callback in self._subs:
                self._subs.remove(callback)
        return _unsubscribe

    def publish(self, items: Iterable[T]) -> None:
        self._latest = list(items)
        for cb in list(self._subs):
            try:
                cb(list(self._latest))
            except Exception:
                log.exception("directory_subscriber_failed", extra={"feed": self.name})


# ---------- SQLite-backed directory ----------

def load_directory(db_path: str | Path) -> Tuple[List[Registrant], List[Event]]:
    """Read registrants and events (with attendance) from the RollCall database."""
    with sqlite3.connect(str(db_path)) as db:
        db.row_factory = sqlite3.Row
        reg_rows = db.execute(
            "SELECT registrant_key, primary_id, secondary_ids_json, first_name, last_name, "
            "display_name, group_tag FROM registrants ORDER BY rowid"
        ).fetchall()
        event_rows = db.execute("SELECT event_id, title, date, time, location FROM events").fetchall()
        att_rows = db.execute("SELECT * FROM attendance").fetchall()

    registrants = [
        registrant_from_row(r["registrant_key"], {
            "primary_id": r["primary_id"],
            "secondary_ids": r["secondary_ids_json"],
            "first_name": r["first_name"],
            "last_name": r["last_name"],
            "display_name": r["display_name"],
            "group_tag": r["group_tag"],
        })
        for r in reg_rows
    ]

    by_event: Dict[str, Dict[str, AttendanceRecord]] = {}
    for a in att_rows:
        rec = record_from_row(a)
        by_event.setdefault(rec.event_id, {})[rec.registrant_key] = rec

    events = [
        event_from_row(r["event_id"], dict(r), attendance=by_event.get(r["event_id"], {}))
        for r in event_rows
    ]
    return registrants, sort_events(events)
