from __future__ import annotations
"""
Core records: Registrant, Event, AttendanceRecord, Actor.

Wire shape (camelCase) matches what the directory feeds and the HTTP
persistence API exchange. Timestamps are tz-aware UTC datetimes in memory
and ISO-8601 strings on the wire.
"""

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def to_iso(ts: Optional[dt.datetime]) -> Optional[str]:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=dt.timezone.utc)
    return ts.astimezone(dt.timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: Any) -> Optional[dt.datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        ts = value
    else:
        s = str(value).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            ts = dt.datetime.fromisoformat(s)
        except ValueError:
            return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=dt.timezone.utc)
    return ts.astimezone(dt.timezone.utc)


class CheckInMethod(str, Enum):
    MANUAL = "manual"
    SCAN = "scan"

    @classmethod
    def coerce(cls, value: Any) -> "CheckInMethod":
        v = str(getattr(value, "value", value) or "").strip().lower()
        if v == "manual":
            return cls.MANUAL
        # legacy records were written with method="qr"
        return cls.SCAN


@dataclass(frozen=True)
class Actor:
    """Operator identity stamped on every record and audit entry."""
    id: str = "unknown"
    label: str = "Unknown"
    role: Optional[str] = None


@dataclass(frozen=True)
class Registrant:
    key: str
    primary_id: str
    secondary_ids: Tuple[str, ...] = ()
    display_name: str = "Member"
    group_tag: str = ""


@dataclass
class AttendanceRecord:
    event_id: str
    registrant_key: str
    display_name: str
    primary_id: str
    first_checked_in_at: dt.datetime
    last_checked_in_at: dt.datetime
    recorded_by: str
    method: CheckInMethod
    recorded_by_id: Optional[str] = None
    group_tag: str = ""

    def to_dict(self) -> Dict[str, Any]:
        first = to_iso(self.first_checked_in_at)
        return {
            "eventId": self.event_id,
            "registrantKey": self.registrant_key,
            "displayName": self.display_name,
            "primaryId": self.primary_id,
            "groupTag": self.group_tag,
            "firstCheckedInAt": first,
            "lastCheckedInAt": to_iso(self.last_checked_in_at),
            "checkedInAt": first,
            "recordedBy": self.recorded_by,
            "recordedById": self.recorded_by_id,
            "method": self.method.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, event_id: Optional[str] = None,
                  registrant_key: Optional[str] = None) -> "AttendanceRecord":
        """
        Build a record from the wire shape. Accepts the legacy shape where only
        `checkedInAt` was stored; that value is the first arrival.
        """
        first = from_iso(data.get("firstCheckedInAt")) or from_iso(data.get("checkedInAt"))
        last = from_iso(data.get("lastCheckedInAt")) or first
        if first is None:
            raise ValueError("attendance record has no check-in timestamp")
        return cls(
            event_id=str(event_id or data.get("eventId") or ""),
            registrant_key=str(registrant_key or data.get("registrantKey") or data.get("memberId") or ""),
            display_name=str(data.get("displayName") or "Member"),
            primary_id=str(data.get("primaryId") or data.get("oscaID") or ""),
            group_tag=str(data.get("groupTag") or data.get("barangay") or ""),
            first_checked_in_at=first,
            last_checked_in_at=max(first, last),
            recorded_by=str(data.get("recordedBy") or data.get("checkedInBy") or "Unknown"),
            recorded_by_id=data.get("recordedById") or data.get("checkedInById"),
            method=CheckInMethod.coerce(data.get("method")),
        )


@dataclass
class Event:
    id: str
    title: str = "Untitled"
    date: Optional[str] = None
    time: Optional[str] = None
    scheduled_at: Optional[dt.datetime] = None
    location: str = ""
    attendance_log: Dict[str, AttendanceRecord] = field(default_factory=dict)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "time": self.time,
            "scheduledAt": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "location": self.location,
            "attendanceCount": len(self.attendance_log),
        }
