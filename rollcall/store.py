from __future__ import annotations
"""
Attendance persistence backends.

Every backend implements the same keyed upsert, put((event_id, registrant_key), record),
with one extra rule applied at the store itself: when a row already exists,
first_checked_in_at is kept. Two writers racing on the very first check-in
for a pair therefore cannot overwrite each other's arrival time.

Backends:
  - MemoryAttendanceStore : dict-backed (tests, demos)
  - SqliteAttendanceStore : aiosqlite, INSERT .. ON CONFLICT DO UPDATE
  - HttpAttendanceStore   : httpx client for the server's PUT/GET attendance API
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

import aiosqlite
import httpx

from .models import AttendanceRecord, CheckInMethod, from_iso, to_iso

log = logging.getLogger("checkin.store")


def record_from_row(row: Mapping[str, Any]) -> AttendanceRecord:
    """Map an `attendance` table row (sqlite3.Row / aiosqlite.Row / dict) to a record."""
    first = from_iso(row["first_checked_in_at"])
    last = from_iso(row["last_checked_in_at"]) or first
    return AttendanceRecord(
        event_id=str(row["event_id"]),
        registrant_key=str(row["registrant_key"]),
        display_name=row["display_name"],
        primary_id=row["primary_id"],
        group_tag=row["group_tag"] or "",
        first_checked_in_at=first,
        last_checked_in_at=last,
        recorded_by=row["recorded_by"],
        recorded_by_id=row["recorded_by_id"],
        method=CheckInMethod.coerce(row["method"]),
    )


class AttendanceStore(ABC):
    """Keyed attendance persistence. No multi-key transactions are assumed."""

    @abstractmethod
    async def get(self, event_id: str, registrant_key: str) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    @abstractmethod
    async def upsert(self, record: AttendanceRecord) -> AttendanceRecord:
        """Create or update in place; return the record as persisted."""
        raise NotImplementedError

    async def list_event(self, event_id: str) -> List[AttendanceRecord]:
        return []

    async def aclose(self) -> None:
        return


# ----------------------------- Memory -----------------------------

class MemoryAttendanceStore(AttendanceStore):
    def __init__(self):
        self._rows: Dict[Tuple[str, str], AttendanceRecord] = {}
        self.writes = 0

    async def get(self, event_id: str, registrant_key: str) -> Optional[AttendanceRecord]:
        return self._rows.get((event_id, registrant_key))

    async def upsert(self, record: AttendanceRecord) -> AttendanceRecord:
        key = (record.event_id, record.registrant_key)
        existing = self._rows.get(key)
        if existing is not None:
            first = existing.first_checked_in_at
            record = AttendanceRecord(**{**record.__dict__,
                                         "first_checked_in_at": first,
                                         "last_checked_in_at": max(first, record.last_checked_in_at)})
        self._rows[key] = record
        self.writes += 1
        return record

    async def list_event(self, event_id: str) -> List[AttendanceRecord]:
        return [r for (eid, _), r in self._rows.items() if eid == event_id]


# ----------------------------- SQLite -----------------------------

_UPSERT_SQL = """
INSERT INTO attendance (
    event_id, registrant_key, display_name, primary_id, group_tag,
    first_checked_in_at, last_checked_in_at, recorded_by, recorded_by_id, method
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(event_id, registrant_key) DO UPDATE SET
    display_name       = excluded.display_name,
    primary_id         = excluded.primary_id,
    group_tag          = excluded.group_tag,
    last_checked_in_at = MAX(excluded.last_checked_in_at, attendance.first_checked_in_at),
    recorded_by        = excluded.recorded_by,
    recorded_by_id     = excluded.recorded_by_id,
    method             = excluded.method
"""

_SELECT_SQL = "SELECT * FROM attendance WHERE event_id=? AND registrant_key=?"


class SqliteAttendanceStore(AttendanceStore):
    """
    Authoritative attendance table in the RollCall SQLite database.
    One short-lived connection per call; ensure_schema() must have run.
    """
    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)

    async def get(self, event_id: str, registrant_key: str) -> Optional[AttendanceRecord]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cur = await db.execute(_SELECT_SQL, (event_id, registrant_key))
            row = await cur.fetchone()
            await cur.close()
        return record_from_row(row) if row else None

    async def upsert(self, record: AttendanceRecord) -> AttendanceRecord:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute(_UPSERT_SQL, (
                record.event_id,
                record.registrant_key,
                record.display_name,
                record.primary_id,
                record.group_tag,
                to_iso(record.first_checked_in_at),
                to_iso(record.last_checked_in_at),
                record.recorded_by,
                record.recorded_by_id,
                record.method.value,
            ))
            await db.commit()
            cur = await db.execute(_SELECT_SQL, (record.event_id, record.registrant_key))
            row = await cur.fetchone()
            await cur.close()
        if row is None:
            raise RuntimeError(f"attendance row vanished after upsert: {record.event_id}/{record.registrant_key}")
        return record_from_row(row)

    async def list_event(self, event_id: str) -> List[AttendanceRecord]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cur = await db.execute(
                "SELECT * FROM attendance WHERE event_id=? ORDER BY last_checked_in_at DESC",
                (event_id,),
            )
            rows = await cur.fetchall()
            await cur.close()
        return [record_from_row(r) for r in rows]


# ----------------------------- HTTP -----------------------------

class HttpAttendanceStore(AttendanceStore):
    """
    Talks to a RollCall server:
        GET /events/{event_id}/attendance/{registrant_key}   -> record | 404
        PUT /events/{event_id}/attendance/{registrant_key}   -> persisted record
    No retries: a failed write is surfaced to the operator.
    """
    def __init__(self, base_url: str, *, timeout_ms: int = 3000,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout_ms / 1000.0
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                             transport=self._transport)
        return self._client

    @staticmethod
    def _path(event_id: str, registrant_key: str) -> str:
        return f"/events/{quote(event_id, safe='')}/attendance/{quote(registrant_key, safe='')}"

    async def get(self, event_id: str, registrant_key: str) -> Optional[AttendanceRecord]:
        resp = await self._http().get(self._path(event_id, registrant_key))
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return AttendanceRecord.from_dict(resp.json(), event_id=event_id, registrant_key=registrant_key)

    async def upsert(self, record: AttendanceRecord) -> AttendanceRecord:
        resp = await self._http().put(self._path(record.event_id, record.registrant_key),
                                      json=record.to_dict())
        resp.raise_for_status()
        return AttendanceRecord.from_dict(resp.json(), event_id=record.event_id,
                                          registrant_key=record.registrant_key)

    async def list_event(self, event_id: str) -> List[AttendanceRecord]:
        resp = await self._http().get(f"/events/{quote(event_id, safe='')}/attendance")
        resp.raise_for_status()
        return [AttendanceRecord.from_dict(item, event_id=event_id) for item in resp.json().get("attendance", [])]

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def build_store(persistence_cfg: Mapping[str, Any], db_path: str | Path) -> AttendanceStore:
    """Pick a backend from app.engine.persistence.mode."""
    mode = str(persistence_cfg.get("mode", "sqlite")).lower()
    if mode == "sqlite":
        return SqliteAttendanceStore(db_path)
    if mode == "memory":
        return MemoryAttendanceStore()
    if mode == "http":
        http_cfg = persistence_cfg.get("http", {}) or {}
        return HttpAttendanceStore(
            str(http_cfg.get("base_url", "http://127.0.0.1:8000")),
            timeout_ms=int(http_cfg.get("timeout_ms", 3000)),
        )
    raise ValueError(f"Unknown app.engine.persistence.mode: {mode}")
