from __future__ import annotations
"""
AttendanceRecorder: idempotent create-or-update of one (event, registrant) row.

record() may be called any number of times for the same pair;
first_checked_in_at is fixed by the first call and never moves again,
last_checked_in_at follows the latest call.
"""

import asyncio
import datetime as dt
import logging
from typing import Callable, Optional, Set

from .audit import AuditSink, build_audit_entry
from .errors import AuditSinkFailure, PersistenceFailure
from .models import Actor, AttendanceRecord, CheckInMethod, Event, Registrant, utc_now
from .store import AttendanceStore

log = logging.getLogger("checkin.recorder")


class AttendanceRecorder:
    def __init__(self, store: AttendanceStore, audit: Optional[AuditSink] = None,
                 *, clock: Callable[[], dt.datetime] = utc_now):
        self.store = store
        self.audit = audit
        self._clock = clock
        self._audit_tasks: Set[asyncio.Task] = set()

    async def record(self, event: Event, registrant: Registrant, method: CheckInMethod,
                     actor: Actor) -> AttendanceRecord:
        now = self._clock()
        try:
            existing = await self.store.get(event.id, registrant.key)
        except Exception as e:
            raise PersistenceFailure(f"Unable to read attendance for {registrant.display_name}: {e}") from e

        first = existing.first_checked_in_at if existing else now
        record = AttendanceRecord(
            event_id=event.id,
            registrant_key=registrant.key,
            display_name=registrant.display_name,
            primary_id=registrant.primary_id,
            group_tag=registrant.group_tag,
            first_checked_in_at=first,
            last_checked_in_at=max(now, first),
            recorded_by=actor.label,
            recorded_by_id=actor.id,
            method=method,
        )

        try:
            persisted = await self.store.upsert(record)
        except Exception as e:
            log.warning("attendance_write_failed",
                        extra={"event_id": event.id, "registrant_key": registrant.key, "err": str(e)})
            raise PersistenceFailure(f"Unable to save attendance for {registrant.display_name}: {e}") from e

        event.attendance_log[registrant.key] = persisted
        log.info("attendance_recorded", extra={
            "event_id": event.id,
            "registrant_key": registrant.key,
            "method": method.value,
            "first_visit": existing is None,
        })

        self._emit_audit(event, persisted, actor)
        return persisted

    # ---------- audit (fire-and-forget) ----------

    def _emit_audit(self, event: Event, record: AttendanceRecord, actor: Actor) -> None:
        if self.audit is None:
            return
        entry = build_audit_entry(event, record, actor)
        task = asyncio.get_running_loop().create_task(self._send_audit(entry), name="audit_emit")
        self._audit_tasks.add(task)
        task.add_done_callback(self._audit_done)

    async def _send_audit(self, entry: dict) -> None:
        try:
            await self.audit.emit(entry)
        except Exception as e:
            raise AuditSinkFailure(f"audit emit failed for event {entry.get('eventId')}: {e}") from e

    def _audit_done(self, task: asyncio.Task) -> None:
        self._audit_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning("audit_emit_failed", extra={"err": str(exc)})

    async def drain(self) -> None:
        """Wait for in-flight audit emissions (shutdown, tests)."""
        while self._audit_tasks:
            await asyncio.gather(*list(self._audit_tasks), return_exceptions=True)
