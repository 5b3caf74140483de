from __future__ import annotations
"""
Audit trail for successful check-ins.

One entry per successful record() call. Emission is fire-and-forget from the
recorder's point of view: a failing sink is logged and never rolls back or
blocks the attendance write.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Mapping

import aiosqlite

from .models import Actor, AttendanceRecord, Event, to_iso

log = logging.getLogger("checkin.audit")

ACTION = "ATTEND"
AUDIT_MODULE = "Events"


def build_audit_entry(event: Event, record: AttendanceRecord, actor: Actor) -> Dict[str, Any]:
    return {
        "eventId": event.id,
        "eventTitle": event.title,
        "registrantKey": record.registrant_key,
        "displayName": record.display_name,
        "primaryId": record.primary_id,
        "timestamp": to_iso(record.last_checked_in_at),
        "method": record.method.value,
        "actor": {"id": actor.id, "label": actor.label, "role": actor.role},
    }


class AuditSink(ABC):
    @abstractmethod
    async def emit(self, entry: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingAuditSink(AuditSink):
    """Writes the entry as a structured log line (logger 'checkin.audit')."""
    async def emit(self, entry: Dict[str, Any]) -> None:
        log.info(ACTION, extra={"audit": entry})


class SqliteAuditSink(AuditSink):
    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)

    async def emit(self, entry: Dict[str, Any]) -> None:
        actor = entry.get("actor") or {}
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO audit_log(ts_utc, action, module, event_id, registrant_key, "
                "actor_id, actor_label, payload_json) VALUES(?,?,?,?,?,?,?,?)",
                (
                    entry.get("timestamp"),
                    ACTION,
                    AUDIT_MODULE,
                    entry.get("eventId"),
                    entry.get("registrantKey"),
                    actor.get("id"),
                    actor.get("label"),
                    json.dumps(entry),
                ),
            )
            await db.commit()


def build_audit_sink(audit_cfg: Mapping[str, Any], db_path: str | Path) -> AuditSink:
    sink = str(audit_cfg.get("sink", "sqlite")).lower()
    if sink == "sqlite":
        return SqliteAuditSink(db_path)
    if sink == "log":
        return LoggingAuditSink()
    raise ValueError(f"Unknown audit.sink: {sink}")
