from __future__ import annotations

"""
rollcall/db_schema.py
---------------------
Centralized, idempotent SQLite schema management for RollCall.

Design goals
- Directory tables (registrants, events) mirror what the external directory
  pushes; the engine only reads them.
- One attendance row per (event, registrant), enforced by the primary key so
  every write is an upsert.
- audit_log is an append-only trail of successful check-ins.
- Safe to call at every boot; recreate=True drops and rebuilds.
"""

from pathlib import Path
import sqlite3

# Bump when DDL changes in a way worth tracking (for future migrations).
LOCKED_USER_VERSION = 3

# ------------------------
# DDL: Directory snapshot tables
# ------------------------
REGISTRANTS_DDL = """
CREATE TABLE IF NOT EXISTS registrants (
    registrant_key     TEXT PRIMARY KEY,         -- opaque stable id from the directory
    primary_id         TEXT NOT NULL,            -- canonical registration number ('2025-001')
    secondary_ids_json TEXT NOT NULL DEFAULT '[]',
    first_name         TEXT,
    last_name          TEXT,
    display_name       TEXT,
    group_tag          TEXT,                     -- locality / barangay
    updated_at         INTEGER                   -- epoch seconds (updated by directory)
);
CREATE INDEX IF NOT EXISTS idx_registrants_primary ON registrants(primary_id);
"""

EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS events (
    event_id    TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    date        TEXT,                            -- 'YYYY-MM-DD'
    time        TEXT,                            -- free text, e.g. '9:30 AM'
    location    TEXT
);
"""

# ------------------------
# DDL: Attendance (authoritative check-ins)
# ------------------------
ATTENDANCE_DDL = """
CREATE TABLE IF NOT EXISTS attendance (
    event_id            TEXT NOT NULL,
    registrant_key      TEXT NOT NULL,
    display_name        TEXT NOT NULL,           -- snapshot at time of recording
    primary_id          TEXT NOT NULL,           -- snapshot at time of recording
    group_tag           TEXT,
    first_checked_in_at TEXT NOT NULL,           -- ISO8601 UTC, never overwritten
    last_checked_in_at  TEXT NOT NULL,           -- ISO8601 UTC, bumped on every re-scan
    recorded_by         TEXT NOT NULL,
    recorded_by_id      TEXT,
    method              TEXT NOT NULL,           -- 'manual' | 'scan'
    PRIMARY KEY (event_id, registrant_key)
);
CREATE INDEX IF NOT EXISTS idx_attendance_event_last ON attendance(event_id, last_checked_in_at);
"""

AUDIT_DDL = """
CREATE TABLE IF NOT EXISTS audit_log (
    audit_id       INTEGER PRIMARY KEY,
    ts_utc         TEXT NOT NULL,
    action         TEXT NOT NULL,                -- 'ATTEND'
    module         TEXT NOT NULL,                -- 'Events'
    event_id       TEXT,
    registrant_key TEXT,
    actor_id       TEXT,
    actor_label    TEXT,
    payload_json   TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_audit_event ON audit_log(event_id, ts_utc);
"""


def _exec_script(conn: sqlite3.Connection, ddl: str) -> None:
    conn.executescript(ddl)


def _drop_everything(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    for table in ("audit_log", "attendance", "events", "registrants"):
        cur.execute(f"DROP TABLE IF EXISTS {table}")
    conn.commit()


def ensure_schema(db_path: str | Path, recreate: bool = False) -> None:
    """
    Create the database (and parent folder) if needed, and enforce our schema.
    Safe to call at every boot.
      - recreate=True : destructive drop & rebuild (fresh start).
    """
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(p)
    try:
        if recreate:
            _drop_everything(conn)

        _exec_script(conn, REGISTRANTS_DDL)
        _exec_script(conn, EVENTS_DDL)
        _exec_script(conn, ATTENDANCE_DDL)
        _exec_script(conn, AUDIT_DDL)

        # Record user_version for lightweight migrations.
        conn.execute(f"PRAGMA user_version = {LOCKED_USER_VERSION}")
        conn.commit()
    finally:
        conn.close()
