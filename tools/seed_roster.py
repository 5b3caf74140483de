"""
Seed a few registrants and events into the RollCall SQLite DB.

Fresh installs start with an empty directory, so the scanner has nobody to
match. Safe to re-run: INSERT OR REPLACE keeps keys stable.

Usage:
  (.venv) python tools/seed_roster.py
"""
from __future__ import annotations
import datetime as dt
import json
import sqlite3
import time

from rollcall.config_loader import get_db_path
from rollcall.db_schema import ensure_schema

DB = get_db_path()
ensure_schema(DB)

now = int(time.time())
today = dt.date.today()
registrants = [
    # registrant_key, primary_id, secondary_ids_json, first, last, display, group_tag, updated_at
    ("m1", "2025-001", json.dumps(["OSCA-0001"]), "Juan", "Dela Cruz", None, "San Isidro", now),
    ("m2", "2025-002", json.dumps([]), "Maria", "Santos", None, "Poblacion", now),
    ("m3", "2025-003", json.dumps(["77-1234"]), None, None, "Lola Nena", "San Roque", now),
]
events = [
    # event_id, title, date, time, location
    ("e1", "Monthly Assembly", today.isoformat(), "9:00 AM", "Covered Court"),
    ("e2", "Health Caravan", (today + dt.timedelta(days=7)).isoformat(), "1:30 PM", "Barangay Hall"),
]

with sqlite3.connect(DB) as conn:
    cur = conn.cursor()
    cur.executemany(
        """INSERT OR REPLACE INTO registrants
           (registrant_key, primary_id, secondary_ids_json, first_name, last_name,
            display_name, group_tag, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        registrants,
    )
    cur.executemany(
        "INSERT OR REPLACE INTO events (event_id, title, date, time, location) VALUES (?, ?, ?, ?, ?)",
        events,
    )
    conn.commit()
print(f"Seeded {len(registrants)} registrants and {len(events)} events into {DB}")
