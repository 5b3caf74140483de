"""
Export one event's attendance to CSV.

Usage:
  (.venv) python tools/export_attendance.py EVENT_ID [OUT.csv]
"""
import csv
import pathlib
import sqlite3
import sys

from rollcall.config_loader import get_db_path

if len(sys.argv) < 2:
    sys.exit("usage: export_attendance.py EVENT_ID [OUT.csv]")

EVENT_ID = sys.argv[1]
DB = get_db_path()

# allow optional output path: python export_attendance.py e1 C:\path\to\file.csv
if len(sys.argv) > 2:
    OUT = pathlib.Path(sys.argv[2]).expanduser().resolve()
else:
    OUT = (pathlib.Path.cwd() / f"attendance_{EVENT_ID}.csv").resolve()

print("DB :", DB)
print("OUT:", OUT)

COLUMNS = ["registrant_key", "primary_id", "display_name", "group_tag",
           "first_checked_in_at", "last_checked_in_at", "method", "recorded_by"]

conn = sqlite3.connect(DB)
rows = conn.execute(
    f"SELECT {', '.join(COLUMNS)} FROM attendance WHERE event_id=? ORDER BY first_checked_in_at",
    (EVENT_ID,),
).fetchall()
conn.close()

OUT.parent.mkdir(parents=True, exist_ok=True)

with open(OUT, "w", newline="", encoding="utf-8") as f:
    w = csv.writer(f)
    w.writerow(COLUMNS)
    w.writerows(rows)

print(f"Wrote {len(rows)} rows to:", OUT)
