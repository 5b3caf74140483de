"""
Render QR badge images for every registrant (primary id as payload).

The PNGs double as input for the `replay` scanner source:
  scanner.replay.images: [badges/m1.png, ...]

Usage:
  (.venv) python tools/make_badges.py [OUT_DIR]
"""
import pathlib
import sys

import cv2

from rollcall.config_loader import get_db_path
from rollcall.directory import load_directory

OUT = pathlib.Path(sys.argv[1] if len(sys.argv) > 1 else "badges").expanduser().resolve()
OUT.mkdir(parents=True, exist_ok=True)

registrants, _ = load_directory(get_db_path())
encoder = cv2.QRCodeEncoder.create()

for r in registrants:
    qr = encoder.encode(r.primary_id)
    img = cv2.resize(qr, (qr.shape[1] * 8, qr.shape[0] * 8), interpolation=cv2.INTER_NEAREST)
    img = cv2.copyMakeBorder(img, 32, 32, 32, 32, cv2.BORDER_CONSTANT, value=255)
    path = OUT / f"{r.key}.png"
    cv2.imwrite(str(path), img)
    print(f"{r.key:<8} {r.primary_id:<12} -> {path}")

print(f"Wrote {len(registrants)} badges to:", OUT)
