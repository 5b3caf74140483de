from __future__ import annotations
"""
Identifier helpers: canonical comparison keys and payload parsing.

Registration numbers show up inside URLs, vendor wrappers and hand-typed
text with inconsistent dashes and spacing. `parse` recovers the canonical
shape, `normalize` produces the key used for every comparison.
"""

import re
from typing import Optional

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_DASHED_ID = re.compile(r"\d{4}-\d{3,}", re.ASCII)
_DIGIT_RUN = re.compile(r"\d{7,}", re.ASCII)


def normalize(raw: Optional[str]) -> str:
    """Strip everything but ASCII letters/digits and lowercase. Comparison key only."""
    if raw is None:
        return ""
    return _NON_ALNUM.sub("", str(raw)).lower()


def parse(payload: Optional[str]) -> str:
    """
    Extract a registrant identifier from a decoded payload. First match wins:

      1) "DDDD-DDD..." anywhere in the payload -> returned verbatim
      2) a run of 7+ digits -> exactly 7 becomes "DDDD-DDD", longer is kept
      3) otherwise the trimmed payload itself
    """
    if payload is None:
        return ""
    trimmed = str(payload).strip()

    m = _DASHED_ID.search(trimmed)
    if m:
        return m.group(0)

    m = _DIGIT_RUN.search(trimmed)
    if m:
        digits = m.group(0)
        if len(digits) == 7:
            return f"{digits[:4]}-{digits[4:]}"
        return digits

    return trimmed
