from __future__ import annotations
"""
Manual entry: an operator types the registration number instead of scanning.

Same tail as the scanner (parse -> match -> record), tagged method=manual.
Nothing here touches the camera or the scan loop.
"""

from typing import Optional

from .checkin import CheckInService
from .errors import InvalidPayload
from .models import Actor, AttendanceRecord, CheckInMethod


async def submit_manual(service: CheckInService, raw_text: str, actor: Actor,
                        event_id: Optional[str] = None) -> Optional[AttendanceRecord]:
    """Returns the record, or None when the identifier matches nobody."""
    text = (raw_text or "").strip()
    if not text:
        raise InvalidPayload("Enter an ID to check in.")
    return await service.check_in(text, CheckInMethod.MANUAL, actor, event_id=event_id)
