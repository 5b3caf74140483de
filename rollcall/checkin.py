from __future__ import annotations
"""
CheckInService: the shared parse -> match -> record tail.

Both entry paths end here: the scan loop hands over a decoded payload, the
manual path hands over typed text. The service holds the current directory
snapshots as plain fields, replaced wholesale on every push, so each
check-in reads the latest registrants, events and selection.

Every outcome is reported exactly once on the SignalBus:
    success | not_found | camera_error | error
"""

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from .directory import DirectoryFeed, pick_default_event
from .errors import CheckInError, EventNotFound, InvalidPayload, NoEventSelected
from .identifiers import parse
from .matcher import match_registrant
from .models import Actor, AttendanceRecord, CheckInMethod, Event, Registrant, to_iso, utc_now
from .recorder import AttendanceRecorder

log = logging.getLogger("checkin")

SUCCESS = "success"
NOT_FOUND = "not_found"
CAMERA_ERROR = "camera_error"
ERROR = "error"


@dataclass
class Signal:
    kind: str
    message: str
    record: Optional[AttendanceRecord] = None
    payload: Optional[str] = None
    at: dt.datetime = field(default_factory=utc_now)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "payload": self.payload,
            "at": to_iso(self.at),
            "record": self.record.to_dict() if self.record else None,
        }


class SignalBus:
    """Operator-facing outputs. Listeners must not raise; failures are logged."""
    def __init__(self):
        self._listeners: List[Callable[[Signal], None]] = []
        self.last: Optional[Signal] = None

    def subscribe(self, listener: Callable[[Signal], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe

    def publish(self, signal: Signal) -> None:
        self.last = signal
        for listener in list(self._listeners):
            try:
                listener(signal)
            except Exception:
                log.exception("signal_listener_failed", extra={"kind": signal.kind})


class CheckInService:
    def __init__(self, recorder: AttendanceRecorder, signals: Optional[SignalBus] = None):
        self.recorder = recorder
        self.signals = signals or SignalBus()
        self.registrants: List[Registrant] = []
        self.events: Dict[str, Event] = {}
        self.selected_event_id: Optional[str] = None
        self.last_success: Optional[Dict[str, Any]] = None
        self._selection_listeners: List[Callable[[Optional[str]], None]] = []

    # ---------- directory snapshots ----------

    def update_registrants(self, registrants: Iterable[Registrant]) -> None:
        self.registrants = list(registrants)

    def update_events(self, events: Iterable[Event]) -> None:
        self.events = {e.id: e for e in events}
        self._set_selection(pick_default_event(self.events.values(), self.selected_event_id))

    def attach(self, registrant_feed: DirectoryFeed[Registrant],
               event_feed: DirectoryFeed[Event]) -> Callable[[], None]:
        """Subscribe to both feeds; returns a single unsubscribe."""
        unsubs = [registrant_feed.subscribe(self.update_registrants),
                  event_feed.subscribe(self.update_events)]

        def _detach() -> None:
            for u in unsubs:
                u()
        return _detach

    # ---------- selection ----------

    def on_selection_change(self, listener: Callable[[Optional[str]], None]) -> Callable[[], None]:
        self._selection_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._selection_listeners:
                self._selection_listeners.remove(listener)
        return _unsubscribe

    def select_event(self, event_id: Optional[str]) -> None:
        if event_id is not None and event_id not in self.events:
            raise EventNotFound(event_id)
        self._set_selection(event_id)

    def _set_selection(self, event_id: Optional[str]) -> None:
        if event_id == self.selected_event_id:
            return
        self.selected_event_id = event_id
        log.info("event_selected", extra={"event_id": event_id})
        for listener in list(self._selection_listeners):
            listener(event_id)

    @property
    def selected_event(self) -> Optional[Event]:
        return self.events.get(self.selected_event_id) if self.selected_event_id else None

    def attendance_for(self, event_id: str) -> List[AttendanceRecord]:
        """Newest check-ins first."""
        ev = self.events.get(event_id)
        if ev is None:
            raise EventNotFound(event_id)
        return sorted(ev.attendance_log.values(), key=lambda r: r.last_checked_in_at, reverse=True)

    # ---------- the tail ----------

    def report(self, kind: str, message: str, *, record: Optional[AttendanceRecord] = None,
               payload: Optional[str] = None) -> Signal:
        signal = Signal(kind=kind, message=message, record=record, payload=payload)
        self.signals.publish(signal)
        return signal

    async def check_in(self, raw: str, method: CheckInMethod, actor: Actor,
                       event_id: Optional[str] = None) -> Optional[AttendanceRecord]:
        """
        Parse, match and record one check-in.
        Returns the persisted record, or None when no registrant matches.
        Raises a CheckInError subclass for everything else; each outcome is
        reported on the signal bus before returning/raising.
        """
        try:
            chosen = event_id or self.selected_event_id
            if not chosen:
                raise NoEventSelected()

            parsed = parse(raw)
            if not parsed:
                raise InvalidPayload()

            registrant = match_registrant(parsed, self.registrants)
            if registrant is None:
                log.info("identifier_not_found", extra={"parsed_id": parsed, "method": method.value})
                self.report(NOT_FOUND, f"No member found with ID {parsed}.", payload=raw)
                return None

            event = self.events.get(chosen)
            if event is None:
                raise EventNotFound(chosen)

            record = await self.recorder.record(event, registrant, method, actor)
        except CheckInError as e:
            self.report(ERROR, str(e), payload=raw)
            raise

        self.last_success = {
            "displayName": record.display_name,
            "primaryId": record.primary_id,
            "time": to_iso(record.last_checked_in_at),
            "method": record.method.value,
        }
        local = record.last_checked_in_at.astimezone()
        self.report(SUCCESS, f"Checked in {record.display_name} at {local:%H:%M}",
                    record=record, payload=raw)
        return record
