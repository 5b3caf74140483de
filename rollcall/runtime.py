from __future__ import annotations
"""
Wiring: build every collaborator once from config and hand them around.

Both the HTTP server and the headless scanner CLI run on a Runtime, so they
share one construction path (store, audit sink, recorder, check-in service,
directory feeds, scan loop, OSC feedback).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Tuple

from .audit import AuditSink, build_audit_sink
from .camera import CameraConfig, FrameSource, build_frame_source
from .checkin import CheckInService
from .config_loader import (
    get_audit_cfg,
    get_camera_cfg,
    get_db_path,
    get_feedback_cfg,
    get_operator,
    get_persistence_cfg,
    get_scanner_cfg,
)
from .db_schema import ensure_schema
from .decoder import QrDecoder
from .directory import DirectoryFeed, load_directory
from .feedback import OscFeedbackOut
from .models import Actor, Event, Registrant
from .recorder import AttendanceRecorder
from .scan_loop import DEFAULT_COOLDOWN_S, ScanLoopController
from .store import AttendanceStore, build_store

log = logging.getLogger("rollcall")


@dataclass
class Runtime:
    db_path: Path
    actor: Actor
    store: AttendanceStore
    audit: AuditSink
    recorder: AttendanceRecorder
    service: CheckInService
    registrant_feed: DirectoryFeed[Registrant]
    event_feed: DirectoryFeed[Event]
    controller: ScanLoopController
    feedback: OscFeedbackOut
    _detach: Callable[[], None] = field(default=lambda: None, repr=False)

    def reload_directory(self) -> Tuple[int, int]:
        """Re-read registrants/events from SQLite and push both snapshots."""
        registrants, events = load_directory(self.db_path)
        self.registrant_feed.publish(registrants)
        self.event_feed.publish(events)
        log.info("directory_loaded", extra={"registrants": len(registrants), "events": len(events)})
        return len(registrants), len(events)

    async def aclose(self) -> None:
        await self.controller.aclose()
        await self.recorder.drain()
        self.feedback.stop()
        self._detach()
        await self.store.aclose()


def build_runtime(db_path: Optional[Path] = None, *,
                  frame_source: Optional[FrameSource] = None,
                  store: Optional[AttendanceStore] = None) -> Runtime:
    persistence = get_persistence_cfg()
    db_path = Path(db_path or get_db_path())
    ensure_schema(db_path, recreate=bool(persistence.get("recreate_on_boot", False)))

    store = store or build_store(persistence, db_path)
    audit = build_audit_sink(get_audit_cfg(), db_path)
    recorder = AttendanceRecorder(store, audit)
    service = CheckInService(recorder)

    registrant_feed: DirectoryFeed[Registrant] = DirectoryFeed("registrants")
    event_feed: DirectoryFeed[Event] = DirectoryFeed("events")
    detach = service.attach(registrant_feed, event_feed)

    op = get_operator()
    actor = Actor(id=op["id"], label=op["label"], role=op["role"])

    sc = get_scanner_cfg()
    controller = ScanLoopController(
        frame_source or build_frame_source(sc),
        QrDecoder(),
        service,
        actor=actor,
        cooldown_s=float(sc.get("cooldown_s", DEFAULT_COOLDOWN_S)),
        tick_s=float(sc.get("tick_s", 0.0)),
        preferred_facing=CameraConfig.from_cfg(get_camera_cfg()).facing,
    )

    feedback = OscFeedbackOut(get_feedback_cfg())
    feedback.start(service.signals)

    rt = Runtime(
        db_path=db_path,
        actor=actor,
        store=store,
        audit=audit,
        recorder=recorder,
        service=service,
        registrant_feed=registrant_feed,
        event_feed=event_feed,
        controller=controller,
        feedback=feedback,
        _detach=detach,
    )
    rt.reload_directory()
    return rt
