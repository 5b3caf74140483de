# rollcall/feedback.py
# -----------------------------------------------------------------------------
# Check-in signals → OSC OUT
# Sends a short OSC message (UDP unicast) for each operator-facing signal so a
# sound board / light tower at the desk can beep or blink. Uses python-osc's
# SimpleUDPClient (sync, tiny, fire-and-forget).
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from typing import Callable, Dict, Mapping, Optional

from pythonosc.udp_client import SimpleUDPClient

from .checkin import CAMERA_ERROR, NOT_FOUND, SUCCESS, Signal, SignalBus

log = logging.getLogger("checkin.feedback")

DEFAULT_ADDRESSES = {
    SUCCESS: "/rollcall/success",
    NOT_FOUND: "/rollcall/not_found",
    CAMERA_ERROR: "/rollcall/camera_error",
}


class OscFeedbackOut:
    def __init__(self, cfg: Optional[Mapping] = None):
        # cfg structure:
        # feedback.osc_out: { enabled, host, port, addresses{ success, not_found, camera_error } }
        cfg = cfg or {}
        self.enabled = bool(cfg.get("enabled"))
        self.host = cfg.get("host", "127.0.0.1")
        self.port = int(cfg.get("port", 9000))

        addrs = cfg.get("addresses") or {}
        self.addresses: Dict[str, str] = {k: str(addrs.get(k, v)) for k, v in DEFAULT_ADDRESSES.items()}

        self._client: Optional[SimpleUDPClient] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.sent = 0

    def start(self, bus: SignalBus) -> None:
        if not self.enabled:
            return
        if self._client is None:
            self._client = SimpleUDPClient(self.host, self.port)
        if self._unsubscribe is None:
            self._unsubscribe = bus.subscribe(self.on_signal)
        log.info("osc_feedback_enabled", extra={"host": self.host, "port": self.port})

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._client = None

    def on_signal(self, signal: Signal) -> None:
        path = self.addresses.get(signal.kind)
        if path:
            self._send(path, 1.0)

    def _send(self, path: str, value: float) -> None:
        if not self.enabled or not self._client:
            return
        try:
            self._client.send_message(path, float(value))
            self.sent += 1
        except OSError as e:
            # desk hardware offline; check-ins carry on
            log.debug("osc_send_failed", extra={"path": path, "err": str(e)})
