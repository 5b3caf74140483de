from __future__ import annotations
"""
ScanLoopController: camera -> decode -> check-in, one decode at a time.

States
------
    idle ──start──▶ starting ──acquired──▶ streaming ◀──cooldown──▶ paused
      ▲                │ acquire failed                 │
      └────────────────┴──────────── stop ──────────────┘

* A successful decode pauses the loop for `cooldown_s` (clock-based), so a
  code that is still in front of the lens is not recorded again on the next
  tick.
* Independently of the pause, at most one check-in tail (parse -> match ->
  record) runs for the loop's own decodes. While it is in flight, the same
  payload is ignored and a different payload joins a FIFO queue (once; a
  payload already queued is not queued again). The next queued payload
  starts when the tail settles, success or failure.
* stop() cancels the frame pull, releases the camera exactly once (after
  any read still running in a worker has returned) and clears every flag. A tail already in flight is allowed to finish; its
  settlement is ignored by the stopped loop (generation counter).

step(frame) is the unit of work for one tick and reads the service's
current snapshots each time; the run loop only feeds it frames and sleeps
`tick_s` in between.
"""

import asyncio
import functools
import logging
import time
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set

from .camera import FACING_ENVIRONMENT, Frame, FrameSource, StreamHandle
from .checkin import CAMERA_ERROR, ERROR, CheckInService
from .decoder import QrDecoder
from .errors import CameraUnavailable, CheckInError
from .models import Actor, CheckInMethod

log = logging.getLogger("scanner.loop")

DEFAULT_COOLDOWN_S = 1.2


class ScanState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    PAUSED = "paused"


class ScanLoopController:
    def __init__(
        self,
        frame_source: FrameSource,
        decoder: QrDecoder,
        checkin: CheckInService,
        *,
        actor: Actor,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        tick_s: float = 0.0,
        preferred_facing: str = FACING_ENVIRONMENT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.frame_source = frame_source
        self.decoder = decoder
        self.checkin = checkin
        self.actor = actor
        self.cooldown_s = float(cooldown_s)
        self.tick_s = float(tick_s)
        self.preferred_facing = preferred_facing
        self._clock = clock
        self._sleep = sleep

        self.state = ScanState.IDLE
        self._generation = 0
        self._run_task: Optional[asyncio.Task] = None
        self._handle: Optional[StreamHandle] = None
        self._paused_until = 0.0

        # re-entrancy guard
        self._in_flight: Optional[str] = None
        self._pending: Deque[str] = deque()
        self._tails: Set[asyncio.Task] = set()
        self._releases: Set[asyncio.Task] = set()
        self._stop_task: Optional[asyncio.Task] = None

        self.counters: Dict[str, int] = {
            "frames": 0,
            "not_ready": 0,
            "cooldown_skipped": 0,
            "decoded": 0,
            "duplicates": 0,
            "tails": 0,
            "camera_errors": 0,
        }

        self._detach_selection = checkin.on_selection_change(self._on_selection)

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self.state is not ScanState.IDLE

    def start(self) -> bool:
        """Begin acquiring the camera. No-op (False) unless idle."""
        if self.state is not ScanState.IDLE:
            log.debug("scan_start_ignored", extra={"state": self.state.value})
            return False
        self._generation += 1
        self.state = ScanState.STARTING
        loop = asyncio.get_running_loop()
        self._run_task = loop.create_task(self._run(self._generation), name="scan_loop")
        self._run_task.add_done_callback(functools.partial(self._run_done, self._generation))
        log.info("scan_starting", extra={"facing": self.preferred_facing, "cooldown_s": self.cooldown_s})
        return True

    async def stop(self) -> None:
        was = self.state
        self._generation += 1

        task, self._run_task = self._run_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self._release_camera()
        self._paused_until = 0.0
        self._in_flight = None
        self._pending.clear()
        self.state = ScanState.IDLE
        if was is not ScanState.IDLE:
            log.info("scan_stopped", extra={"from_state": was.value})

    async def drain(self) -> None:
        """Wait for check-in tails that are still in flight (including detached ones)
        and for late camera releases."""
        while self._tails or self._releases:
            await asyncio.gather(*list(self._tails | self._releases), return_exceptions=True)

    async def aclose(self) -> None:
        """Stop, wait for in-flight work and stop following the service's event selection."""
        await self.stop()
        await self.drain()
        self._detach_selection()

    async def __aenter__(self) -> "ScanLoopController":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    def _on_selection(self, event_id: Optional[str]) -> None:
        if event_id is None and self.running:
            log.info("scan_stop_event_cleared")
            self._stop_task = asyncio.get_running_loop().create_task(self.stop(), name="scan_stop")

    # ------------------------------------------------------------
    # Camera
    # ------------------------------------------------------------

    async def _run(self, gen: int) -> None:
        acquiring = asyncio.ensure_future(self.frame_source.acquire(self.preferred_facing))
        try:
            handle = await asyncio.shield(acquiring)
        except asyncio.CancelledError:
            # stopped mid-acquisition: a handle that arrives later is released on arrival
            acquiring.add_done_callback(self._release_orphan)
            raise
        except CameraUnavailable as e:
            self._camera_failed(gen, e)
            return

        self._handle = handle
        self.state = ScanState.STREAMING
        log.info("scan_streaming", extra={"source": handle.source, "width": handle.width, "height": handle.height})

        frames = self.frame_source.frames(handle)
        try:
            async for frame in frames:
                self.step(frame)
                await self._sleep(self.tick_s)
        except CameraUnavailable as e:
            self._camera_failed(gen, e)
        finally:
            await frames.aclose()
            await self._release_camera()

        if gen == self._generation and self.state is not ScanState.IDLE:
            log.info("scan_stream_ended")
            self.state = ScanState.IDLE
            self._pending.clear()

    def _run_done(self, gen: int, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # _run releases the camera on its way out; the operator still needs the signal
            log.error("scan_loop_crashed", exc_info=exc)
            self._camera_failed(gen, exc)

    def _camera_failed(self, gen: int, err: Exception) -> None:
        self.counters["camera_errors"] += 1
        log.warning("camera_unavailable", extra={"err": str(err)})
        if gen == self._generation:
            self.state = ScanState.IDLE
        self.checkin.report(CAMERA_ERROR, f"Unable to access camera. {err}")

    async def _release_camera(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            await self.frame_source.release(handle)

    def _release_orphan(self, fut: asyncio.Future) -> None:
        if fut.cancelled() or fut.exception() is not None:
            return
        log.info("camera_released_after_stop")
        task = asyncio.get_running_loop().create_task(
            self.frame_source.release(fut.result()), name="camera_release"
        )
        self._releases.add(task)
        task.add_done_callback(self._releases.discard)

    # ------------------------------------------------------------
    # One tick
    # ------------------------------------------------------------

    def step(self, frame: Frame) -> Optional[str]:
        """
        Process one frame. Returns the decoded payload (if any was decoded this
        tick), whether or not it started a check-in.
        """
        if self.state not in (ScanState.STREAMING, ScanState.PAUSED):
            return None
        self.counters["frames"] += 1

        if self.state is ScanState.PAUSED:
            if self._clock() < self._paused_until:
                self.counters["cooldown_skipped"] += 1
                return None
            self.state = ScanState.STREAMING

        if not frame.ready:
            self.counters["not_ready"] += 1
            return None

        payload = self.decoder.decode(frame)
        if not payload:
            return None
        self.counters["decoded"] += 1

        if self._in_flight is not None:
            if payload == self._in_flight or payload in self._pending:
                self.counters["duplicates"] += 1
            else:
                self._pending.append(payload)
                log.debug("scan_payload_queued", extra={"payload": payload, "queued": len(self._pending)})
            return payload

        self._begin(payload)
        return payload

    def _begin(self, payload: str) -> None:
        self.state = ScanState.PAUSED
        self._paused_until = self._clock() + self.cooldown_s
        self._in_flight = payload
        self.counters["tails"] += 1
        task = asyncio.get_running_loop().create_task(
            self._process(payload, self._generation), name="scan_checkin"
        )
        self._tails.add(task)
        task.add_done_callback(self._tails.discard)

    async def _process(self, payload: str, gen: int) -> None:
        try:
            await self.checkin.check_in(payload, CheckInMethod.SCAN, self.actor)
        except CheckInError as e:
            # already reported on the signal bus by the service
            log.info("scan_checkin_failed", extra={"kind": type(e).__name__, "err": str(e)})
        except Exception as e:
            log.exception("scan_checkin_crashed", extra={"payload": payload})
            self.checkin.report(ERROR, f"Check-in failed: {e}", payload=payload)
        finally:
            self._settle(gen)

    def _settle(self, gen: int) -> None:
        if gen != self._generation:
            return
        self._in_flight = None
        if self.state not in (ScanState.STREAMING, ScanState.PAUSED):
            self._pending.clear()
        elif self._pending:
            self._begin(self._pending.popleft())

    # ------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        remaining = max(0.0, self._paused_until - self._clock()) if self.state is ScanState.PAUSED else 0.0
        return {
            "state": self.state.value,
            "eventId": self.checkin.selected_event_id,
            "inFlight": self._in_flight,
            "pending": list(self._pending),
            "cooldownRemaining": round(remaining, 3),
            "counters": dict(self.counters),
        }
