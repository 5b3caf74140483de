import asyncio
import datetime as dt
from typing import List, Optional

import numpy as np
import pytest

from rollcall.camera import Frame, FrameSource, StreamHandle
from rollcall.errors import CameraUnavailable
from rollcall.models import Actor, Event, Registrant

ACTOR = Actor(id="op-1", label="Front Desk", role="staff")

T0 = dt.datetime(2025, 3, 1, 9, 0, 0, tzinfo=dt.timezone.utc)


class SteppingClock:
    """UTC clock that moves forward by `step` on every read."""
    def __init__(self, start: dt.datetime = T0, step: dt.timedelta = dt.timedelta(minutes=5)):
        self.now = start
        self.step = step

    def __call__(self) -> dt.datetime:
        current = self.now
        self.now = self.now + self.step
        return current


class FakeMonotonic:
    def __init__(self, t: float = 100.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, s: float) -> None:
        self.t += s


class FakeDecoder:
    """Returns whatever payload is stamped on the frame (frame.pixels is unused)."""
    def __init__(self):
        self.payload: Optional[str] = None
        self.calls = 0

    def decode(self, frame: Frame) -> Optional[str]:
        self.calls += 1
        if not frame.ready:
            return None
        return self.payload


class StubFrameSource(FrameSource):
    """
    Test camera. acquire() can be held open (gate) or made to fail; frames()
    waits until the handle is released, so tests drive step() themselves.
    """
    def __init__(self, *, fail: bool = False, gate=None):
        self.fail = fail
        self.gate = gate
        self.acquired: List[StreamHandle] = []
        self.released: List[StreamHandle] = []

    async def acquire(self, preferred_facing: str = "environment") -> StreamHandle:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise CameraUnavailable("permission denied")
        h = StreamHandle(source="stub", facing=preferred_facing)
        self.acquired.append(h)
        return h

    async def frames(self, handle: StreamHandle):
        while not handle.released:
            await asyncio.sleep(3600)
            yield Frame(pixels=None)

    async def release(self, handle: StreamHandle) -> None:
        self.released.append(handle)
        handle.released = True


def ready_frame() -> Frame:
    return Frame(pixels=np.full((8, 8), 255, dtype=np.uint8))


@pytest.fixture()
def roster() -> List[Registrant]:
    return [
        Registrant(key="m1", primary_id="2025-001", display_name="Juan Dela Cruz"),
        Registrant(key="m2", primary_id="2025-002", secondary_ids=("OSCA-77",), display_name="Maria Santos"),
    ]


@pytest.fixture()
def event() -> Event:
    return Event(id="e1", title="Monthly Assembly")
