from __future__ import annotations
"""
Frame sources.

A FrameSource hands out an exclusive StreamHandle on acquire(), a lazy,
endless stream of Frames for that handle, and an awaitable release() that
gives the device back once any read still running in a worker has returned.
acquire -> release -> acquire is a supported cycle (scanner toggled off and
on again).

Frames whose pixels are missing or empty are "not ready": the video buffer
has not been primed yet. The scan loop treats them as no-op ticks.
"""

import asyncio
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from .errors import CameraUnavailable

log = logging.getLogger("scanner.camera")

FACING_ENVIRONMENT = "environment"
FACING_USER = "user"


@dataclass
class Frame:
    pixels: Optional[np.ndarray]
    seq: int = 0
    captured_at: float = field(default_factory=time.monotonic)

    @property
    def ready(self) -> bool:
        return self.pixels is not None and getattr(self.pixels, "size", 0) > 0


@dataclass
class StreamHandle:
    source: str
    facing: str
    width: int = 0
    height: int = 0
    capture: Any = None
    released: bool = False
    # held by the worker thread for the whole of a read and of the final release
    io_lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass
class CameraConfig:
    facing: str = FACING_ENVIRONMENT
    width: int = 1280
    height: int = 720
    devices: Dict[str, int] = field(default_factory=lambda: {FACING_ENVIRONMENT: 0, FACING_USER: 1})

    @classmethod
    def from_cfg(cls, cam: Mapping[str, Any]) -> "CameraConfig":
        cam = cam or {}
        devices = {str(k): int(v) for k, v in (cam.get("devices") or {}).items()}
        return cls(
            facing=str(cam.get("facing", FACING_ENVIRONMENT)).lower(),
            width=int(cam.get("width", 1280)),
            height=int(cam.get("height", 720)),
            devices=devices or {FACING_ENVIRONMENT: 0, FACING_USER: 1},
        )


class FrameSource(ABC):
    @abstractmethod
    async def acquire(self, preferred_facing: str = FACING_ENVIRONMENT) -> StreamHandle:
        """Open the device. Raises CameraUnavailable."""
        raise NotImplementedError

    @abstractmethod
    def frames(self, handle: StreamHandle) -> AsyncIterator[Frame]:
        raise NotImplementedError

    @abstractmethod
    async def release(self, handle: StreamHandle) -> None:
        """Give the device back. Safe to call on an already released handle."""
        raise NotImplementedError


# ----------------------------- OpenCV camera -----------------------------

class OpenCvFrameSource(FrameSource):
    """
    cv2.VideoCapture-backed camera. Facing preference maps to a device index
    (config scanner.camera.devices); the resolution is a hint the driver may
    ignore. Blocking capture calls run in a worker via asyncio.to_thread.
    """
    def __init__(self, cfg: Optional[CameraConfig] = None):
        self.cfg = cfg or CameraConfig()

    def _device_for(self, facing: str) -> int:
        devices = self.cfg.devices
        if facing in devices:
            return devices[facing]
        return devices.get(FACING_ENVIRONMENT, 0)

    def _open(self, index: int) -> Any:
        cap = cv2.VideoCapture(index)
        if not cap.isOpened():
            cap.release()
            raise CameraUnavailable(f"Unable to access camera (device {index})")
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.cfg.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.cfg.height)
        return cap

    async def acquire(self, preferred_facing: str = FACING_ENVIRONMENT) -> StreamHandle:
        facing = (preferred_facing or self.cfg.facing).lower()
        index = self._device_for(facing)
        try:
            cap = await asyncio.to_thread(self._open, index)
        except CameraUnavailable:
            raise
        except cv2.error as e:
            raise CameraUnavailable(f"Camera backend error: {e}") from e

        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        log.info("camera_open", extra={"device": index, "facing": facing, "width": width, "height": height})
        return StreamHandle(source=f"cv2:{index}", facing=facing, width=width, height=height, capture=cap)

    async def frames(self, handle: StreamHandle) -> AsyncIterator[Frame]:
        for seq in itertools.count(1):
            if handle.released:
                return
            ok, img = await asyncio.to_thread(self._read, handle)
            yield Frame(pixels=img if ok else None, seq=seq)

    @staticmethod
    def _read(handle: StreamHandle) -> Tuple[bool, Any]:
        with handle.io_lock:
            if handle.released:
                return False, None
            return handle.capture.read()

    @staticmethod
    def _close(handle: StreamHandle) -> None:
        # a cancelled frame pull leaves its read() running in the worker thread;
        # VideoCapture must not be released underneath it
        with handle.io_lock:
            handle.capture.release()

    async def release(self, handle: StreamHandle) -> None:
        if handle.released:
            return
        handle.released = True
        if handle.capture is not None:
            await asyncio.to_thread(self._close, handle)
        log.info("camera_released", extra={"source": handle.source})


# ----------------------------- Replay -----------------------------

ImageLike = Union[np.ndarray, str, Path, None]


class ReplayFrameSource(FrameSource):
    """
    Loops over a fixed list of images (arrays or image file paths) at a steady
    interval. Stands in for a camera in demos and the `replay` scanner source.
    `None` entries produce not-ready frames.
    """
    def __init__(self, images: Sequence[ImageLike], *, interval_s: float = 0.1, loop: bool = True):
        self._images: List[Optional[np.ndarray]] = [self._load(i) for i in images]
        self.interval_s = float(interval_s)
        self.loop = loop
        self.acquired = 0

    @staticmethod
    def _load(item: ImageLike) -> Optional[np.ndarray]:
        if item is None or isinstance(item, np.ndarray):
            return item
        img = cv2.imread(str(item))
        if img is None:
            raise ValueError(f"Cannot read image: {item}")
        return img

    async def acquire(self, preferred_facing: str = FACING_ENVIRONMENT) -> StreamHandle:
        if not self._images:
            raise CameraUnavailable("Replay source has no images")
        self.acquired += 1
        return StreamHandle(source="replay", facing=preferred_facing)

    async def frames(self, handle: StreamHandle) -> AsyncIterator[Frame]:
        seq = 0
        while not handle.released:
            for img in self._images:
                if handle.released:
                    return
                seq += 1
                yield Frame(pixels=img, seq=seq)
                await asyncio.sleep(self.interval_s)
            if not self.loop:
                return

    async def release(self, handle: StreamHandle) -> None:
        handle.released = True


def build_frame_source(scanner_cfg: Mapping[str, Any]) -> FrameSource:
    """Pick a frame source from scanner.source (camera | replay)."""
    source = str(scanner_cfg.get("source", "camera")).lower()
    if source == "camera":
        return OpenCvFrameSource(CameraConfig.from_cfg(scanner_cfg.get("camera") or {}))
    if source == "replay":
        replay = scanner_cfg.get("replay") or {}
        return ReplayFrameSource(list(replay.get("images") or []),
                                 interval_s=float(replay.get("interval_s", 0.1)))
    raise ValueError(f"Unknown scanner.source: {source}")
