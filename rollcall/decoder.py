from __future__ import annotations
"""
QR payload decoder.

decode(frame) -> Optional[str]
    The decoded text of the first QR code found in the frame, or None when
    the frame is not ready, holds no code, or the detector errors out.
    Never raises on a bad frame: a camera delivers plenty of those.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from .camera import Frame

log = logging.getLogger("scanner.decoder")


class QrDecoder:
    def __init__(self):
        self._detector = cv2.QRCodeDetector()
        self.decoded = 0
        self.errors = 0

    def decode_image(self, img: np.ndarray) -> Optional[str]:
        try:
            data, points, _ = self._detector.detectAndDecode(img)
        except cv2.error as e:
            self.errors += 1
            log.debug("qr_decode_error", extra={"err": str(e)})
            return None
        if points is None or not data:
            return None
        self.decoded += 1
        return data

    def decode(self, frame: Frame) -> Optional[str]:
        if not frame.ready:
            return None
        return self.decode_image(frame.pixels)
