import cv2
import numpy as np

from rollcall.camera import Frame
from rollcall.decoder import QrDecoder


def _qr_image(text: str) -> np.ndarray:
    qr = cv2.QRCodeEncoder.create().encode(text)
    img = cv2.resize(qr, (qr.shape[1] * 8, qr.shape[0] * 8), interpolation=cv2.INTER_NEAREST)
    return cv2.copyMakeBorder(img, 32, 32, 32, 32, cv2.BORDER_CONSTANT, value=255)


def test_decodes_synthetic_badge():
    dec = QrDecoder()
    assert dec.decode(Frame(pixels=_qr_image("https://x/v?id=2025-001"))) == "https://x/v?id=2025-001"
    assert dec.decoded == 1


def test_blank_frame_is_a_miss():
    dec = QrDecoder()
    assert dec.decode(Frame(pixels=np.full((240, 320), 255, dtype=np.uint8))) is None


def test_not_ready_frame_is_a_miss():
    dec = QrDecoder()
    assert dec.decode(Frame(pixels=None)) is None
    assert dec.decode(Frame(pixels=np.zeros((0, 0), dtype=np.uint8))) is None
