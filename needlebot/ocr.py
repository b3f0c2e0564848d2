"""
needlebot/ocr.py - Reading the coin/score counters.

Tesseract does the actual reading. We just crop, threshold and blow the
digits up so it has a fighting chance.
"""

from __future__ import annotations

import io
import re
from typing import Optional, Protocol

import cv2
import numpy as np
import pytesseract
from PIL import Image

from .errors import DecodeError
from .mapper import LocatedRegion

DIGITS_CONFIG = "--psm 7 -c tessedit_char_whitelist=0123456789"
_NON_DIGIT = re.compile(r"\D")


class CaptureSource(Protocol):
    def capture(self) -> bytes: ...


class DigitReader:
    # pytesseract wrapper that only ever returns 0-9 (maybe nothing)

    def __init__(self, tesseract_cmd: Optional[str] = None, config: str = DIGITS_CONFIG) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.config = config

    def read_digits(self, image_bytes: bytes) -> str:
        try:
            img = Image.open(io.BytesIO(image_bytes))
            img.load()
        except (OSError, Image.DecompressionBombError) as e:
            raise DecodeError(f"OCR input is not a readable image: {e}") from e
        try:
            text = pytesseract.image_to_string(img, config=self.config)
        finally:
            img.close()
        return _NON_DIGIT.sub("", text or "")


def prepare_digit_crop(
    raw_capture: bytes,
    region: LocatedRegion,
    upscale: int = 2,
    threshold: int = 180
) -> bytes:
    """
    Crop a counter out of a capture and turn it into big black/white PNG.

    Channels are averaged (not luma-weighted) and anything brighter than
    `threshold` goes white. Upscaling is nearest-neighbour so the edges stay hard.
    """
    img = cv2.imdecode(np.frombuffer(raw_capture, dtype=np.uint8), cv2.IMREAD_COLOR)
    if img is None:
        raise DecodeError("Capture could not be decoded for OCR")

    h, w = img.shape[:2]
    x0, y0 = max(0, region.x), max(0, region.y)
    x1, y1 = min(w, region.x + region.width), min(h, region.y + region.height)
    if x1 <= x0 or y1 <= y0:
        raise DecodeError(f"OCR region {region.origin} {region.size} is outside the {w}x{h} capture")

    crop = img[y0:y1, x0:x1]
    mean = crop.mean(axis=2)
    bw = np.where(mean > threshold, 255, 0).astype(np.uint8)
    if upscale > 1:
        bw = cv2.resize(bw, None, fx=upscale, fy=upscale, interpolation=cv2.INTER_NEAREST)

    ok, buf = cv2.imencode(".png", bw)
    if not ok:
        raise DecodeError("Failed to encode OCR crop")
    return buf.tobytes()


def read_number(
    capture: CaptureSource,
    region: LocatedRegion,
    reader: DigitReader,
    upscale: int = 2,
    threshold: int = 180
) -> str:
    crop = prepare_digit_crop(capture.capture(), region, upscale, threshold)
    return reader.read_digits(crop)
