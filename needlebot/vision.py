"""
needlebot/vision.py - Screen capture, frame normalization and template matching.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Tuple

import cv2
import mss
import mss.tools
import numpy as np
from mss.exception import ScreenShotError

from .errors import CaptureError, DecodeError, FrameReleasedError, InvalidDimensionsError

if TYPE_CHECKING:
    from .needles import Needle


MATCH_METHODS = {
    "ccorr_normed": cv2.TM_CCORR_NORMED,
    "ccoeff_normed": cv2.TM_CCOEFF_NORMED,
}


def decode_gray(data: bytes) -> np.ndarray:
    """
    Decode encoded image bytes straight to a single-channel uint8 matrix.

    BGRA, BGR and gray sources all go through OpenCV's BT.601 luma weights.
    The full-colour decode buffer is dropped before returning, error or not.
    """
    if not data:
        raise DecodeError("Empty image buffer")

    decoded = None
    try:
        decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
        if decoded is None:
            raise DecodeError("Image bytes could not be decoded")

        if decoded.dtype != np.uint8:
            # 16-bit PNGs
            decoded = (decoded / 257).astype(np.uint8)

        if decoded.ndim == 2:
            gray = decoded.copy()
        elif decoded.shape[2] == 4:
            gray = cv2.cvtColor(decoded, cv2.COLOR_BGRA2GRAY)
        elif decoded.shape[2] == 3:
            gray = cv2.cvtColor(decoded, cv2.COLOR_BGR2GRAY)
        else:
            raise DecodeError(f"Unsupported channel count: {decoded.shape[2]}")
    except cv2.error as e:
        raise DecodeError(f"OpenCV failed to decode image: {e}") from e
    finally:
        del decoded

    return gray


class ScreenCapture:
    # Screen grabber using mss. Hands out PNG bytes, not arrays.

    def __init__(self, monitor_index: int = 1) -> None:
        self._sct: Optional[mss.base.MSSBase] = None
        self.monitor_index = monitor_index

    def __enter__(self):
        self._open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _open(self):
        if not self._sct:
            try:
                self._sct = mss.mss()
            except ScreenShotError as e:
                raise CaptureError(f"Cannot open display: {e}") from e
        return self._sct

    def close(self) -> None:
        if self._sct:
            self._sct.close()
            self._sct = None

    def _monitor(self) -> dict:
        sct = self._open()
        # Clamp to valid range (0 = all monitors, 1 = primary)
        idx = max(0, min(self.monitor_index, len(sct.monitors) - 1))
        return sct.monitors[idx]

    def monitor_size(self) -> Tuple[int, int]:
        # Logical size of the selected monitor as reported by the OS
        mon = self._monitor()
        return mon["width"], mon["height"]

    def capture(self) -> bytes:
        monitor = self._monitor()
        try:
            shot = self._sct.grab(monitor)
            return mss.tools.to_png(shot.rgb, shot.size)
        except ScreenShotError as e:
            raise CaptureError(f"Screen grab failed: {e}") from e


class Frame:
    """
    One normalized capture. Lives for exactly one match cycle.

    Use it as a context manager; leaving the block drops the pixel buffer
    and any later access raises FrameReleasedError.
    """

    __slots__ = ("_pixels", "width", "height")

    def __init__(self, pixels: np.ndarray) -> None:
        if pixels.ndim != 2:
            raise DecodeError(f"Frame must be single-channel, got shape {pixels.shape}")
        pixels.flags.writeable = False
        self._pixels: Optional[np.ndarray] = pixels
        self.height, self.width = pixels.shape

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise FrameReleasedError("Frame was already released")
        return self._pixels

    @property
    def released(self) -> bool:
        return self._pixels is None

    def release(self) -> None:
        self._pixels = None

    def __enter__(self) -> "Frame":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


class FrameNormalizer:
    # Raw capture bytes -> grayscale Frame

    def normalize(self, raw: bytes) -> Frame:
        return Frame(decode_gray(raw))


@dataclass(frozen=True)
class MatchResult:
    # Best alignment of one needle against one frame. Not yet judged.
    score: float
    x: int
    y: int
    width: int = 0
    height: int = 0
    name: str = ""


class TemplateMatcher:
    """
    Normalized cross-correlation search of a needle over a frame.

    Ties at the maximum go to the first alignment in row-major order
    (top row first, left to right) so results are reproducible.
    """

    def __init__(
        self,
        method: str = "ccorr_normed",
        debug_path: Optional[Path] = None,
        log_fn: Optional[Callable[[str, str], None]] = None
    ) -> None:
        key = method.lower()
        if key not in MATCH_METHODS:
            raise ValueError(f"Unknown match method '{method}' (expected one of {sorted(MATCH_METHODS)})")
        self.method = key
        self._cv_method = MATCH_METHODS[key]
        self._debug = debug_path
        self._log = log_fn or (lambda m, l: None)

    def match(self, frame: Frame, needle: "Needle") -> MatchResult:
        if frame.width < needle.width or frame.height < needle.height:
            raise InvalidDimensionsError(
                (frame.width, frame.height), (needle.width, needle.height), needle.name
            )

        surface = cv2.matchTemplate(frame.pixels, needle.gray, self._cv_method)
        # Flat regions can make the normalisation divide by zero
        surface = np.nan_to_num(surface, nan=0.0, posinf=0.0, neginf=0.0)

        # argmax returns the first maximum in C (row-major) order
        y, x = np.unravel_index(int(np.argmax(surface)), surface.shape)
        result = MatchResult(
            score=float(surface[y, x]),
            x=int(x),
            y=int(y),
            width=needle.width,
            height=needle.height,
            name=needle.name,
        )

        if self._debug:
            self._save_debug(frame, result)
        return result

    def _save_debug(self, frame: Frame, result: MatchResult) -> None:
        try:
            self._debug.mkdir(parents=True, exist_ok=True)
            vis = cv2.cvtColor(frame.pixels, cv2.COLOR_GRAY2BGR)
            cv2.rectangle(
                vis,
                (result.x, result.y),
                (result.x + result.width, result.y + result.height),
                (0, 255, 0), 2
            )
            cv2.putText(vis, f"{result.name} {result.score:.3f}",
                        (result.x, max(10, result.y - 10)), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 255, 0), 1)
            ts = int(time.time() * 1000)
            label = Path(result.name).stem or "needle"
            cv2.imwrite(str(self._debug / f"match_{label}_{ts}.png"), vis)
        except (OSError, cv2.error) as e:
            self._log(f"Debug snapshot failed: {e}", "WARN")
