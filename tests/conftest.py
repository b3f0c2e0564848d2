"""Pytest configuration and shared doubles.

Nothing here touches a real display, pointer or Tesseract install.
"""

import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from needlebot.errors import CaptureError  # noqa: E402
from needlebot.needles import Needle  # noqa: E402


def encode_png(img: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


def white_square_scene(size=200, square=64, at=(50, 80)):
    """Black frame with a white square pasted at `at` (x, y)."""
    frame = np.zeros((size, size), dtype=np.uint8)
    x, y = at
    frame[y:y + square, x:x + square] = 255
    return frame


class FakeCapture:
    # Hands out queued PNG frames; raises queued exceptions in order

    def __init__(self, *frames):
        self.queue = list(frames)
        self.calls = 0

    def push(self, item):
        self.queue.append(item)

    def capture(self) -> bytes:
        self.calls += 1
        item = self.queue.pop(0) if len(self.queue) > 1 else self.queue[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, np.ndarray):
            return encode_png(item)
        return item


class FakeDispatcher:
    def __init__(self):
        self.clicks = []

    def move_and_click(self, x, y):
        pos = (int(x), int(y))
        self.clicks.append(pos)
        return pos


class FakeReader:
    def __init__(self, value="123"):
        self.value = value
        self.inputs = []

    def read_digits(self, image_bytes: bytes) -> str:
        self.inputs.append(image_bytes)
        return self.value


@pytest.fixture
def white_needle():
    gray = np.full((64, 64), 255, dtype=np.uint8)
    return Needle.from_gray("white.png", gray)


@pytest.fixture
def scene():
    return white_square_scene()


@pytest.fixture
def capture_error():
    return CaptureError("no display")
