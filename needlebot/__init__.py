"""
needlebot package - find it on screen, click it

errors.py    - Error taxonomy (not-found is NOT an error)
vision.py    - Screen capture (mss), frame normalization, template matching (OpenCV)
needles.py   - Needle registry: reference images, loaded once, read-only
locator.py   - capture -> normalize -> match -> threshold
mapper.py    - Capture pixels -> logical pointer coordinates, map grid cells
session.py   - Anchor resolution and per-run state machine
pointer.py   - pyautogui clicking (imports pyautogui lazily)
ocr.py       - Digit reading via Tesseract
sequencer.py - Ordered actions, capture retry, frame-advance loop
ui.py        - Rich terminal dashboard and logger
config.py    - Typed configuration dataclasses
savefile.py  - Raw-DEFLATE save file decoder (needlebot-decode)
"""

from .errors import (
    NeedlebotError, ConfigError, AssetNotFoundError, DecodeError,
    InvalidDimensionsError, CaptureError, FrameReleasedError, UnresolvedAnchorError
)
from .vision import ScreenCapture, Frame, FrameNormalizer, MatchResult, TemplateMatcher
from .needles import Needle, NeedleRegistry
from .locator import Locator
from .mapper import LocatedRegion, LogicalPoint, to_logical, grid_point, region_center, detect_scale
from .session import SessionContext, SessionState
from .sequencer import Sequencer, RetryingCapture, with_capture_retry
from .ocr import DigitReader, prepare_digit_crop, read_number
from .ui import Dashboard, Stats, make_logger
from .config import AppConfig, load_config, validate_config

__all__ = [
    "NeedlebotError", "ConfigError", "AssetNotFoundError", "DecodeError",
    "InvalidDimensionsError", "CaptureError", "FrameReleasedError", "UnresolvedAnchorError",
    "ScreenCapture", "Frame", "FrameNormalizer", "MatchResult", "TemplateMatcher",
    "Needle", "NeedleRegistry",
    "Locator",
    "LocatedRegion", "LogicalPoint", "to_logical", "grid_point", "region_center", "detect_scale",
    "SessionContext", "SessionState",
    "Sequencer", "RetryingCapture", "with_capture_retry",
    "DigitReader", "prepare_digit_crop", "read_number",
    "Dashboard", "Stats", "make_logger",
    "AppConfig", "load_config", "validate_config",
]
