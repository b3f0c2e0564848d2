"""
needlebot/locator.py - "Is this needle on screen right now, and where?"

Every call takes a fresh screenshot. No frame or result is reused
between calls, so the answer always reflects the screen at call time.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional, Protocol

from .mapper import LocatedRegion
from .needles import Needle
from .vision import FrameNormalizer, MatchResult, TemplateMatcher


class CaptureSource(Protocol):
    def capture(self) -> bytes: ...


class Locator:

    def __init__(
        self,
        capture: CaptureSource,
        matcher: Optional[TemplateMatcher] = None,
        normalizer: Optional[FrameNormalizer] = None,
        log_fn: Optional[Callable[[str, str], None]] = None
    ) -> None:
        self._capture = capture
        self._matcher = matcher or TemplateMatcher()
        self._normalizer = normalizer or FrameNormalizer()
        self._log = log_fn or (lambda m, l: None)
        # Diagnostics only. Never used to answer a later locate().
        self.last_match: Dict[str, MatchResult] = {}

    def observe(self, needle: Needle) -> MatchResult:
        # capture -> normalize -> match, no judgement. CaptureError propagates.
        raw = self._capture.capture()
        with self._normalizer.normalize(raw) as frame:
            result = self._matcher.match(frame, needle)
        self.last_match[needle.name] = result
        return result

    def locate(self, needle: Needle, threshold: float) -> Optional[LocatedRegion]:
        result = self.observe(needle)
        if result.score >= threshold:
            return LocatedRegion(
                x=result.x, y=result.y,
                width=needle.width, height=needle.height,
                score=result.score
            )
        self._log(f"Not found: {needle.name} ({result.score:.3f} < {threshold:.3f})", "DEBUG")
        return None

    def last_score(self, needle: Needle) -> Optional[float]:
        res = self.last_match.get(needle.name)
        return res.score if res else None

    def wait_for(
        self,
        needle: Needle,
        threshold: float,
        attempts: int = 10,
        interval: float = 0.5,
        stop: Optional[threading.Event] = None
    ) -> Optional[LocatedRegion]:
        """Poll until the needle shows up, we run out of attempts, or stop is set."""
        for attempt in range(attempts):
            if stop is not None and stop.is_set():
                break
            region = self.locate(needle, threshold)
            if region is not None:
                return region
            if attempt < attempts - 1 and interval > 0:
                time.sleep(interval)
        return None
