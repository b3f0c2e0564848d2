"""
needlebot/sequencer.py - Strings locate/map/click together into a run.

Actions go out strictly in the order they're issued. Each one usually
depends on what the previous one did to the screen, so nothing is
reordered, batched or skipped ahead.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, Optional, Tuple, TypeVar, Union

from .config import AppConfig, ScriptConfig
from .errors import CaptureError
from .locator import CaptureSource, Locator
from .mapper import LocatedRegion
from .needles import Needle, NeedleRegistry
from .ocr import DigitReader, read_number
from .session import ANCHOR_NEXT_FRAME, SessionContext, SessionState

if TYPE_CHECKING:
    from .pointer import PointerDispatcher
    from .ui import Stats

T = TypeVar("T")
LogFn = Callable[[str, str], None]


def with_capture_retry(
    fn: Callable[[], T],
    retries: int,
    backoff: float,
    log_fn: Optional[LogFn] = None,
    sleep: Callable[[float], None] = time.sleep
) -> T:
    # Retry CaptureError with doubling delay, then give up and re-raise
    log = log_fn or (lambda m, l: None)
    delay = backoff
    attempt = 0
    while True:
        try:
            return fn()
        except CaptureError as e:
            if attempt >= retries:
                raise
            attempt += 1
            log(f"Capture failed ({e}), retry {attempt}/{retries} in {delay:.2f}s", "WARN")
            sleep(delay)
            delay *= 2


class RetryingCapture:
    # Drop-in capture source that retries the wrapped one

    def __init__(
        self,
        source: CaptureSource,
        retries: int = 3,
        backoff: float = 0.25,
        log_fn: Optional[LogFn] = None,
        sleep: Callable[[float], None] = time.sleep
    ) -> None:
        self._source = source
        self._retries = retries
        self._backoff = backoff
        self._log = log_fn
        self._sleep = sleep

    def capture(self) -> bytes:
        return with_capture_retry(self._source.capture, self._retries, self._backoff, self._log, self._sleep)


class Sequencer:

    def __init__(
        self,
        locator: Locator,
        dispatcher: "PointerDispatcher",
        session: SessionContext,
        needles: NeedleRegistry,
        cfg: AppConfig,
        capture: Optional[CaptureSource] = None,
        reader: Optional[DigitReader] = None,
        stop: Optional[threading.Event] = None,
        pause: Optional[threading.Event] = None,
        stats: Optional["Stats"] = None,
        log_fn: Optional[LogFn] = None,
        sleep: Callable[[float], None] = time.sleep
    ) -> None:
        self.locator = locator
        self.dispatcher = dispatcher
        self.session = session
        self.needles = needles
        self.cfg = cfg
        self._capture = capture
        self._reader = reader
        self.stop = stop or threading.Event()
        self.pause = pause or threading.Event()
        self._stats = stats
        self._log = log_fn or (lambda m, l: None)
        self._sleep = sleep

    @property
    def stopped(self) -> bool:
        return self.stop.is_set()

    def _pace(self) -> None:
        delay = self.cfg.timing.action_delay_ms
        if delay > 0:
            self._sleep(delay / 1000.0)

    @contextmanager
    def _step(self, state: SessionState):
        self.session.begin(state)
        try:
            yield
        except CaptureError as e:
            # Retries already exhausted by the capture source
            self.session.fail(f"capture failed: {e}")
            if self._stats:
                self._stats.inc_errors()
            raise
        finally:
            if self.session.state is not SessionState.FAILED:
                self.session.finish()

    def _wait_if_paused(self) -> None:
        # Only ever called at a cycle boundary
        while self.pause.is_set() and not self.stop.is_set():
            self._sleep(0.1)

    def _needle(self, needle: Union[Needle, str]) -> Needle:
        return self.needles.get(needle) if isinstance(needle, str) else needle

    def _click(self, x: int, y: int, times: int = 1) -> Tuple[int, int]:
        pos = (x, y)
        with self._step(SessionState.CLICKING):
            for _ in range(times):
                pos = self.dispatcher.move_and_click(x, y)
                if self._stats:
                    self._stats.inc_clicks()
        self._pace()
        return pos

    def find_and_click(
        self,
        needle: Union[Needle, str],
        threshold: Optional[float] = None,
        attempts: int = 1
    ) -> bool:
        n = self._needle(needle)
        thresh = self.cfg.matching.confidence_threshold if threshold is None else threshold

        with self._step(SessionState.LOCATING):
            region = self.locator.wait_for(
                n, thresh, attempts=attempts,
                interval=self.cfg.timing.poll_interval, stop=self.stop
            )
        if self._stats:
            self._stats.inc_cycles()

        if region is None:
            if self._stats:
                self._stats.inc_misses()
            return False

        if self._stats:
            self._stats.inc_matches()
        self._log(f"Match: {n.name} ({region.score:.3f})", "SUCCESS")
        point = self.session.center_of(region)
        self._click(point.x, point.y)
        return True

    def click_region(self, region: LocatedRegion, times: int = 1) -> Tuple[int, int]:
        point = self.session.center_of(region)
        return self._click(point.x, point.y, times)

    def click_tile(self, column: int, row: int, times: Optional[int] = None) -> Tuple[int, int]:
        point = self.session.grid_point(column, row)
        self._log(f"Tile ({column},{row}) -> {point.x},{point.y}", "INFO")
        return self._click(point.x, point.y, times or self.cfg.pointer.clicks_per_tile)

    def resolve_counter_region(
        self,
        role: str = "coins",
        fixed: Optional[Tuple[int, int, int, int]] = None,
        needle: Union[Needle, str, None] = None
    ) -> Optional[LocatedRegion]:
        """
        Pin down where a counter lives: a fixed config region wins, then the
        counter's needle. Neither means no OCR for this run.
        """
        if fixed:
            region = LocatedRegion(*fixed)
        elif needle:
            region = self.locator.wait_for(
                self._needle(needle),
                self.cfg.matching.confidence_threshold,
                attempts=self.cfg.timing.anchor_attempts,
                interval=self.cfg.timing.anchor_interval,
                stop=self.stop
            )
            if region is None:
                self._log(f"Counter '{role}' not found, OCR disabled for this run", "WARN")
                return None
        else:
            return None
        self.session.set_region(role, region)
        return region

    def read_counter(self, role: str = "coins") -> Optional[str]:
        """Digits in a session region, or None if OCR isn't wired up for it."""
        region = self.session.region(role)
        if self._reader is None or self._capture is None or region is None:
            return None
        with self._step(SessionState.LOCATING):
            digits = read_number(
                self._capture, region, self._reader,
                upscale=self.cfg.ocr.upscale,
                threshold=self.cfg.ocr.binarize_threshold
            )
        if self._stats:
            self._stats.set_counter(digits)
        return digits

    def advance_frames(
        self,
        batches: int,
        per_batch: int,
        on_batch: Optional[Callable[[int, Optional[str]], None]] = None
    ) -> int:
        """
        Hammer the next-frame button. Stop/pause are honoured between
        clicks, never in the middle of one. Returns frames advanced.
        """
        target = self.session.anchor(ANCHOR_NEXT_FRAME)
        point = self.session.center_of(target)
        frames = 0

        for _batch in range(batches):
            for _ in range(per_batch):
                self._wait_if_paused()
                if self.stopped:
                    self._log(f"Stopped after {frames} frames", "WARN")
                    return frames
                with self._step(SessionState.CLICKING):
                    self.dispatcher.move_and_click(point.x, point.y)
                frames += 1
                if self._stats:
                    self._stats.inc_clicks()
                    self._stats.inc_frames()

            coins = self.read_counter()
            if coins is not None:
                self._log(f"frame {frames}: coins {coins or '?'}", "INFO")
            else:
                self._log(f"frame {frames}", "DEBUG")
            if on_batch:
                on_batch(frames, coins)

        return frames

    def run_script(self, script: ScriptConfig) -> int:
        # Tiles first, then named actions, then the frame loop
        for column, row in script.tiles:
            self._wait_if_paused()
            if self.stopped:
                return 0
            self.click_tile(column, row)

        for name in script.actions:
            self._wait_if_paused()
            if self.stopped:
                return 0
            if not self.find_and_click(name, attempts=self.cfg.timing.action_attempts):
                self._log(f"Action '{name}' not on screen, skipped", "INFO")

        if script.frame_batches > 0 and not self.stopped:
            return self.advance_frames(script.frame_batches, script.frames_per_batch)
        return 0
