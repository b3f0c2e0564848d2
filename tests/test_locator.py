import threading

import numpy as np
import pytest

from conftest import FakeCapture, white_square_scene
from needlebot.errors import CaptureError
from needlebot.locator import Locator
from needlebot.mapper import LocatedRegion
from needlebot.vision import MatchResult


def dented_scene():
    # White square with an 8x8 black hole punched in the middle
    frame = white_square_scene()
    frame[80 + 28:80 + 36, 50 + 28:50 + 36] = 0
    return frame


class StubMatcher:
    def __init__(self, score=0.9, exc=None):
        self.score = score
        self.exc = exc
        self.frames = []

    def match(self, frame, needle):
        self.frames.append(frame)
        if self.exc:
            raise self.exc
        return MatchResult(self.score, 3, 4, needle.width, needle.height, needle.name)


def test_locate_reports_paste_offset(white_needle, scene):
    region = Locator(FakeCapture(scene)).locate(white_needle, 0.4)
    assert region == LocatedRegion(50, 80, 64, 64, score=region.score)
    assert region.score >= 0.99


def test_near_miss_is_absent_above_its_score(white_needle):
    loc = Locator(FakeCapture(dented_scene()))
    # sqrt(4032 / 4096) ~= 0.9922
    assert loc.locate(white_needle, 0.995) is None
    assert loc.last_score(white_needle) == pytest.approx(0.9922, abs=1e-3)

    region = loc.locate(white_needle, 0.99)
    assert region is not None
    assert region.origin == (50, 80)


def test_score_equal_to_threshold_counts(white_needle, scene):
    loc = Locator(FakeCapture(scene), matcher=StubMatcher(score=0.9))
    assert loc.locate(white_needle, 0.9) == LocatedRegion(3, 4, 64, 64, score=0.9)
    assert loc.locate(white_needle, 0.90001) is None


def test_every_call_recaptures(white_needle, scene):
    cap = FakeCapture(scene, np.zeros((200, 200), dtype=np.uint8))
    loc = Locator(cap)
    assert loc.locate(white_needle, 0.9) is not None
    assert loc.locate(white_needle, 0.9) is None
    assert cap.calls == 2


def test_capture_error_propagates(white_needle, capture_error):
    loc = Locator(FakeCapture(capture_error))
    with pytest.raises(CaptureError):
        loc.locate(white_needle, 0.9)


def test_frame_released_after_locate(white_needle, scene):
    matcher = StubMatcher()
    Locator(FakeCapture(scene), matcher=matcher).locate(white_needle, 0.5)
    assert matcher.frames[0].released


def test_frame_released_when_matching_blows_up(white_needle, scene):
    matcher = StubMatcher(exc=RuntimeError("bad match"))
    with pytest.raises(RuntimeError):
        Locator(FakeCapture(scene), matcher=matcher).locate(white_needle, 0.5)
    assert matcher.frames[0].released


def test_absence_is_logged_at_debug(white_needle):
    logged = []
    loc = Locator(FakeCapture(np.zeros((100, 100), dtype=np.uint8)), log_fn=lambda m, l: logged.append(l))
    assert loc.locate(white_needle, 0.9) is None
    assert logged == ["DEBUG"]


def test_wait_for_polls_until_found(white_needle, scene):
    blank = np.zeros((200, 200), dtype=np.uint8)
    cap = FakeCapture(blank, blank, scene)
    region = Locator(cap).wait_for(white_needle, 0.9, attempts=5, interval=0)
    assert region is not None
    assert cap.calls == 3


def test_wait_for_gives_up(white_needle):
    cap = FakeCapture(np.zeros((200, 200), dtype=np.uint8))
    assert Locator(cap).wait_for(white_needle, 0.9, attempts=4, interval=0) is None
    assert cap.calls == 4


def test_wait_for_honours_stop(white_needle, scene):
    stop = threading.Event()
    stop.set()
    cap = FakeCapture(scene)
    assert Locator(cap).wait_for(white_needle, 0.9, attempts=3, interval=0, stop=stop) is None
    assert cap.calls == 0
