import sys
import types

import pytest

from needlebot.mapper import LogicalPoint
from needlebot.pointer import PointerDispatcher


@pytest.fixture
def gui(monkeypatch):
    # Recording stand-in so no real pointer moves
    fake = types.ModuleType("pyautogui")
    fake.FAILSAFE = None
    fake.PAUSE = 1.0
    fake.events = []
    fake.moveTo = lambda x, y, _pause=True: fake.events.append(("move", x, y))
    fake.click = lambda _pause=True: fake.events.append(("click",))
    fake.size = lambda: (1440, 900)
    monkeypatch.setitem(sys.modules, "pyautogui", fake)
    return fake


def test_setup_disables_pyautogui_pause(gui):
    PointerDispatcher(failsafe=False)
    assert gui.FAILSAFE is False
    assert gui.PAUSE == 0.0


def test_click_rounds_half_up_and_logs(gui):
    logged = []
    p = PointerDispatcher(settle_ms=0, log_fn=lambda m, l: logged.append((m, l)))
    assert p.move_and_click(74.5, 85.2) == (75, 85)
    assert gui.events == [("move", 75, 85), ("click",)]
    assert logged == [("Click @ 75,85", "CLICK")]


def test_repeated_clicks_hit_same_point(gui):
    p = PointerDispatcher(settle_ms=0)
    assert p.click_point(LogicalPoint(10, 20), times=3) == (10, 20)
    assert gui.events.count(("move", 10, 20)) == 3
    assert gui.events.count(("click",)) == 3


def test_screen_size(gui):
    assert PointerDispatcher().screen_size() == (1440, 900)
