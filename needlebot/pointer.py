# Pointer control - move, click, wait for the game to catch up

import time
from typing import Callable, Optional, Tuple

from .mapper import LogicalPoint, round_half_up


class PointerDispatcher:
    """
    Straight-line, no-nonsense clicking via pyautogui.

    Coordinates are logical (what the OS pointer uses), not capture pixels.
    """

    def __init__(
        self,
        settle_ms: int = 50,
        failsafe: bool = True,
        log_fn: Optional[Callable[[str, str], None]] = None
    ) -> None:
        # Imported here so headless code paths (tests, decode tool) never touch a display
        import pyautogui
        pyautogui.FAILSAFE = failsafe
        pyautogui.PAUSE = 0.0
        self._gui = pyautogui
        self.settle_ms = settle_ms
        self._log = log_fn or (lambda m, l: None)

    def _settle(self) -> None:
        if self.settle_ms > 0:
            time.sleep(self.settle_ms / 1000.0)

    def move_and_click(self, x: float, y: float) -> Tuple[int, int]:
        tx, ty = round_half_up(x), round_half_up(y)
        self._gui.moveTo(tx, ty, _pause=False)
        self._gui.click(_pause=False)
        self._settle()
        self._log(f"Click @ {tx},{ty}", "CLICK")
        return tx, ty

    def click_point(self, point: LogicalPoint, times: int = 1) -> Tuple[int, int]:
        return self.click_times(point.x, point.y, times)

    def click_times(self, x: float, y: float, times: int) -> Tuple[int, int]:
        pos = (round_half_up(x), round_half_up(y))
        for _ in range(times):
            pos = self.move_and_click(x, y)
        return pos

    def screen_size(self) -> Tuple[int, int]:
        w, h = self._gui.size()
        return int(w), int(h)
