# needlebot - finds buttons on screen and clicks them so you don't have to
# Point it at a folder of needles, tell it which grid cells to poke, go make coffee.

import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

import keyboard

from needlebot.config import AppConfig, load_config
from needlebot.errors import (
    AssetNotFoundError, CaptureError, ConfigError, DecodeError,
    InvalidDimensionsError, NeedlebotError, UnresolvedAnchorError
)
from needlebot.locator import Locator
from needlebot.mapper import detect_scale
from needlebot.needles import Needle, NeedleRegistry
from needlebot.ocr import DigitReader
from needlebot.pointer import PointerDispatcher
from needlebot.sequencer import RetryingCapture, Sequencer
from needlebot.session import ANCHOR_MAP, ANCHOR_NEXT_FRAME, ANCHOR_TILE, SessionContext
from needlebot.ui import Dashboard, Stats, make_logger
from needlebot.vision import ScreenCapture, TemplateMatcher, decode_gray

DEFAULT_CONFIG = """
# needlebot configuration

display:
  monitor: 1            # 0=all, 1=primary, 2+=specific
  scale_factor: auto    # or e.g. 0.5 on a 2x Retina

matching:
  confidence_threshold: 0.90
  anchor_threshold: 0.90
  method: "ccorr_normed"  # ccorr_normed, ccoeff_normed
  debug_mode: false

timing:
  action_delay_ms: 100
  click_settle_ms: 50
  poll_interval: 0.5
  action_attempts: 3
  capture_retries: 3
  capture_backoff: 0.25
  anchor_attempts: 5
  anchor_interval: 1.0

pointer:
  failsafe: true
  clicks_per_tile: 3

needles:
  directory: "needles"
  next_frame: "next_frame.png"
  map: "map.png"
  tile: "single_tile.png"
  coins: ""             # needle for the coin counter, if no fixed region

ocr:
  enabled: false
  tesseract_cmd: ""
  upscale: 2
  binarize_threshold: 180
  coins_region: []      # [x, y, w, h] in capture pixels

script:
  tiles: []             # [[column, row], ...]
  actions: []           # needle file stems, clicked in order
  frame_batches: 0
  frames_per_batch: 30

hotkeys:
  stop_bot: "f10"
  pause_bot: "f9"

ui:
  refresh_rate_ms: 100
  verbose: false
"""


class NeedleBot:
    # Wires config, needles, capture, session and sequencer together

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = config_path
        self.stop = threading.Event()
        self.pause = threading.Event()

        self.cfg: Optional[AppConfig] = None
        self.dash: Optional[Dashboard] = None
        self.log = lambda m, l: None  # Dummy logger until init
        self.registry: Optional[NeedleRegistry] = None
        self.screen: Optional[ScreenCapture] = None
        self.session: Optional[SessionContext] = None
        self.sequencer: Optional[Sequencer] = None

    def bootstrap(self):
        # 1. Config
        cfg_path = Path(self.config_path)
        if not cfg_path.exists():
            cfg_path.write_text(DEFAULT_CONFIG.strip() + "\n", encoding="utf-8")
        self.cfg = load_config(self.config_path)

        # 2. UI
        stats = Stats()
        stats.load()
        self.dash = Dashboard(
            refresh_ms=self.cfg.ui.refresh_rate_ms,
            stop_key=self.cfg.hotkeys.stop_bot,
            pause_key=self.cfg.hotkeys.pause_bot,
            stats=stats
        )
        self.log = make_logger(self.dash, verbose=self.cfg.ui.verbose)

        # 3. Needles - nothing works without them, so failures here are fatal
        self.registry = NeedleRegistry(
            base_dir=Path(self.cfg.needles.directory),
            max_workers=self.cfg.needles.load_workers,
            log_fn=self.log
        )
        self.registry.load_all(self._needle_files())
        needle_dir = Path(self.cfg.needles.directory)
        if needle_dir.is_dir():
            self.registry.load_directory(needle_dir)

        # 4. Capture / match / click
        self.screen = ScreenCapture(monitor_index=self.cfg.display.monitor)
        capture = RetryingCapture(
            self.screen,
            retries=self.cfg.timing.capture_retries,
            backoff=self.cfg.timing.capture_backoff,
            log_fn=self.log
        )
        matcher = TemplateMatcher(
            method=self.cfg.matching.method,
            debug_path=Path("logs/debug") if self.cfg.matching.debug_mode else None,
            log_fn=self.log
        )
        locator = Locator(capture, matcher=matcher, log_fn=self.log)
        pointer = PointerDispatcher(
            settle_ms=self.cfg.timing.click_settle_ms,
            failsafe=self.cfg.pointer.failsafe,
            log_fn=self.log
        )
        reader = None
        if self.cfg.ocr.enabled:
            reader = DigitReader(tesseract_cmd=self.cfg.ocr.tesseract_cmd or None)

        self.session = SessionContext(scale_factor=self._scale_factor(capture, pointer), log_fn=self.log)
        self.sequencer = Sequencer(
            locator, pointer, self.session, self.registry, self.cfg,
            capture=capture, reader=reader,
            stop=self.stop, pause=self.pause,
            stats=stats, log_fn=self.log
        )

        # 5. Hotkeys
        self._bind_hotkeys()

        self.dash.start()
        self.log(f"Needles loaded: {len(self.registry)}. Scale: {self.session.scale_factor:g}", "SUCCESS")

    def _needle_files(self) -> List[str]:
        n = self.cfg.needles
        return [f for f in (n.next_frame, n.map, n.tile, n.coins) if f]

    def _anchors(self) -> List[Tuple[str, Needle]]:
        n = self.cfg.needles
        roles = ((ANCHOR_NEXT_FRAME, n.next_frame), (ANCHOR_MAP, n.map), (ANCHOR_TILE, n.tile))
        return [(role, self.registry.get(f)) for role, f in roles if f]

    def _scale_factor(self, capture: RetryingCapture, pointer: PointerDispatcher) -> float:
        scale = self.cfg.display.scale_factor
        if not isinstance(scale, str):
            return float(scale)
        # "auto": one throwaway capture to see how many pixels we really get
        capture_width = decode_gray(capture.capture()).shape[1]
        logical_width, _ = pointer.screen_size()
        return detect_scale(capture_width, logical_width)

    def _bind_hotkeys(self):
        try:
            keyboard.add_hotkey(self.cfg.hotkeys.stop_bot, self.stop.set)
            keyboard.add_hotkey(self.cfg.hotkeys.pause_bot, self._toggle_pause)
        except (ImportError, OSError, ValueError) as e:
            # Linux needs root for global hooks
            self.log(f"Hotkeys unavailable: {e}", "WARN")

    def _toggle_pause(self):
        if self.pause.is_set():
            self.pause.clear()
            self.dash.stats.resume()
            self.dash.set_status(Dashboard.STATUS_RUNNING)
        else:
            self.pause.set()
            self.dash.stats.pause()
            self.dash.set_status(Dashboard.STATUS_PAUSED)

    def _resolve(self):
        self.dash.set_status(Dashboard.STATUS_RESOLVING)
        self.dash.update()
        self.session.resolve_anchors(
            self.sequencer.locator,
            self._anchors(),
            threshold=self.cfg.matching.anchor_threshold,
            attempts=self.cfg.timing.anchor_attempts,
            interval=self.cfg.timing.anchor_interval
        )

        self.sequencer.resolve_counter_region(
            "coins", fixed=self.cfg.ocr.coins_region, needle=self.cfg.needles.coins or None
        )

        self.dash.set_session(self.session.summary())

    def run(self) -> int:
        try:
            self.bootstrap()
        except ConfigError as e:
            print(f"CRITICAL: Config failed to load: {e}")
            self.shutdown()
            return 1
        except (AssetNotFoundError, DecodeError) as e:
            print(f"CRITICAL: Cannot load needles: {e}")
            self.shutdown()
            return 1
        except CaptureError as e:
            print(f"CRITICAL: Cannot capture the screen: {e}")
            self.shutdown()
            return 1

        code = 0
        try:
            self._resolve()
            self.dash.set_status(Dashboard.STATUS_RUNNING)
            frames = self.sequencer.run_script(self.cfg.script)
            self.log(f"Script finished. Frames advanced: {frames}", "SUCCESS")
        except UnresolvedAnchorError as e:
            self.dash.set_status(Dashboard.STATUS_ERROR, e.anchor)
            score = f"{e.last_score:.3f}" if e.last_score is not None else "n/a"
            self.log(f"Could not resolve anchor '{e.anchor}' (last score {score}). "
                     f"Recapture the needle or lower matching.anchor_threshold.", "ERROR")
            code = 2
        except InvalidDimensionsError as e:
            self.dash.set_status(Dashboard.STATUS_ERROR, "needle/capture size mismatch")
            self.log(str(e), "ERROR")
            code = 2
        except NeedlebotError as e:
            self.dash.set_status(Dashboard.STATUS_ERROR, type(e).__name__)
            self.log(f"Session aborted: {e}", "ERROR")
            code = 2
        except KeyboardInterrupt:
            self.log("Interrupted", "WARN")
        finally:
            self.dash.update()
            time.sleep(1.0)  # Let the last log line render
            self.shutdown()
        return code

    def shutdown(self):
        try:
            keyboard.unhook_all()
        except (ImportError, OSError):
            pass
        if self.screen:
            self.screen.close()
        if self.dash:
            self.dash.stats.save()
            self.dash.stop()
        if self.registry:
            self.registry.release_all()
        print("\nExiting needlebot...")


if __name__ == "__main__":
    sys.exit(NeedleBot().run())
