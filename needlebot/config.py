"""
needlebot/config.py - The Knobs and Dials

Every threshold, delay and retry count lives here. None of them are
sacred - the right numbers depend on your display, your needles and how
fast the game redraws. Tune away.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

import yaml

from .errors import ConfigError


# ═══════════════════════════════════════════════════════════════════════════════
# DISPLAY - Which screen, and how its pixels relate to the pointer
# ═══════════════════════════════════════════════════════════════════════════════
#
# On a Retina/HiDPI screen a 1440x900 desktop is captured as 2880x1800.
# The pointer lives in the 1440x900 world, so every hit gets scaled by 0.5.
#

@dataclass
class DisplayConfig:
    # 0 = all monitors, 1 = primary, 2+ = specific
    monitor: int = 1

    # Capture pixels -> pointer coordinates. "auto" compares the pointer
    # screen size with the capture size at startup.
    scale_factor: Union[float, str] = "auto"


# ═══════════════════════════════════════════════════════════════════════════════
# TEMPLATE MATCHING
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class MatchingConfig:
    # Score a match needs before we believe it. Inclusive.
    # ccorr_normed scores run high on bright UIs; 0.90 is a decent start.
    confidence_threshold: float = 0.90

    # Anchors decide where every later click lands, so be picky.
    anchor_threshold: float = 0.90

    # "ccorr_normed" (normalized cross-correlation, 0..1) or
    # "ccoeff_normed" (correlation coefficient, -1..1, ignores brightness offset)
    method: str = "ccorr_normed"

    # Dump annotated match snapshots to logs/debug
    debug_mode: bool = False


# ═══════════════════════════════════════════════════════════════════════════════
# TIMING
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class TimingConfig:
    # Pause after every scripted action so the game can redraw
    action_delay_ms: int = 100

    # Pause after each click before the next capture
    click_settle_ms: int = 50

    # Gap between polls while waiting for a needle, and how many polls a
    # scripted action gets before it is skipped
    poll_interval: float = 0.5
    action_attempts: int = 3

    # Screen grab failures: how many retries, first backoff (doubles each time)
    capture_retries: int = 3
    capture_backoff: float = 0.25

    # Anchor resolution at session start
    anchor_attempts: int = 5
    anchor_interval: float = 1.0


@dataclass
class PointerConfig:
    # Slam the mouse into a corner to abort (pyautogui failsafe)
    failsafe: bool = True
    # Map tiles sometimes eat the first click
    clicks_per_tile: int = 3


# ═══════════════════════════════════════════════════════════════════════════════
# OCR - coin/score counters
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class OcrConfig:
    enabled: bool = False
    # Path to tesseract binary if it isn't on PATH
    tesseract_cmd: str = ""
    upscale: int = 2
    # Channel mean above this = white
    binarize_threshold: int = 180
    # Fixed counter position in capture pixels [x, y, w, h]. Empty = locate
    # the `coins` needle instead.
    coins_region: Optional[Tuple[int, int, int, int]] = None


@dataclass
class NeedlesConfig:
    directory: str = "needles"
    next_frame: str = "next_frame.png"
    map: str = "map.png"
    tile: str = "single_tile.png"
    coins: str = ""
    load_workers: int = 4


@dataclass
class ScriptConfig:
    # Grid cells to click once anchors are in, as [column, row]
    tiles: List[Tuple[int, int]] = field(default_factory=list)
    # Needle names (file stems in the needles folder) to find and click, in order
    actions: List[str] = field(default_factory=list)
    # Frame advance loop: batches x clicks, coins read after each batch
    frame_batches: int = 0
    frames_per_batch: int = 30


@dataclass
class HotkeysConfig:
    stop_bot: str = "f10"
    pause_bot: str = "f9"


@dataclass
class UIConfig:
    refresh_rate_ms: int = 100
    # Show DEBUG lines (every miss, every needle load)
    verbose: bool = False


@dataclass
class AppConfig:
    """
    Everything bundled together. Use load_config() rather than building
    this by hand.
    """
    display: DisplayConfig = field(default_factory=DisplayConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    pointer: PointerConfig = field(default_factory=PointerConfig)
    ocr: OcrConfig = field(default_factory=OcrConfig)
    needles: NeedlesConfig = field(default_factory=NeedlesConfig)
    script: ScriptConfig = field(default_factory=ScriptConfig)
    hotkeys: HotkeysConfig = field(default_factory=HotkeysConfig)
    ui: UIConfig = field(default_factory=UIConfig)


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIG LOADER
# ═══════════════════════════════════════════════════════════════════════════════

def _get(data: dict, *keys, default=None):
    """Drill into nested dicts without KeyError explosions."""
    for key in keys:
        if not isinstance(data, dict):
            return default
        data = data.get(key)
        if data is None:
            return default
    return data


def _region(value) -> Optional[Tuple[int, int, int, int]]:
    if not value:
        return None
    if len(value) != 4:
        raise ConfigError(f"Region needs [x, y, w, h], got {value!r}")
    x, y, w, h = (int(v) for v in value)
    return x, y, w, h


def _pairs(value) -> List[Tuple[int, int]]:
    pairs = []
    for item in value or []:
        if len(item) != 2:
            raise ConfigError(f"Tile needs [column, row], got {item!r}")
        pairs.append((int(item[0]), int(item[1])))
    return pairs


def load_config(path: str = "config.yaml") -> AppConfig:
    """
    Load config from YAML. Missing file = all defaults. Missing keys = defaults.
    Broken YAML or bad values = ConfigError.
    """
    config_path = Path(path)

    if not config_path.exists():
        return AppConfig()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")

    d = AppConfig()

    try:
        cfg = AppConfig(
            display=DisplayConfig(
                monitor=_get(data, "display", "monitor", default=d.display.monitor),
                scale_factor=_get(data, "display", "scale_factor", default=d.display.scale_factor)
            ),
            matching=MatchingConfig(
                confidence_threshold=_get(data, "matching", "confidence_threshold", default=d.matching.confidence_threshold),
                anchor_threshold=_get(data, "matching", "anchor_threshold", default=d.matching.anchor_threshold),
                method=_get(data, "matching", "method", default=d.matching.method),
                debug_mode=_get(data, "matching", "debug_mode", default=d.matching.debug_mode)
            ),
            timing=TimingConfig(
                action_delay_ms=_get(data, "timing", "action_delay_ms", default=d.timing.action_delay_ms),
                click_settle_ms=_get(data, "timing", "click_settle_ms", default=d.timing.click_settle_ms),
                poll_interval=_get(data, "timing", "poll_interval", default=d.timing.poll_interval),
                action_attempts=_get(data, "timing", "action_attempts", default=d.timing.action_attempts),
                capture_retries=_get(data, "timing", "capture_retries", default=d.timing.capture_retries),
                capture_backoff=_get(data, "timing", "capture_backoff", default=d.timing.capture_backoff),
                anchor_attempts=_get(data, "timing", "anchor_attempts", default=d.timing.anchor_attempts),
                anchor_interval=_get(data, "timing", "anchor_interval", default=d.timing.anchor_interval)
            ),
            pointer=PointerConfig(
                failsafe=_get(data, "pointer", "failsafe", default=d.pointer.failsafe),
                clicks_per_tile=_get(data, "pointer", "clicks_per_tile", default=d.pointer.clicks_per_tile)
            ),
            ocr=OcrConfig(
                enabled=_get(data, "ocr", "enabled", default=d.ocr.enabled),
                tesseract_cmd=_get(data, "ocr", "tesseract_cmd", default=d.ocr.tesseract_cmd),
                upscale=_get(data, "ocr", "upscale", default=d.ocr.upscale),
                binarize_threshold=_get(data, "ocr", "binarize_threshold", default=d.ocr.binarize_threshold),
                coins_region=_region(_get(data, "ocr", "coins_region"))
            ),
            needles=NeedlesConfig(
                directory=_get(data, "needles", "directory", default=d.needles.directory),
                next_frame=_get(data, "needles", "next_frame", default=d.needles.next_frame),
                map=_get(data, "needles", "map", default=d.needles.map),
                tile=_get(data, "needles", "tile", default=d.needles.tile),
                coins=_get(data, "needles", "coins", default=d.needles.coins),
                load_workers=_get(data, "needles", "load_workers", default=d.needles.load_workers)
            ),
            script=ScriptConfig(
                tiles=_pairs(_get(data, "script", "tiles")),
                actions=list(_get(data, "script", "actions", default=[])),
                frame_batches=_get(data, "script", "frame_batches", default=d.script.frame_batches),
                frames_per_batch=_get(data, "script", "frames_per_batch", default=d.script.frames_per_batch)
            ),
            hotkeys=HotkeysConfig(
                stop_bot=_get(data, "hotkeys", "stop_bot", default=d.hotkeys.stop_bot),
                pause_bot=_get(data, "hotkeys", "pause_bot", default=d.hotkeys.pause_bot)
            ),
            ui=UIConfig(
                refresh_rate_ms=_get(data, "ui", "refresh_rate_ms", default=d.ui.refresh_rate_ms),
                verbose=_get(data, "ui", "verbose", default=d.ui.verbose)
            )
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{config_path}: {e}") from e

    validate_config(cfg)
    return cfg


def _is_int(value) -> bool:
    # YAML gives bools for yes/no, which are ints to isinstance
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(cfg: AppConfig) -> None:
    """Catch the obviously broken stuff before it turns into weird clicks."""
    problems = []

    for name in ("confidence_threshold", "anchor_threshold"):
        v = getattr(cfg.matching, name)
        if not isinstance(v, (int, float)) or not 0.0 <= v <= 1.0:
            problems.append(f"matching.{name} must be within [0, 1], got {v!r}")

    scale = cfg.display.scale_factor
    if isinstance(scale, str):
        if scale.lower() != "auto":
            problems.append(f"display.scale_factor must be a number or 'auto', got {scale!r}")
    elif not isinstance(scale, (int, float)) or not math.isfinite(scale) or scale <= 0:
        problems.append(f"display.scale_factor must be positive and finite, got {scale!r}")

    t = cfg.timing
    for name in ("action_delay_ms", "click_settle_ms", "poll_interval", "capture_backoff", "anchor_interval"):
        v = getattr(t, name)
        if not isinstance(v, (int, float)) or v < 0:
            problems.append(f"timing.{name} must be >= 0, got {v!r}")
    if not _is_int(t.capture_retries) or t.capture_retries < 0:
        problems.append(f"timing.capture_retries must be >= 0, got {t.capture_retries!r}")
    if not _is_int(t.anchor_attempts) or t.anchor_attempts < 1:
        problems.append(f"timing.anchor_attempts must be >= 1, got {t.anchor_attempts!r}")
    if not _is_int(t.action_attempts) or t.action_attempts < 1:
        problems.append(f"timing.action_attempts must be >= 1, got {t.action_attempts!r}")

    for name, v, low in (
        ("display.monitor", cfg.display.monitor, 0),
        ("pointer.clicks_per_tile", cfg.pointer.clicks_per_tile, 1),
        ("ocr.upscale", cfg.ocr.upscale, 1),
        ("needles.load_workers", cfg.needles.load_workers, 1),
        ("script.frame_batches", cfg.script.frame_batches, 0),
        ("script.frames_per_batch", cfg.script.frames_per_batch, 1),
    ):
        if not _is_int(v) or v < low:
            problems.append(f"{name} must be an integer >= {low}, got {v!r}")

    if not _is_int(cfg.ocr.binarize_threshold) or not 0 <= cfg.ocr.binarize_threshold <= 255:
        problems.append(f"ocr.binarize_threshold must be an integer within [0, 255], got {cfg.ocr.binarize_threshold!r}")
    method = cfg.matching.method
    if not isinstance(method, str) or method.lower() not in ("ccorr_normed", "ccoeff_normed"):
        problems.append(f"matching.method must be ccorr_normed or ccoeff_normed, got {method!r}")

    if problems:
        raise ConfigError("; ".join(problems))
