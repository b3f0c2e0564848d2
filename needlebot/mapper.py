"""
needlebot/mapper.py - Capture pixels -> logical (pointer) coordinates.

On HiDPI displays the screenshot has more pixels than the pointer space,
so everything found in a capture has to be scaled before clicking.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .errors import UnresolvedAnchorError

Number = Union[int, float]


@dataclass(frozen=True)
class LogicalPoint:
    x: int
    y: int

    def as_tuple(self) -> Tuple[int, int]:
        return self.x, self.y


@dataclass(frozen=True)
class LocatedRegion:
    # A match that cleared the threshold. Capture-pixel space.
    x: int
    y: int
    width: int
    height: int
    score: float = 1.0

    @property
    def origin(self) -> Tuple[int, int]:
        return self.x, self.y

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; pointer coords want 2.5 -> 3
    return int(math.floor(value + 0.5))


def check_scale(scale: Number) -> float:
    scale = float(scale)
    if not math.isfinite(scale) or scale < 0:
        raise ValueError(f"Scale factor must be a finite, non-negative number, got {scale!r}")
    return scale


def to_logical(point: Tuple[Number, Number], scale: Number) -> LogicalPoint:
    s = check_scale(scale)
    x, y = point
    return LogicalPoint(round_half_up(x * s), round_half_up(y * s))


def region_center(region: LocatedRegion, scale: Number) -> LogicalPoint:
    return to_logical(region.center, scale)


def grid_point(
    map_anchor: Optional[LocatedRegion],
    tile_unit: Optional[LocatedRegion],
    column: int,
    row: int,
    scale: Number
) -> LogicalPoint:
    """
    Center of map cell (column, row), zero-based from the map's top-left.

    No bounds check against the map's real extent; the mapper doesn't
    know how many cells the map has.
    """
    if map_anchor is None:
        raise UnresolvedAnchorError("map")
    if tile_unit is None:
        raise UnresolvedAnchorError("tile")

    px = map_anchor.x + tile_unit.width * (column + 0.5)
    py = map_anchor.y + tile_unit.height * (row + 0.5)
    return to_logical((px, py), scale)


def detect_scale(capture_width: int, logical_width: int) -> float:
    """Ratio between pointer space and capture space (0.5 on a 2x Retina)."""
    if capture_width <= 0 or logical_width <= 0:
        raise ValueError(f"Invalid widths: capture={capture_width}, logical={logical_width}")
    return check_scale(logical_width / capture_width)
