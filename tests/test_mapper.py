import math

import pytest

from needlebot.errors import UnresolvedAnchorError
from needlebot.mapper import (
    LocatedRegion, LogicalPoint, detect_scale, grid_point, region_center, to_logical
)


@pytest.mark.parametrize("p", [(0, 0), (1, 2), (1919, 1079), (333, 77)])
def test_scale_one_is_identity_and_idempotent(p):
    once = to_logical(p, 1)
    assert once.as_tuple() == p
    assert to_logical(once.as_tuple(), 1) == once


@pytest.mark.parametrize("p,s", [(150, 0.5), (171, 0.5), (10, 1.5), (7, 0.0), (99, 2.0), (3, 0.25)])
def test_scaled_point_is_rounded_product(p, s):
    assert to_logical((p, p), s) == LogicalPoint(math.floor(p * s + 0.5), math.floor(p * s + 0.5))


def test_halves_round_up():
    # Python's round(2.5) == 2; pointer coordinates don't do banker's rounding
    assert to_logical((5, 7), 0.5) == LogicalPoint(3, 4)


@pytest.mark.parametrize("s", [-0.5, float("nan"), float("inf")])
def test_bad_scale_rejected(s):
    with pytest.raises(ValueError):
        to_logical((1, 1), s)


def test_region_center():
    r = LocatedRegion(x=50, y=80, width=64, height=64)
    assert region_center(r, 1) == LogicalPoint(82, 112)
    assert region_center(r, 0.5) == LogicalPoint(41, 56)


def test_grid_origin_cell_is_half_a_tile_in():
    anchor = LocatedRegion(100, 100, 40, 40)
    tile = LocatedRegion(0, 0, 20, 20)
    assert grid_point(anchor, tile, 0, 0, 1) == LogicalPoint(110, 110)
    assert grid_point(anchor, tile, 0, 0, 0.5) == LogicalPoint(55, 55)


def test_grid_point_scenario():
    anchor = LocatedRegion(100, 100, 40, 40)
    tile = LocatedRegion(300, 7, 20, 20)
    # pixel (150, 170) -> logical (75, 85)
    assert grid_point(anchor, tile, 2, 3, 0.5) == LogicalPoint(75, 85)


def test_grid_point_uses_tile_size_not_position():
    anchor = LocatedRegion(10, 20, 5, 5)
    tile = LocatedRegion(999, 999, 30, 10)
    assert grid_point(anchor, tile, 1, 1, 1) == LogicalPoint(10 + 45, 20 + 15)


def test_no_bounds_enforced_on_grid():
    anchor = LocatedRegion(0, 0, 10, 10)
    tile = LocatedRegion(0, 0, 10, 10)
    assert grid_point(anchor, tile, 100, 50, 1) == LogicalPoint(1005, 505)


@pytest.mark.parametrize("missing", ["map", "tile"])
def test_grid_point_needs_both_anchors(missing):
    r = LocatedRegion(0, 0, 10, 10)
    anchor, tile = (None, r) if missing == "map" else (r, None)
    with pytest.raises(UnresolvedAnchorError) as exc:
        grid_point(anchor, tile, 0, 0, 1)
    assert exc.value.anchor == missing


def test_detect_scale():
    assert detect_scale(2880, 1440) == 0.5
    assert detect_scale(1920, 1920) == 1.0
    with pytest.raises(ValueError):
        detect_scale(0, 1440)
