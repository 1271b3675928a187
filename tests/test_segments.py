import math

import pytest
from shapely.geometry import LineString

from roadflow.exceptions import InvalidToleranceError
from roadflow.overline_utils.segments import (
    coords_from_geometry,
    point_sort_key,
    segment_key,
    snap_coords,
    snap_point,
    validate_tolerance,
)


def test_segment_key_is_order_independent():
    assert segment_key((1.0, 0.0), (0.0, 0.0)) == ((0.0, 0.0), (1.0, 0.0))
    assert segment_key((0.0, 0.0), (1.0, 0.0)) == segment_key((1.0, 0.0), (0.0, 0.0))
    # x ties fall back to y
    assert segment_key((2.0, 5.0), (2.0, -1.0)) == ((2.0, -1.0), (2.0, 5.0))


def test_directed_key_keeps_traversal_order():
    assert segment_key((1.0, 0.0), (0.0, 0.0), directed=True) == ((1.0, 0.0), (0.0, 0.0))
    assert segment_key((1.0, 0.0), (0.0, 0.0), directed=True) != segment_key(
        (0.0, 0.0), (1.0, 0.0), directed=True
    )


def test_point_order_is_lexicographic():
    pts = [(1.0, 0.0), (0.0, 2.0), (0.0, -1.0), (1.0, -3.0)]
    assert sorted(pts, key=point_sort_key) == [(0.0, -1.0), (0.0, 2.0), (1.0, -3.0), (1.0, 0.0)]


def test_snap_point_without_tolerance_is_identity():
    assert snap_point((1.25, 2)) == (1.25, 2.0)


def test_snap_point_quantizes_to_grid():
    assert snap_point((0.26, -0.24), 0.5) == (0.5, 0.0)
    assert snap_point((3.9, 7.1), 1.0) == (4.0, 7.0)


def test_snap_coords_drops_z_and_normalizes_negative_zero():
    out = snap_coords([(0, 0, 5), (1, 1, 5), (-0.0, 2, 5)])
    assert out == [(0.0, 0.0), (1.0, 1.0), (0.0, 2.0)]
    assert math.copysign(1.0, out[2][0]) == 1.0
    assert snap_coords([]) == []


@pytest.mark.parametrize("bad", [-1, -0.001, float("nan"), float("inf"), "abc", None])
def test_validate_tolerance_rejects_bad_values(bad):
    with pytest.raises(InvalidToleranceError) as exc:
        validate_tolerance(bad)
    assert isinstance(exc.value, ValueError)


def test_validate_tolerance_accepts_zero_and_positive():
    assert validate_tolerance(0) == 0.0
    assert validate_tolerance("0.5") == 0.5


def test_coords_from_geometry():
    assert coords_from_geometry(LineString([(0, 0), (1, 1)])) == ((0.0, 0.0), (1.0, 1.0))
    assert coords_from_geometry([[0, 0], [2, 3]]) == ((0.0, 0.0), (2.0, 3.0))
    assert coords_from_geometry(LineString()) == ()
    assert coords_from_geometry(None) == ()
