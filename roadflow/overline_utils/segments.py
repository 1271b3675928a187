"""
segments.py

Points, atomic segments and their canonical keys.

A point is a plain ``(x, y)`` float tuple. An atomic segment is the straight
line between two consecutive route vertices. Its canonical key is the pair of
endpoints sorted lexicographically, so A->B and B->A share one key unless the
caller explicitly asks for directed keys.

Coordinates may be quantized to a grid of size ``tolerance`` before keys are
built (same grid semantics as ``shapely.set_precision``). A tolerance large
enough to merge points that are topologically distinct is a caller error and
is not detected here.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, List, Sequence, Tuple

import numpy as np
from shapely.geometry import LineString

from roadflow.exceptions import InvalidToleranceError

Point = Tuple[float, float]
SegmentKey = Tuple[Point, Point]


def validate_tolerance(tolerance: Any) -> float:
    """Return tolerance as a float, raising InvalidToleranceError if unusable."""
    try:
        tol = float(tolerance)
    except (TypeError, ValueError):
        raise InvalidToleranceError(tolerance) from None
    if not math.isfinite(tol) or tol < 0:
        raise InvalidToleranceError(tolerance)
    return tol


def snap_point(point: Sequence[float], tolerance: float = 0.0) -> Point:
    """Quantize a point to the tolerance grid (no-op when tolerance is 0)."""
    return snap_coords([point], tolerance)[0]


def snap_coords(coords: Sequence[Point], tolerance: float = 0.0) -> List[Point]:
    """Quantize every coordinate to the tolerance grid; -0.0 is normalized to 0.0."""
    if len(coords) == 0:
        return []
    arr = np.asarray(coords, dtype=float)[:, :2]
    if tolerance > 0:
        arr = np.round(arr / tolerance) * tolerance
    arr = arr + 0.0
    return [(x, y) for x, y in arr.tolist()]


def point_sort_key(point: Point) -> Tuple[float, float]:
    """Total order over points: lexicographic on x, then y."""
    return (point[0], point[1])


def segment_key(p: Point, q: Point, directed: bool = False) -> SegmentKey:
    """
    Canonical key for the segment p-q.

    Undirected keys put the lower point first, so ``segment_key(p, q) ==
    segment_key(q, p)``. Directed keys keep traversal order.
    """
    if directed:
        return (p, q)
    if point_sort_key(q) < point_sort_key(p):
        return (q, p)
    return (p, q)


def coords_from_geometry(obj: Any) -> Tuple[Point, ...]:
    """
    Normalize a LineString or a sequence of coordinate pairs to a tuple of
    float (x, y) pairs. Z values are dropped.
    """
    if obj is None:
        return ()
    if isinstance(obj, LineString):
        if obj.is_empty:
            return ()
        return tuple((float(c[0]), float(c[1])) for c in obj.coords)
    return tuple((float(c[0]), float(c[1])) for c in obj)


def coords_sort_key(coords: Iterable[Point]) -> Tuple[Tuple[float, float], ...]:
    """Sort key for a whole coordinate sequence, used for stable output ordering."""
    return tuple(point_sort_key(p) for p in coords)
