"""
decompose.py

Break routes into tagged atomic segments.

Each route is an ordered coordinate sequence plus a flat mapping of
attribute name -> numeric value. Decomposition is lazy: segments are yielded
one at a time so the aggregator can fold them without materializing every
(route x segment) pair.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from tqdm import tqdm

from roadflow.exceptions import InvalidAttributeValueError, MissingAttributeError
from roadflow.overline_utils.segments import Point, coords_from_geometry, snap_coords

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Route:
    """
    One origin-to-destination geometry with its flow attributes.

    Attributes
    ----------
    coords : tuple of (x, y)
        Ordered vertices. A shapely LineString or any sequence of coordinate
        pairs is accepted and normalized to float tuples.
    attributes : Mapping[str, Any]
        Attribute name -> value (e.g. {"all": 12, "bicycle": 3}).
    """
    coords: Tuple[Point, ...]
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "coords", coords_from_geometry(self.coords))
        object.__setattr__(self, "attributes", dict(self.attributes))

    def values_for(self, columns: Sequence[str], route_index: int) -> Tuple[float, ...]:
        """Read the requested columns as floats, naming the route on failure."""
        out = []
        for col in columns:
            if col not in self.attributes:
                raise MissingAttributeError(route_index, col)
            raw = self.attributes[col]
            if isinstance(raw, bool):
                raise InvalidAttributeValueError(route_index, col, raw)
            try:
                out.append(float(raw))
            except (TypeError, ValueError):
                raise InvalidAttributeValueError(route_index, col, raw) from None
        return tuple(out)


class TaggedSegment(NamedTuple):
    start: Point
    end: Point
    route_index: int
    values: Tuple[float, ...]


@dataclass
class DecompositionStats:
    """Counters collected while decomposing; merged across workers."""
    n_routes: int = 0
    n_segments: int = 0
    n_degenerate_segments: int = 0
    degenerate_routes: List[int] = field(default_factory=list)

    def merge(self, other: "DecompositionStats") -> "DecompositionStats":
        self.n_routes += other.n_routes
        self.n_segments += other.n_segments
        self.n_degenerate_segments += other.n_degenerate_segments
        self.degenerate_routes = sorted(self.degenerate_routes + other.degenerate_routes)
        return self


def decompose_route(
    route: Route,
    route_index: int,
    columns: Sequence[str],
    tolerance: float = 0.0,
    stats: Optional[DecompositionStats] = None,
    values: Optional[Tuple[float, ...]] = None,
) -> Iterator[TaggedSegment]:
    """
    Yield one TaggedSegment per consecutive vertex pair of `route`.

    Zero-length segments (after snapping) are dropped and counted. A route
    that yields no segment at all is recorded as degenerate; that is a
    diagnostic, not an error.

    `values` are the route's already-validated column values; when omitted
    they are read from `route.attributes`.
    """
    if stats is None:
        stats = DecompositionStats()
    stats.n_routes += 1

    if values is None:
        values = route.values_for(columns, route_index)
    emitted = 0

    if len(route.coords) >= 2:
        snapped = snap_coords(route.coords, tolerance)
        prev = snapped[0]
        for cur in snapped[1:]:
            if cur == prev:
                stats.n_degenerate_segments += 1
                continue
            emitted += 1
            yield TaggedSegment(prev, cur, route_index, values)
            prev = cur

    stats.n_segments += emitted
    if emitted == 0:
        logger.debug(
            "Route %d is degenerate (%d points, no distinct consecutive pair); skipping",
            route_index,
            len(route.coords),
        )
        stats.degenerate_routes.append(route_index)


def decompose_routes(
    routes: Iterable[Route],
    columns: Sequence[str],
    tolerance: float = 0.0,
    stats: Optional[DecompositionStats] = None,
    start_index: int = 0,
    quiet: bool = True,
    route_values: Optional[Sequence[Tuple[float, ...]]] = None,
) -> Iterator[TaggedSegment]:
    """
    Lazily decompose every route; indices start at `start_index`.

    `route_values`, if given, holds one validated value tuple per route.
    """
    if stats is None:
        stats = DecompositionStats()
    for i, route in enumerate(tqdm(routes, desc="decomposing routes", disable=quiet)):
        values = route_values[i] if route_values is not None else None
        yield from decompose_route(route, start_index + i, columns, tolerance, stats, values)
