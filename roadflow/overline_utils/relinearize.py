"""
relinearize.py

Fuse chains of adjacent atomic segments with equal aggregated values into
longer output polylines.

Linking rule
------------
At a point p, segment s links to segment t when t is the only *other*
segment touching p whose values equal those of s, and s is likewise the only
one for t. In directed mode one of them must also end at p and the other start
at p, and a segment is never linked to its own reverse. A point with three or
more equal-valued segments is therefore a branch point and every branch
becomes its own output route. The rule only looks at
the local neighbourhood of each point, so the result does not depend on the
order in which segments were aggregated.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Sequence, Tuple

import networkx as nx
from shapely.geometry import LineString

from roadflow.constants import DEFAULT_VALUE_REL_TOL
from roadflow.overline_utils.aggregate import SegmentRecord, SegmentRegistry
from roadflow.overline_utils.segments import Point, coords_sort_key, point_sort_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputRoute:
    coords: Tuple[Point, ...]
    values: Dict[str, float] = field(default_factory=dict)
    route_indices: FrozenSet[int] = frozenset()
    n_segments: int = 1

    def to_linestring(self) -> LineString:
        return LineString(self.coords)

    @property
    def sort_key(self):
        lowest = min(self.coords, key=point_sort_key)
        return (point_sort_key(lowest), coords_sort_key(self.coords))


def _is_integral(x) -> bool:
    return isinstance(x, int) or (isinstance(x, float) and x.is_integer())


def _value_equal(x: float, y: float, rel_tol: float) -> bool:
    # integral flows (counts, sums of whole trips) must match exactly
    if _is_integral(x) and _is_integral(y):
        return x == y
    return math.isclose(x, y, rel_tol=rel_tol, abs_tol=0.0)


def _values_equal(a: Sequence[float], b: Sequence[float], rel_tol: float) -> bool:
    return all(_value_equal(x, y, rel_tol) for x, y in zip(a, b))


def _other_end(rec: SegmentRecord, p: Point) -> Point:
    return rec.end if rec.start == p else rec.start


def build_segment_graph(records: Sequence[SegmentRecord]) -> nx.MultiGraph:
    """Points as nodes, one edge per record (edge key = record position)."""
    G = nx.MultiGraph()
    for i, rec in enumerate(records):
        G.add_edge(rec.start, rec.end, key=i)
    return G


def _find_links(
    G: nx.MultiGraph,
    records: Sequence[SegmentRecord],
    values: Sequence[Tuple[float, ...]],
    directed: bool,
    rel_tol: float,
) -> Dict[Tuple[int, Point], int]:
    """Map (segment, point) -> the segment it continues into at that point."""
    links: Dict[Tuple[int, Point], int] = {}
    for p in G.nodes:
        incident = sorted(k for _, _, k in G.edges(p, keys=True))
        if len(incident) < 2:
            continue

        partners: Dict[int, List[int]] = {}
        for s in incident:
            found = []
            for t in incident:
                if t == s or not _values_equal(values[s], values[t], rel_tol):
                    continue
                if directed:
                    rs, rt = records[s], records[t]
                    if not ((rs.end == p and rt.start == p) or (rs.start == p and rt.end == p)):
                        continue
                    # never continue into the reverse of the same segment
                    if _other_end(rs, p) == _other_end(rt, p):
                        continue
                found.append(t)
            partners[s] = found

        for s, found in partners.items():
            if len(found) == 1 and partners[found[0]] == [s]:
                links[(s, p)] = found[0]
    return links


def _orient(pts: List[Point], directed: bool) -> List[Point]:
    is_ring = len(pts) > 2 and pts[0] == pts[-1]
    if is_ring:
        body = pts[:-1]
        k = min(range(len(body)), key=lambda j: point_sort_key(body[j]))
        body = body[k:] + body[:k]
        if not directed and point_sort_key(body[-1]) < point_sort_key(body[1]):
            body = [body[0]] + body[1:][::-1]
        return body + [body[0]]
    if not directed and point_sort_key(pts[-1]) < point_sort_key(pts[0]):
        return pts[::-1]
    return pts


def _make_output(
    chain: Sequence[int],
    pts: List[Point],
    records: Sequence[SegmentRecord],
    first: SegmentRecord,
    directed: bool,
) -> OutputRoute:
    route_indices = set()
    for i in chain:
        route_indices |= records[i].route_indices
    return OutputRoute(
        coords=tuple(_orient(pts, directed)),
        values=first.as_dict(),
        route_indices=frozenset(route_indices),
        n_segments=len(chain),
    )


def relinearize(
    registry: SegmentRegistry,
    value_rel_tol: float = DEFAULT_VALUE_REL_TOL,
) -> List[OutputRoute]:
    """
    Coalesce the finalized registry into maximal equal-valued chains.

    Chains are grown in both directions from the lowest unvisited segment.
    Each chain carries the values of that lowest segment and the union of
    contributing route indices.
    """
    records = registry.records()
    values = [rec.values() for rec in records]
    G = build_segment_graph(records)
    links = _find_links(G, records, values, registry.directed, value_rel_tol)

    visited = set()
    out: List[OutputRoute] = []
    for i, rec in enumerate(records):
        if i in visited:
            continue
        visited.add(i)
        chain = deque([i])
        pts = deque([rec.start, rec.end])

        seg, p = i, rec.end
        while True:
            t = links.get((seg, p))
            if t is None or t in visited:
                break
            visited.add(t)
            chain.append(t)
            p = _other_end(records[t], p)
            pts.append(p)
            seg = t

        seg, p = i, rec.start
        while True:
            t = links.get((seg, p))
            if t is None or t in visited:
                break
            visited.add(t)
            chain.appendleft(t)
            p = _other_end(records[t], p)
            pts.appendleft(p)
            seg = t

        out.append(_make_output(chain, list(pts), records, rec, registry.directed))

    out.sort(key=lambda r: r.sort_key)
    logger.info(
        "Re-linearized %d distinct segments into %d output routes",
        len(records),
        len(out),
    )
    return out


def atomic_routes(registry: SegmentRegistry) -> List[OutputRoute]:
    """One output route per distinct segment, without merging."""
    out = [
        OutputRoute(
            coords=(rec.start, rec.end),
            values=rec.as_dict(),
            route_indices=frozenset(rec.route_indices),
        )
        for rec in registry.records()
    ]
    out.sort(key=lambda r: r.sort_key)
    return out
