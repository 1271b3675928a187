"""overline.py

Network-level flow summary from overlapping route geometries.

`overline(...)` splits every route into atomic segments, folds the requested
attribute columns per distinct segment (sum by default), then re-linearizes
equal-valued runs of adjacent segments into output polylines. The classic
use is turning per-OD-route trip counts into per-stretch-of-road volumes.

Key behaviors
-------------
- Segment identity is undirected by default: two routes traversing the same
  segment in opposite directions contribute to one total. Pass
  ``directed=True`` to keep the directions apart.
- Configuration problems (missing or non-numeric columns, unknown reductions,
  negative tolerance) raise before any aggregation work starts. Degenerate
  routes are skipped and reported in ``OverlineResult.diagnostics``.
- ``n_workers > 1`` decomposes and aggregates contiguous chunks of routes in a
  process pool and merges the partial registries; the result is identical to
  the sequential run.
"""

from __future__ import annotations

import concurrent.futures
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from roadflow.constants import (
    DEFAULT_REDUCTION,
    DEFAULT_TOLERANCE,
    DEFAULT_VALUE_REL_TOL,
    OVERLINE_PARAMS_PATH,
    load_overline_params,
)
from roadflow.exceptions import DegenerateRouteError, EmptyInputError
from roadflow.overline_utils.aggregate import (
    Reduction,
    ReductionSpec,
    SegmentRegistry,
    aggregate_segments,
    output_column_names,
    resolve_reductions,
)
from roadflow.overline_utils.decompose import DecompositionStats, Route, decompose_routes
from roadflow.overline_utils.relinearize import OutputRoute, atomic_routes, relinearize
from roadflow.overline_utils.segments import validate_tolerance

logger = logging.getLogger(__name__)


@dataclass
class OverlineDiagnostics:
    n_routes: int = 0
    n_segments: int = 0
    n_distinct_segments: int = 0
    n_degenerate_segments: int = 0
    n_output_routes: int = 0
    degenerate_routes: List[DegenerateRouteError] = field(default_factory=list)

    @property
    def degenerate_route_indices(self) -> List[int]:
        return [e.route_index for e in self.degenerate_routes]


@dataclass
class OverlineResult:
    routes: List[OutputRoute]
    columns: List[str]
    diagnostics: OverlineDiagnostics

    def __len__(self) -> int:
        return len(self.routes)

    def __iter__(self) -> Iterator[OutputRoute]:
        return iter(self.routes)


@dataclass
class OverlineConfig:
    """
    Recognized overline options.

    Attributes
    ----------
    attribute_columns : Sequence[str]
        Route attributes to aggregate.
    reduction : str, Reduction, or a list of them
        'sum' | 'count' | 'mean' | 'max' | 'min' or any registered reduction.
    coordinate_tolerance : float
        Grid size used to quantize coordinates; 0 means exact matching.
    directed : bool
        Keep opposite traversals of a segment apart.
    simplify : bool
        Merge adjacent equal-valued segments (False returns atomic segments).
    n_workers : int
        Process pool size for decomposition + aggregation.
    value_rel_tol : float
        Relative tolerance for "equal value" during re-linearization.
    """
    attribute_columns: Sequence[str] = ("all",)
    reduction: Union[ReductionSpec, Sequence[ReductionSpec]] = DEFAULT_REDUCTION
    coordinate_tolerance: float = DEFAULT_TOLERANCE
    directed: bool = False
    simplify: bool = True
    n_workers: int = 1
    value_rel_tol: float = DEFAULT_VALUE_REL_TOL

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "OverlineConfig":
        known = set(cls.__dataclass_fields__)
        unknown = set(params) - known
        if unknown:
            raise ValueError(f"Unknown overline parameters: {sorted(unknown)}")
        cfg = cls(**params)
        if isinstance(cfg.attribute_columns, str):
            cfg.attribute_columns = [cfg.attribute_columns]
        return cfg

    @classmethod
    def from_json(cls, path: Union[str, Path] = OVERLINE_PARAMS_PATH) -> "OverlineConfig":
        return cls.from_dict(load_overline_params(path))


# ==============================================================================
# Validation
# ==============================================================================


def _as_route(item: Any) -> Route:
    if isinstance(item, Route):
        return item
    if isinstance(item, tuple) and len(item) == 2:
        return Route(item[0], item[1])
    raise TypeError(f"Expected a Route or a (coords, attributes) pair, got {type(item).__name__}")


def _normalize_columns(attribute_columns: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(attribute_columns, str):
        columns = [attribute_columns]
    else:
        columns = list(attribute_columns)
    if not columns:
        raise ValueError("attribute_columns must name at least one column")
    if len(set(columns)) != len(columns):
        raise ValueError(f"attribute_columns contains duplicates: {columns}")
    return columns


def validate_routes(routes: Sequence[Route], columns: Sequence[str]) -> List[Tuple[float, ...]]:
    """Check every route carries every requested column as a number.

    Returns the validated value tuples, one per route, for decomposition.
    """
    return [route.values_for(columns, i) for i, route in enumerate(routes)]


# ==============================================================================
# Aggregation (sequential and merge-reduce)
# ==============================================================================


def _aggregate_chunk(
    routes: Sequence[Route],
    route_values: Sequence[Tuple[float, ...]],
    columns: Sequence[str],
    reductions: Sequence[Reduction],
    tolerance: float,
    directed: bool,
    start_index: int,
    quiet: bool = True,
) -> Tuple[SegmentRegistry, DecompositionStats]:
    stats = DecompositionStats()
    tagged = decompose_routes(
        routes,
        columns,
        tolerance,
        stats=stats,
        start_index=start_index,
        quiet=quiet,
        route_values=route_values,
    )
    registry = aggregate_segments(tagged, columns, reductions, directed)
    return registry, stats


def _aggregate_parallel(
    routes: Sequence[Route],
    route_values: Sequence[Tuple[float, ...]],
    columns: Sequence[str],
    reductions: Sequence[Reduction],
    tolerance: float,
    directed: bool,
    n_workers: int,
) -> Tuple[SegmentRegistry, DecompositionStats]:
    chunk_size = math.ceil(len(routes) / n_workers)
    starts = list(range(0, len(routes), chunk_size))
    logger.info(
        "Aggregating %d routes in %d chunks across %d worker processes",
        len(routes),
        len(starts),
        n_workers,
    )

    registry = SegmentRegistry(columns, reductions, directed)
    stats = DecompositionStats()
    with concurrent.futures.ProcessPoolExecutor(max_workers=n_workers) as executor:
        futures = [
            executor.submit(
                _aggregate_chunk,
                list(routes[s:s + chunk_size]),
                list(route_values[s:s + chunk_size]),
                list(columns),
                list(reductions),
                tolerance,
                directed,
                s,
            )
            for s in starts
        ]
        # merge in chunk order so provenance and counters are deterministic
        for fut in futures:
            part_registry, part_stats = fut.result()
            registry.merge(part_registry)
            stats.merge(part_stats)
    return registry, stats


# ==============================================================================
# Public API
# ==============================================================================


def overline(
    routes: Sequence[Any],
    attribute_columns: Union[str, Sequence[str]],
    reduction: Union[ReductionSpec, Sequence[ReductionSpec]] = DEFAULT_REDUCTION,
    tolerance: float = DEFAULT_TOLERANCE,
    *,
    directed: bool = False,
    simplify: bool = True,
    n_workers: int = 1,
    value_rel_tol: float = DEFAULT_VALUE_REL_TOL,
    allow_empty: bool = True,
    quiet: bool = True,
) -> OverlineResult:
    """
    Aggregate route attributes over shared segments.

    Parameters
    ----------
    routes : sequence of Route or (coords, attributes) pairs
        Input routes, all in one coordinate reference frame. Route identity is
        the position in this sequence.
    attribute_columns : str or sequence of str
        Attributes to aggregate.
    reduction : str, Reduction, or list of them, default 'sum'
        With several reductions output columns are named ``<col>_<reduction>``.
    tolerance : float, default 0
        Coordinate quantization grid; 0 means exact matching.
    directed : bool, default False
        Treat A->B and B->A as different segments.
    simplify : bool, default True
        Merge adjacent equal-valued segments into longer polylines.
    n_workers : int, default 1
        Worker processes for decomposition + aggregation.
    value_rel_tol : float
        Relative tolerance used to decide that two aggregated values are equal.
    allow_empty : bool, default True
        If False, an empty `routes` raises EmptyInputError.
    quiet : bool, default True
        Hide the tqdm progress bar.

    Returns
    -------
    OverlineResult
        Output routes in deterministic order plus diagnostics.
    """
    # --- configuration checks ---
    tol = validate_tolerance(tolerance)
    reductions = resolve_reductions(reduction)
    columns = _normalize_columns(attribute_columns)
    out_columns = output_column_names(columns, reductions)
    if n_workers < 1:
        raise ValueError(f"n_workers must be >= 1, got {n_workers}")

    routes = [_as_route(r) for r in routes]
    if not routes:
        if not allow_empty:
            raise EmptyInputError("overline called with no routes")
        logger.warning("overline called with no routes; returning an empty result")
        return OverlineResult(routes=[], columns=out_columns, diagnostics=OverlineDiagnostics())

    route_values = validate_routes(routes, columns)

    logger.info(
        "overline: %d routes, columns=%s, reduction=%s, tolerance=%s, directed=%s",
        len(routes),
        columns,
        [r.name for r in reductions],
        tol,
        directed,
    )

    # --- decompose + aggregate ---
    if n_workers > 1 and len(routes) > 1:
        registry, stats = _aggregate_parallel(
            routes, route_values, columns, reductions, tol, directed, n_workers
        )
    else:
        registry, stats = _aggregate_chunk(
            routes, route_values, columns, reductions, tol, directed, 0, quiet
        )

    if stats.degenerate_routes:
        logger.info("overline: skipped %d degenerate routes", len(stats.degenerate_routes))

    # --- merge ---
    if simplify:
        out = relinearize(registry, value_rel_tol)
    else:
        out = atomic_routes(registry)

    diagnostics = OverlineDiagnostics(
        n_routes=stats.n_routes,
        n_segments=stats.n_segments,
        n_distinct_segments=len(registry),
        n_degenerate_segments=stats.n_degenerate_segments,
        n_output_routes=len(out),
        degenerate_routes=[
            DegenerateRouteError(i, len(routes[i].coords)) for i in stats.degenerate_routes
        ],
    )
    logger.info(
        "overline: %d tagged segments -> %d distinct segments -> %d output routes",
        diagnostics.n_segments,
        diagnostics.n_distinct_segments,
        diagnostics.n_output_routes,
    )
    return OverlineResult(routes=out, columns=out_columns, diagnostics=diagnostics)


def overline_with_config(
    routes: Sequence[Any],
    config: Optional[OverlineConfig] = None,
    **kwargs,
) -> OverlineResult:
    """Run `overline` with options taken from an OverlineConfig."""
    if config is None:
        config = OverlineConfig.from_json()
    return overline(
        routes,
        config.attribute_columns,
        config.reduction,
        config.coordinate_tolerance,
        directed=config.directed,
        simplify=config.simplify,
        n_workers=config.n_workers,
        value_rel_tol=config.value_rel_tol,
        **kwargs,
    )
