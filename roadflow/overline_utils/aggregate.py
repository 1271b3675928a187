"""
aggregate.py

Streaming fold of tagged atomic segments into a registry keyed by canonical
segment key.

Reductions are small objects with four hooks:

    seed(value)        -> accumulator for the first contribution
    fold(acc, value)   -> accumulator after one more contribution
    combine(a, b)      -> accumulator merging two partial accumulators
    finalize(acc)      -> value exposed to callers

`combine` is what lets partial registries built over disjoint slices of the
input be merged with the same semantics as a single sequential fold.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union

from roadflow.constants import DEFAULT_REDUCTION
from roadflow.exceptions import UnsupportedReductionError
from roadflow.overline_utils.decompose import TaggedSegment
from roadflow.overline_utils.segments import Point, SegmentKey, segment_key

logger = logging.getLogger(__name__)


# ==============================================================================
# Reductions
# ==============================================================================


class Reduction:
    """Base class for reductions. Subclasses must be picklable for n_workers > 1."""

    name: str = ""

    def seed(self, value: float) -> Any:
        return value

    def fold(self, acc: Any, value: float) -> Any:
        raise NotImplementedError

    def combine(self, a: Any, b: Any) -> Any:
        raise NotImplementedError

    def finalize(self, acc: Any) -> float:
        return acc

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class SumReduction(Reduction):
    name = "sum"

    def fold(self, acc, value):
        return acc + value

    def combine(self, a, b):
        return a + b


class CountReduction(Reduction):
    name = "count"

    def seed(self, value):
        return 1

    def fold(self, acc, value):
        return acc + 1

    def combine(self, a, b):
        return a + b


class MeanReduction(Reduction):
    """Running (sum, n); the mean is only computed at read time."""
    name = "mean"

    def seed(self, value):
        return (value, 1)

    def fold(self, acc, value):
        return (acc[0] + value, acc[1] + 1)

    def combine(self, a, b):
        return (a[0] + b[0], a[1] + b[1])

    def finalize(self, acc):
        return acc[0] / acc[1]


class MaxReduction(Reduction):
    name = "max"

    def fold(self, acc, value):
        return value if value > acc else acc

    def combine(self, a, b):
        return self.fold(a, b)


class MinReduction(Reduction):
    name = "min"

    def fold(self, acc, value):
        return value if value < acc else acc

    def combine(self, a, b):
        return self.fold(a, b)


REDUCTIONS: Dict[str, Reduction] = {
    r.name: r
    for r in (SumReduction(), CountReduction(), MeanReduction(), MaxReduction(), MinReduction())
}

ReductionSpec = Union[str, Reduction]


def register_reduction(name: str, reduction: Reduction, overwrite: bool = False) -> None:
    """Make a custom reduction available by name."""
    if not isinstance(reduction, Reduction):
        raise TypeError("reduction must be a Reduction instance")
    key = name.lower()
    if key in REDUCTIONS and not overwrite:
        raise ValueError(f"Reduction '{key}' is already registered")
    if not reduction.name:
        reduction.name = key
    REDUCTIONS[key] = reduction


def resolve_reduction(spec: ReductionSpec) -> Reduction:
    if isinstance(spec, Reduction):
        if not spec.name:
            raise UnsupportedReductionError(spec)
        return spec
    if isinstance(spec, str) and spec.lower() in REDUCTIONS:
        return REDUCTIONS[spec.lower()]
    raise UnsupportedReductionError(spec)


def resolve_reductions(
    spec: Union[ReductionSpec, Sequence[ReductionSpec], None] = DEFAULT_REDUCTION,
) -> List[Reduction]:
    """Resolve one reduction or a list of them; names must be unique."""
    if spec is None:
        spec = DEFAULT_REDUCTION
    specs = [spec] if isinstance(spec, (str, Reduction)) else list(spec)
    if not specs:
        raise UnsupportedReductionError(spec)
    reductions = [resolve_reduction(s) for s in specs]
    names = [r.name for r in reductions]
    if len(set(names)) != len(names):
        raise UnsupportedReductionError(spec)
    return reductions


def output_column_names(columns: Sequence[str], reductions: Sequence[Reduction]) -> List[str]:
    """`col` for a single reduction, `col_<reduction>` when there are several."""
    if len(reductions) == 1:
        return list(columns)
    return [f"{col}_{r.name}" for col in columns for r in reductions]


# ==============================================================================
# Registry
# ==============================================================================


# (output column, index into the segment's value tuple, reduction)
_Slot = Tuple[str, int, Reduction]


class SegmentRecord:
    """Aggregated state of one distinct atomic segment."""

    __slots__ = ("key", "start", "end", "accumulators", "route_indices", "n_traversals", "_slots")

    def __init__(self, key: SegmentKey, slots: Tuple[_Slot, ...]):
        self.key = key
        self.start: Point = key[0]
        self.end: Point = key[1]
        self.accumulators: List[Any] = []
        self.route_indices: Set[int] = set()
        self.n_traversals = 0
        self._slots = slots

    def values(self) -> Tuple[float, ...]:
        """Finalized values, in output column order."""
        return tuple(red.finalize(acc) for (_, _, red), acc in zip(self._slots, self.accumulators))

    def as_dict(self) -> Dict[str, float]:
        return {name: val for (name, _, _), val in zip(self._slots, self.values())}

    def __repr__(self) -> str:
        return f"SegmentRecord({self.start}->{self.end}, {self.as_dict()}, routes={sorted(self.route_indices)})"


class SegmentRegistry:
    """
    Mapping canonical segment key -> SegmentRecord.

    Bounded by the number of distinct segments. Every registry is an explicit
    object: build one per invocation (or per worker) and merge partials with
    `merge`.
    """

    def __init__(
        self,
        columns: Sequence[str],
        reductions: Union[ReductionSpec, Sequence[ReductionSpec]] = DEFAULT_REDUCTION,
        directed: bool = False,
    ):
        self.columns = list(columns)
        self.reductions = resolve_reductions(reductions)
        self.directed = directed
        names = output_column_names(self.columns, self.reductions)
        pairs = [(ci, r) for ci in range(len(self.columns)) for r in self.reductions]
        self._slots: Tuple[_Slot, ...] = tuple(
            (name, ci, r) for name, (ci, r) in zip(names, pairs)
        )
        self._records: Dict[SegmentKey, SegmentRecord] = {}

    @property
    def output_columns(self) -> List[str]:
        return [name for name, _, _ in self._slots]

    def add(self, seg: TaggedSegment) -> SegmentRecord:
        key = segment_key(seg.start, seg.end, self.directed)
        rec = self._records.get(key)
        if rec is None:
            rec = SegmentRecord(key, self._slots)
            rec.accumulators = [red.seed(seg.values[ci]) for _, ci, red in self._slots]
            self._records[key] = rec
        else:
            rec.accumulators = [
                red.fold(acc, seg.values[ci])
                for (_, ci, red), acc in zip(self._slots, rec.accumulators)
            ]
        rec.route_indices.add(seg.route_index)
        rec.n_traversals += 1
        return rec

    def _check_compatible(self, other: "SegmentRegistry") -> None:
        if (
            other.columns != self.columns
            or [r.name for r in other.reductions] != [r.name for r in self.reductions]
            or other.directed != self.directed
        ):
            raise ValueError("Cannot merge registries built with different columns, reductions or direction")

    def merge(self, other: "SegmentRegistry") -> "SegmentRegistry":
        """Fold another (partial) registry into this one, in place."""
        self._check_compatible(other)
        for key, theirs in other._records.items():
            mine = self._records.get(key)
            if mine is None:
                theirs._slots = self._slots
                self._records[key] = theirs
                continue
            mine.accumulators = [
                red.combine(a, b)
                for (_, _, red), a, b in zip(self._slots, mine.accumulators, theirs.accumulators)
            ]
            mine.route_indices |= theirs.route_indices
            mine.n_traversals += theirs.n_traversals
        return self

    def records(self) -> List[SegmentRecord]:
        """All records in canonical key order."""
        return [self._records[k] for k in sorted(self._records)]

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key) -> bool:
        return key in self._records

    def __getitem__(self, key: SegmentKey) -> SegmentRecord:
        return self._records[key]

    def __iter__(self) -> Iterator[SegmentRecord]:
        return iter(self.records())


def aggregate_segments(
    tagged_segments: Iterable[TaggedSegment],
    columns: Sequence[str],
    reductions: Union[ReductionSpec, Sequence[ReductionSpec]] = DEFAULT_REDUCTION,
    directed: bool = False,
    registry: Optional[SegmentRegistry] = None,
) -> SegmentRegistry:
    """Fold a stream of tagged segments into `registry` (a new one if None)."""
    if registry is None:
        registry = SegmentRegistry(columns, reductions, directed)
    n = 0
    for seg in tagged_segments:
        registry.add(seg)
        n += 1
    logger.debug("Aggregated %d tagged segments into %d distinct segments", n, len(registry))
    return registry
