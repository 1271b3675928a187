"""Error kinds raised (or recorded) by the overline pipeline."""

from __future__ import annotations

from typing import Any


class OverlineError(Exception):
    """Base exception for all roadflow overline errors."""


class EmptyInputError(OverlineError, ValueError):
    """No routes were supplied and empty input was not allowed."""


class DegenerateRouteError(OverlineError):
    """Route with fewer than two distinct points.

    The pipeline never raises this: degenerate routes are skipped and an
    instance is kept in the diagnostics so callers can locate them.
    """

    def __init__(self, route_index: int, n_points: int = 0) -> None:
        self.route_index = route_index
        self.n_points = n_points
        super().__init__(
            f"Route {route_index} has fewer than 2 distinct points ({n_points} points given)"
        )


class MissingAttributeError(OverlineError, KeyError):
    """A requested attribute column is absent on a route."""

    def __init__(self, route_index: int, column: str) -> None:
        self.route_index = route_index
        self.column = column
        super().__init__(f"Route {route_index} is missing attribute column '{column}'")

    def __str__(self) -> str:
        # KeyError would repr() the message
        return self.args[0]


class InvalidAttributeValueError(OverlineError, ValueError):
    """A requested attribute value cannot be read as a number."""

    def __init__(self, route_index: int, column: str, value: Any) -> None:
        self.route_index = route_index
        self.column = column
        self.value = value
        super().__init__(
            f"Route {route_index} has non-numeric value {value!r} in column '{column}'"
        )


class UnsupportedReductionError(OverlineError, ValueError):
    """Unrecognized reduction kind."""

    def __init__(self, reduction: Any) -> None:
        self.reduction = reduction
        super().__init__(f"Unsupported reduction: {reduction!r}")


class InvalidToleranceError(OverlineError, ValueError):
    """Coordinate tolerance is negative or not a finite number."""

    def __init__(self, tolerance: Any) -> None:
        self.tolerance = tolerance
        super().__init__(f"coordinate_tolerance must be a finite number >= 0, got {tolerance!r}")
