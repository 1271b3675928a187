"""geodata.py

GeoDataFrame adapters around `overline`: routes in, flow lines out.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Union

import geopandas as gpd
import pandas as pd
from shapely.geometry import LineString

from roadflow.constants import DEFAULT_REDUCTION, DEFAULT_TOLERANCE
from roadflow.exceptions import MissingAttributeError
from roadflow.overline import OverlineResult, overline
from roadflow.overline_utils.decompose import Route

logger = logging.getLogger(__name__)


def routes_from_gdf(
    gdf: gpd.GeoDataFrame,
    attribute_columns: Union[str, Sequence[str]],
) -> List[Route]:
    """
    Convert LineString rows to Routes carrying `attribute_columns`.

    MultiLineStrings are exploded to one route per part first, so route
    indices refer to positions in the exploded frame. Missing or empty
    geometries become empty (degenerate) routes.

    A column absent from the whole frame raises MissingAttributeError naming
    route 0, the first row that lacks it. An empty frame has no rows to
    check and yields no routes.
    """
    columns = [attribute_columns] if isinstance(attribute_columns, str) else list(attribute_columns)
    if gdf.empty:
        return []
    for col in columns:
        if col not in gdf.columns:
            raise MissingAttributeError(0, col)

    if (gdf.geom_type == "MultiLineString").any():
        n_before = len(gdf)
        gdf = gdf.explode(index_parts=False)
        logger.info("Exploded MultiLineStrings: %d rows -> %d routes", n_before, len(gdf))

    routes: List[Route] = []
    for i, (geom, attrs) in enumerate(zip(gdf.geometry, gdf[columns].to_dict("records"))):
        if geom is None or geom.is_empty:
            coords = ()
        elif isinstance(geom, LineString):
            coords = geom
        else:
            raise TypeError(f"Row {i} has unsupported geometry type {geom.geom_type}")
        attrs = {k: v for k, v in attrs.items() if not pd.isna(v)}
        routes.append(Route(coords, attrs))
    return routes


def result_to_gdf(result: OverlineResult, crs=None) -> gpd.GeoDataFrame:
    """One row per output route: aggregated columns plus LineString geometry."""
    records = [dict(r.values) for r in result.routes]
    geometry = [r.to_linestring() for r in result.routes]
    df = pd.DataFrame.from_records(records, columns=result.columns)
    return gpd.GeoDataFrame(df, geometry=geometry, crs=crs)


def overline_gdf(
    gdf: gpd.GeoDataFrame,
    attrib: Union[str, Sequence[str]],
    fun=DEFAULT_REDUCTION,
    tolerance: float = DEFAULT_TOLERANCE,
    **kwargs,
) -> gpd.GeoDataFrame:
    """
    Overline a GeoDataFrame of route LineStrings.

    Parameters
    ----------
    gdf : GeoDataFrame
        Routes, one per row, all in one CRS.
    attrib : str or sequence of str
        Numeric columns to aggregate.
    fun : str, Reduction or list of them
        Reduction(s) to apply, default 'sum'.
    tolerance : float
        Coordinate quantization grid in CRS units.
    **kwargs
        Forwarded to `overline` (directed, simplify, n_workers, ...).

    Returns
    -------
    GeoDataFrame
        Flow lines in the input CRS.
    """
    routes = routes_from_gdf(gdf, attrib)
    result = overline(routes, attrib, fun, tolerance, **kwargs)
    if result.diagnostics.degenerate_routes:
        logger.warning(
            "overline_gdf: %d degenerate routes skipped (positions %s)",
            len(result.diagnostics.degenerate_routes),
            result.diagnostics.degenerate_route_indices[:10],
        )
    return result_to_gdf(result, crs=gdf.crs)
