"""
vectorize.py
============
Turn a smoothed class map into polygons.

Connected regions of one class code (8-connectivity) become one polygon
each, built from whole pixel edges -- no simplification -- so the
polygon area equals the area of the pixels it covers.  Masked pixels
never produce polygons.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely
from rasterio.features import rasterize, shapes
from scipy import ndimage
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from shared.python.exceptions import InputValidationError

from .classifier import ClassifiedRaster
from .config import CLASS_CODES, CLASS_NAMES
from .raster import RasterGrid

logger = logging.getLogger("floodplain.vectorize")

VECTOR_COLUMNS = ["class_code", "class_name", "period", "pixel_count", "geometry"]

# 8-connectivity
_EIGHT = np.ones((3, 3), dtype=bool)


def _empty(crs: str) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {c: [] for c in VECTOR_COLUMNS[:-1]},
        geometry=gpd.GeoSeries([], crs=crs),
        crs=crs,
    )


def _repair(geom: BaseGeometry) -> BaseGeometry:
    """Split rings that touch themselves at a pixel corner into valid parts."""
    fixed = shapely.make_valid(geom)
    if fixed.geom_type == "GeometryCollection":
        polygons = [p for p in shapely.get_parts(fixed) if p.geom_type in ("Polygon", "MultiPolygon")]
        fixed = unary_union(polygons)
    return fixed


def vectorize(classified: ClassifiedRaster, class_code: int) -> gpd.GeoDataFrame:
    """Polygons of every connected region of *class_code*.

    Returns a GeoDataFrame in the grid CRS with columns ``class_code``,
    ``class_name``, ``period``, ``pixel_count`` and ``geometry``.
    """
    if class_code not in CLASS_NAMES:
        raise InputValidationError(
            f"Unknown class code {class_code}. Use one of: {list(CLASS_NAMES)}"
        )
    grid = classified.grid
    classes = classified.classes
    binary = (~np.ma.getmaskarray(classes)) & (classes.data == class_code)

    labeled, n_regions = ndimage.label(binary, structure=_EIGHT)
    if n_regions == 0:
        logger.info("%s: no %s pixels to vectorise", classified.period, CLASS_NAMES[class_code])
        return _empty(grid.crs)

    pixel_counts = np.bincount(labeled.ravel())
    parts: Dict[int, List] = {}
    for geojson, value in shapes(
        labeled.astype(np.int32), mask=binary, connectivity=8, transform=grid.transform,
    ):
        parts.setdefault(int(value), []).append(shape(geojson))

    records = []
    for label, geoms in sorted(parts.items()):
        geom = geoms[0] if len(geoms) == 1 else unary_union(geoms)
        if not geom.is_valid:
            geom = _repair(geom)
        records.append({
            "class_code": class_code,
            "class_name": CLASS_NAMES[class_code],
            "period": classified.period,
            "pixel_count": int(pixel_counts[label]),
            "geometry": geom,
        })

    gdf = gpd.GeoDataFrame(records, columns=VECTOR_COLUMNS, geometry="geometry", crs=grid.crs)
    logger.info(
        "%s: %d %s polygon(s) from %d pixel(s)",
        classified.period, len(gdf), CLASS_NAMES[class_code], int(binary.sum()),
    )
    return gdf


def vectorize_classes(
    classified: ClassifiedRaster,
    class_codes: Optional[Iterable[int]] = None,
) -> Dict[int, gpd.GeoDataFrame]:
    """One polygon collection per class code (all three by default)."""
    codes = CLASS_CODES if class_codes is None else tuple(class_codes)
    return {code: vectorize(classified, code) for code in codes}


def merge_class_vectors(vectors: Dict[int, gpd.GeoDataFrame], crs: str) -> gpd.GeoDataFrame:
    """Concatenate per-class collections into one GeoDataFrame."""
    frames = [gdf for gdf in vectors.values() if not gdf.empty]
    if not frames:
        return _empty(crs)
    return gpd.GeoDataFrame(pd.concat(frames, ignore_index=True), geometry="geometry", crs=crs)


def rasterize_polygons(gdf: gpd.GeoDataFrame, grid: RasterGrid) -> np.ndarray:
    """Burn *gdf* polygons onto *grid*; True where a pixel centre is covered."""
    if gdf.empty:
        return np.zeros(grid.shape, dtype=bool)
    if gdf.crs is not None:
        gdf = gdf.to_crs(grid.crs)
    geoms = [(g, 1) for g in gdf.geometry if g is not None and not g.is_empty]
    if not geoms:
        return np.zeros(grid.shape, dtype=bool)
    burned = rasterize(geoms, out_shape=grid.shape, transform=grid.transform, fill=0, dtype=np.uint8)
    return burned.astype(bool)
