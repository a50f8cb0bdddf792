"""
area.py
=======
Class areas, counted two ways, and the check that they agree.

* raster  -- sum of per-pixel ground areas over the pixels of a class
* vector  -- sum of the ground areas of the vectorised class polygons

On geographic grids pixel areas are geodesic: every row gets the area of
one cell on the CRS ellipsoid (``pyproj.Geod``), since cell area shrinks
towards the poles.  Polygon areas on geographic CRSs are geodesic too.
On projected grids both are planar, in CRS units converted to metres.

All areas are reported in hectares.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import geopandas as gpd
import numpy as np
import pandas as pd
from pyproj import CRS

from .classifier import ClassifiedRaster
from .config import CLASS_CODES, CLASS_NAMES
from .raster import RasterGrid

logger = logging.getLogger("floodplain.area")

M2_PER_HECTARE = 10_000.0
RASTER_METHOD = "raster"
VECTOR_METHOD = "vector"


@dataclass(frozen=True)
class AreaRecord:
    """Area of one class in one period by one counting method."""

    class_code: int
    class_name: str
    period: str
    method: str
    hectares: float


@dataclass(frozen=True)
class AreaMismatch:
    """Raster and vector areas of a class disagree beyond the tolerance."""

    class_code: int
    class_name: str
    period: str
    raster_hectares: float
    vector_hectares: float
    relative_difference: float
    tolerance: float

    def __str__(self) -> str:
        return (
            f"{self.period}/{self.class_name}: raster {self.raster_hectares:.2f} ha vs "
            f"vector {self.vector_hectares:.2f} ha "
            f"({self.relative_difference:.2%} > {self.tolerance:.2%})"
        )


# ---------------------------------------------------------------------------
# Unit areas
# ---------------------------------------------------------------------------

def _linear_unit_to_metres(crs: CRS) -> float:
    if not crs.axis_info:
        return 1.0
    factor = crs.axis_info[0].unit_conversion_factor
    return float(factor) if factor else 1.0


def pixel_area_m2(grid: RasterGrid) -> np.ndarray:
    """``(rows, cols)`` array with the ground area of every pixel in m²."""
    crs = CRS.from_user_input(grid.crs)
    t = grid.transform
    if not crs.is_geographic:
        unit = _linear_unit_to_metres(crs)
        return np.full(grid.shape, abs(t.a * t.e) * unit ** 2, dtype=np.float64)

    geod = crs.get_geod()
    x0, x1 = t.c, t.c + t.a
    row_areas = np.empty(grid.height, dtype=np.float64)
    for row in range(grid.height):
        top = t.f + t.e * row
        bottom = top + t.e
        area, _ = geod.polygon_area_perimeter(
            [x0, x1, x1, x0], [top, top, bottom, bottom],
        )
        row_areas[row] = abs(area)
    return np.repeat(row_areas[:, np.newaxis], grid.width, axis=1)


# ---------------------------------------------------------------------------
# Area sums
# ---------------------------------------------------------------------------

def area_by_raster(mask: np.ndarray, grid: RasterGrid) -> float:
    """Hectares covered by the True pixels of *mask*."""
    mask = np.asarray(mask, dtype=bool)
    return float(pixel_area_m2(grid)[mask].sum()) / M2_PER_HECTARE


def area_by_vector(gdf: gpd.GeoDataFrame) -> float:
    """Hectares covered by the polygons of *gdf* (geodesic on lon/lat CRSs)."""
    if gdf.empty:
        return 0.0
    crs = CRS.from_user_input(gdf.crs) if gdf.crs is not None else None
    if crs is not None and crs.is_geographic:
        geod = crs.get_geod()
        total = sum(
            abs(geod.geometry_area_perimeter(g)[0])
            for g in gdf.geometry if g is not None and not g.is_empty
        )
    else:
        unit = _linear_unit_to_metres(crs) if crs is not None else 1.0
        total = float(gdf.geometry.area.sum()) * unit ** 2
    return float(total) / M2_PER_HECTARE


def raster_area_records(classified: ClassifiedRaster) -> List[AreaRecord]:
    """One raster-method record per class for *classified*."""
    areas = pixel_area_m2(classified.grid)
    classes = classified.classes
    valid = ~np.ma.getmaskarray(classes)
    records = []
    for code in CLASS_CODES:
        m2 = float(areas[valid & (classes.data == code)].sum())
        records.append(AreaRecord(code, CLASS_NAMES[code], classified.period,
                                  RASTER_METHOD, m2 / M2_PER_HECTARE))
    return records


def vector_area_records(vectors: Mapping[int, gpd.GeoDataFrame], period: str) -> List[AreaRecord]:
    """One vector-method record per class collection in *vectors*."""
    return [
        AreaRecord(code, CLASS_NAMES.get(code, str(code)), period, VECTOR_METHOD, area_by_vector(gdf))
        for code, gdf in sorted(vectors.items())
    ]


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

def relative_difference(a: float, b: float) -> float:
    """``|a - b| / max(a, b)``; 0 when both are 0."""
    largest = max(abs(a), abs(b))
    return 0.0 if largest == 0 else abs(a - b) / largest


def reconcile(records: Iterable[AreaRecord], tolerance: float = 0.01) -> List[AreaMismatch]:
    """Compare raster and vector areas per (period, class).

    Disagreements beyond *tolerance* are logged as warnings and returned;
    they never stop a run.
    """
    paired: Dict = {}
    for rec in records:
        paired.setdefault((rec.period, rec.class_code), {})[rec.method] = rec

    mismatches = []
    for (period, code), methods in sorted(paired.items()):
        raster = methods.get(RASTER_METHOD)
        vector = methods.get(VECTOR_METHOD)
        if raster is None or vector is None:
            continue
        diff = relative_difference(raster.hectares, vector.hectares)
        if diff > tolerance:
            mismatch = AreaMismatch(code, CLASS_NAMES.get(code, str(code)), period,
                                    raster.hectares, vector.hectares, diff, tolerance)
            logger.warning("Area mismatch %s", mismatch)
            mismatches.append(mismatch)
    if not mismatches:
        logger.info("Raster and vector areas agree within %.2f%%", tolerance * 100)
    return mismatches


def area_table(
    records: Sequence[AreaRecord],
    periods: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Long-format DataFrame of *records*, optionally limited to *periods*."""
    frame = pd.DataFrame([asdict(r) for r in records],
                         columns=["class_code", "class_name", "period", "method", "hectares"])
    if periods is not None:
        frame = frame[frame["period"].isin(list(periods))]
    return frame.reset_index(drop=True)
