"""
training.py
===========
Training sample assembly.

Three unlabeled geometry sets (water, land, humid) are tagged with their
class code and merged into one sample set; the high-water feature stack is
then sampled at every geometry to produce the training table.

Sampling rules
--------------
* Point    -> the pixel containing the point.
* Polygon  -> per-band mean of the pixels whose centres fall inside the
              polygon and are valid in every band.  Polygons smaller than
              a pixel fall back to the pixel under their representative
              point.  With ``per_pixel=True`` each valid pixel becomes its
              own row instead.

Samples fully outside the ROI / grid, samples whose features are masked,
and geometries tagged with two different classes are excluded, counted in
the ``SampleReport`` and logged -- never written as rows with gaps.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely
from rasterio.features import geometry_mask
from rasterio.transform import Affine, rowcol
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from shared.python.exceptions import InputValidationError, TrainingSampleError
from shared.python.validators import Validators

from .config import CLASS_CODES, CLASS_NAMES, HUMID, LAND, WATER
from .raster import Raster
from .roi import RegionOfInterest

logger = logging.getLogger("floodplain.training")

CLASS_LABEL = "class"
SAMPLE_ID = "sample_id"
CONFLICT_FLAG = "conflicting"


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SampleReport:
    """How many labeled geometries made it into the training table."""

    total: int
    kept: int
    outside_roi: int = 0
    masked: int = 0
    conflicting: int = 0
    per_class: Dict[int, int] = field(default_factory=dict)

    @property
    def excluded(self) -> int:
        return self.outside_roi + self.masked + self.conflicting

    def __str__(self) -> str:
        classes = ", ".join(f"{CLASS_NAMES.get(c, c)}={n}" for c, n in sorted(self.per_class.items()))
        return (
            f"{self.kept}/{self.total} samples kept ({classes}); excluded: "
            f"outside_roi={self.outside_roi} masked={self.masked} "
            f"conflicting={self.conflicting}"
        )


@dataclass(frozen=True, eq=False)
class TrainingTable:
    """Feature values + class label, one row per sample (or pixel)."""

    frame: pd.DataFrame
    feature_names: Tuple[str, ...]
    report: SampleReport

    @property
    def X(self) -> np.ndarray:
        return self.frame[list(self.feature_names)].to_numpy(dtype=np.float32)

    @property
    def y(self) -> np.ndarray:
        return self.frame[CLASS_LABEL].to_numpy(dtype=np.int64)

    def __len__(self) -> int:
        return len(self.frame)


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------

def _as_geodataframe(
    samples: gpd.GeoDataFrame | gpd.GeoSeries | Sequence[BaseGeometry],
    crs: Optional[str],
    name: str,
) -> gpd.GeoDataFrame:
    if isinstance(samples, gpd.GeoDataFrame):
        gdf = samples[[samples.geometry.name]]
        if samples.geometry.name != "geometry":
            gdf = gdf.rename_geometry("geometry")
    elif isinstance(samples, gpd.GeoSeries):
        gdf = gpd.GeoDataFrame(geometry=samples.reset_index(drop=True))
    else:
        gdf = gpd.GeoDataFrame(geometry=list(samples), crs=crs)
    if gdf.crs is None:
        if crs is None:
            raise InputValidationError(f"The {name} sample set has no CRS.")
        gdf = gdf.set_crs(crs)
    return gdf.reset_index(drop=True)


def merge_labeled_sets(
    water: gpd.GeoDataFrame | gpd.GeoSeries | Sequence[BaseGeometry],
    land: gpd.GeoDataFrame | gpd.GeoSeries | Sequence[BaseGeometry],
    humid: gpd.GeoDataFrame | gpd.GeoSeries | Sequence[BaseGeometry],
    crs: Optional[str] = None,
) -> gpd.GeoDataFrame:
    """Tag each set with its class code and concatenate them.

    Geometries present in more than one set with different tags are kept
    but flagged in the ``conflicting`` column so the table builder can
    exclude and count them.  Same-class duplicates are left as they are.

    Parameters
    ----------
    water, land, humid:
        GeoDataFrames, GeoSeries or plain lists of shapely geometries.
    crs:
        CRS for plain lists, and the CRS of the merged output.  Defaults
        to the CRS of the water set.
    """
    parts: List[gpd.GeoDataFrame] = []
    target_crs = crs
    for name, code, samples in (("water", WATER, water), ("land", LAND, land), ("humid", HUMID, humid)):
        gdf = _as_geodataframe(samples, crs, name)
        if target_crs is None:
            target_crs = gdf.crs
        gdf = gdf.to_crs(target_crs)
        gdf[CLASS_LABEL] = code
        parts.append(gdf)

    merged = gpd.GeoDataFrame(pd.concat(parts, ignore_index=True), geometry="geometry", crs=target_crs)
    merged[SAMPLE_ID] = np.arange(len(merged))

    keys = shapely.to_wkb(shapely.normalize(np.asarray(merged.geometry)))
    classes_per_key = pd.Series(merged[CLASS_LABEL].to_numpy()).groupby(keys).nunique()
    conflicting_keys = set(classes_per_key[classes_per_key > 1].index)
    merged[CONFLICT_FLAG] = [k in conflicting_keys for k in keys]

    logger.info(
        "Merged labeled sets: water=%d land=%d humid=%d (%d conflicting)",
        len(parts[0]), len(parts[1]), len(parts[2]), int(merged[CONFLICT_FLAG].sum()),
    )
    return merged


# ---------------------------------------------------------------------------
# Sampling
# ---------------------------------------------------------------------------

def _pixel_window(geom: BaseGeometry, transform: Affine, shape: Tuple[int, int]):
    """Row/col slice pair covering *geom*, clipped to the grid (or None)."""
    minx, miny, maxx, maxy = geom.bounds
    inv = ~transform
    c0, r0 = inv * (minx, maxy)
    c1, r1 = inv * (maxx, miny)
    row0, row1 = max(0, math.floor(min(r0, r1))), min(shape[0], math.ceil(max(r0, r1)))
    col0, col1 = max(0, math.floor(min(c0, c1))), min(shape[1], math.ceil(max(c0, c1)))
    if row0 >= row1 or col0 >= col1:
        return None
    return slice(row0, row1), slice(col0, col1)


def _pixel_of(point: BaseGeometry, transform: Affine, shape: Tuple[int, int]) -> Optional[Tuple[int, int]]:
    row, col = rowcol(transform, point.x, point.y)
    if 0 <= row < shape[0] and 0 <= col < shape[1]:
        return int(row), int(col)
    return None


def _sample_geometry(
    geom: BaseGeometry,
    stack: Raster,
    per_pixel: bool,
) -> Tuple[str, List[np.ndarray]]:
    """Return ``(status, rows)``; status is ``ok``, ``outside`` or ``masked``."""
    grid = stack.grid
    values = stack.data.data
    valid = stack.valid_mask

    if geom.geom_type == "Point":
        pix = _pixel_of(geom, grid.transform, grid.shape)
        if pix is None:
            return "outside", []
        if not valid[pix]:
            return "masked", []
        return "ok", [values[:, pix[0], pix[1]].astype(np.float64)]

    window = _pixel_window(geom, grid.transform, grid.shape)
    if window is None:
        return "outside", []
    rows, cols = window
    win_transform = grid.transform * Affine.translation(cols.start, rows.start)
    out_shape = (rows.stop - rows.start, cols.stop - cols.start)
    inside = geometry_mask([mapping(geom)], out_shape=out_shape, transform=win_transform, invert=True)

    if not inside.any():
        # smaller than a pixel: use the pixel under the representative point
        pix = _pixel_of(geom.representative_point(), grid.transform, grid.shape)
        if pix is None:
            return "outside", []
        if not valid[pix]:
            return "masked", []
        return "ok", [values[:, pix[0], pix[1]].astype(np.float64)]

    usable = inside & valid[rows, cols]
    if not usable.any():
        return "masked", []
    pixels = values[:, rows, cols][:, usable].astype(np.float64)   # (bands, n)
    if per_pixel:
        return "ok", list(pixels.T)
    return "ok", [pixels.mean(axis=1)]


def build_training_table(
    stack: Raster,
    samples: gpd.GeoDataFrame,
    roi: Optional[RegionOfInterest] = None,
    per_pixel: bool = False,
    require_all_classes: bool = True,
) -> TrainingTable:
    """Sample *stack* at every labeled geometry.

    Parameters
    ----------
    stack:
        Feature stack to sample (the high-water stack in the pipeline).
    samples:
        Output of :func:`merge_labeled_sets` (needs a ``class`` column).
    roi:
        When given, geometries that do not intersect it count as
        ``outside_roi`` even if they fall inside the grid.
    per_pixel:
        Emit one row per valid covered pixel instead of one per geometry.
    require_all_classes:
        Raise when land, water or humid ends up with no samples.

    Raises
    ------
    TrainingSampleError
        If no sample survives, or a class is missing while
        *require_all_classes* is set.
    """
    Validators.assert_columns_exist(samples, [CLASS_LABEL])
    if samples.crs is not None:
        samples = samples.to_crs(stack.grid.crs)
    roi_geom = roi.geometry_in(stack.grid.crs) if roi is not None else None
    conflicting_flags = (
        samples[CONFLICT_FLAG].to_numpy() if CONFLICT_FLAG in samples.columns
        else np.zeros(len(samples), dtype=bool)
    )
    sample_ids = (
        samples[SAMPLE_ID].to_numpy() if SAMPLE_ID in samples.columns
        else np.arange(len(samples))
    )

    records: List[Dict] = []
    counts = {"outside": 0, "masked": 0, "conflicting": 0}
    per_class: Dict[int, int] = {c: 0 for c in CLASS_CODES}

    for geom, label, conflicting, sid in zip(
        samples.geometry, samples[CLASS_LABEL], conflicting_flags, sample_ids,
    ):
        if conflicting:
            counts["conflicting"] += 1
            continue
        if geom is None or geom.is_empty:
            counts["masked"] += 1
            continue
        if roi_geom is not None and not geom.intersects(roi_geom):
            counts["outside"] += 1
            continue

        status, rows = _sample_geometry(geom, stack, per_pixel)
        if status != "ok":
            counts[status] += 1
            continue
        label = int(label)
        per_class[label] = per_class.get(label, 0) + 1
        for row in rows:
            record = dict(zip(stack.band_names, row))
            record[CLASS_LABEL] = label
            record[SAMPLE_ID] = int(sid)
            records.append(record)

    report = SampleReport(
        total=len(samples),
        kept=sum(per_class.values()),
        outside_roi=counts["outside"],
        masked=counts["masked"],
        conflicting=counts["conflicting"],
        per_class=per_class,
    )
    if report.excluded:
        logger.warning("Training samples excluded: %s", report)
    else:
        logger.info("Training samples: %s", report)

    if not records:
        raise TrainingSampleError(f"No usable training samples: {report}")
    missing = [CLASS_NAMES[c] for c in CLASS_CODES if per_class.get(c, 0) == 0]
    if missing and require_all_classes:
        raise TrainingSampleError(
            f"No usable training samples for class(es) {', '.join(missing)}: {report}"
        )

    columns = [*stack.band_names, CLASS_LABEL, SAMPLE_ID]
    frame = pd.DataFrame.from_records(records, columns=columns)
    frame[CLASS_LABEL] = frame[CLASS_LABEL].astype(np.int64)
    return TrainingTable(frame=frame, feature_names=tuple(stack.band_names), report=report)
