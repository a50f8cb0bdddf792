"""
raster.py
=========
In-memory raster containers shared by every pipeline stage.

A ``Raster`` is a stack of named bands held as one ``numpy.ma.MaskedArray``
of shape ``(bands, rows, cols)`` on a single ``RasterGrid``.  Masked
pixels are no-data: clipped away by the ROI, cloud-free median undefined,
zero-denominator index values, or pixels that received no prediction.

Rasters are treated as immutable values -- every operation returns a new
``Raster``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Sequence, Tuple

import numpy as np
from pyproj import CRS
from rasterio.features import geometry_mask
from rasterio.transform import Affine
from shapely.geometry import mapping

from shared.python.exceptions import RasterError
from shared.python.validators import Validators

from .roi import RegionOfInterest

# Nominal ground distance of one degree at the equator, used to turn a
# metre resolution into degrees when the target CRS is geographic.
METRES_PER_DEGREE = 111_320.0


# ---------------------------------------------------------------------------
# Grid geometry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RasterGrid:
    """Pixel grid: north-up affine transform, size and CRS."""

    transform: Affine
    width: int
    height: int
    crs: str

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def resolution(self) -> Tuple[float, float]:
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(left, bottom, right, top) in grid CRS units."""
        t = self.transform
        left, top = t.c, t.f
        right = left + t.a * self.width
        bottom = top + t.e * self.height
        return (left, bottom, right, top)

    @property
    def is_geographic(self) -> bool:
        return CRS.from_user_input(self.crs).is_geographic

    def roi_mask(self, roi: RegionOfInterest) -> np.ndarray:
        """Boolean array, True where the pixel centre lies inside *roi*."""
        geom = roi.geometry_in(self.crs)
        return geometry_mask(
            [mapping(geom)],
            out_shape=self.shape,
            transform=self.transform,
            invert=True,
        )


def grid_for_region(
    roi: RegionOfInterest,
    resolution: float,
    crs: str,
) -> RasterGrid:
    """Return the reference grid covering *roi* at *resolution* metres.

    The ROI bounds (in *crs*) are snapped outward to whole multiples of
    the pixel size, so every request for the same ROI, resolution and
    CRS lands on the same grid.
    """
    if resolution <= 0:
        raise RasterError(f"Resolution must be positive, got {resolution}.")
    Validators.assert_crs_valid(crs)
    crs_obj = CRS.from_user_input(crs)
    res = resolution / METRES_PER_DEGREE if crs_obj.is_geographic else float(resolution)

    minx, miny, maxx, maxy = roi.geometry_in(crs).bounds
    eps = 1e-9
    x0 = math.floor(minx / res + eps) * res
    y1 = math.ceil(maxy / res - eps) * res
    width = max(1, math.ceil((maxx - x0) / res - eps))
    height = max(1, math.ceil((y1 - miny) / res - eps))

    authority = crs_obj.to_authority()
    crs_str = f"{authority[0]}:{authority[1]}" if authority else crs_obj.to_wkt()
    return RasterGrid(
        transform=Affine(res, 0.0, x0, 0.0, -res, y1),
        width=width,
        height=height,
        crs=crs_str,
    )


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Raster:
    """Named bands on one grid, masked where there is no data."""

    # (bands, rows, cols) masked array; NaNs are folded into the mask
    data: np.ma.MaskedArray
    band_names: Tuple[str, ...]
    grid: RasterGrid

    # Free-form provenance (scene counts, collection ids, ...)
    attrs: Mapping = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        arr = self.data
        if not isinstance(arr, np.ma.MaskedArray):
            arr = np.ma.asarray(arr)
        if np.issubdtype(arr.dtype, np.floating):
            arr = np.ma.masked_invalid(arr)
        arr = np.ma.array(arr, mask=np.ma.getmaskarray(arr))
        if arr.ndim == 2:
            arr = arr[np.newaxis, :, :]
        if arr.ndim != 3:
            raise RasterError(f"Raster data must be 3-D (bands, rows, cols), got {arr.ndim}-D.")

        names = tuple(self.band_names)
        if len(names) != arr.shape[0]:
            raise RasterError(
                f"{arr.shape[0]} band(s) in data but {len(names)} band name(s): {names}."
            )
        if len(set(names)) != len(names):
            raise RasterError(f"Duplicate band names: {names}.")
        if arr.shape[1:] != self.grid.shape:
            raise RasterError(
                f"Band shape {arr.shape[1:]} does not match grid {self.grid.shape}."
            )
        object.__setattr__(self, "data", arr)
        object.__setattr__(self, "band_names", names)
        object.__setattr__(self, "attrs", dict(self.attrs))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_bands(
        cls,
        bands: Mapping[str, np.ndarray],
        grid: RasterGrid,
        attrs: Mapping | None = None,
    ) -> "Raster":
        """Build a raster from a ``{name: 2-D array}`` mapping."""
        if not bands:
            raise RasterError("Cannot build a raster with no bands.")
        stacked = np.ma.stack([np.ma.asarray(a) for a in bands.values()])
        return cls(stacked, tuple(bands.keys()), grid, attrs or {})

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def count(self) -> int:
        return len(self.band_names)

    def band(self, name: str) -> np.ma.MaskedArray:
        """Return the 2-D masked array of band *name*."""
        Validators.assert_bands_present(self.band_names, [name])
        return self.data[self.band_names.index(name)]

    @property
    def valid_mask(self) -> np.ndarray:
        """True where every band holds a value."""
        return ~np.ma.getmaskarray(self.data).any(axis=0)

    @property
    def is_empty(self) -> bool:
        """True when no pixel holds a value in any band."""
        return bool(np.ma.getmaskarray(self.data).all())

    # ------------------------------------------------------------------
    # Derivation -- each returns a new Raster
    # ------------------------------------------------------------------

    def select(self, names: Sequence[str]) -> "Raster":
        Validators.assert_bands_present(self.band_names, names)
        idx = [self.band_names.index(n) for n in names]
        return Raster(self.data[idx], tuple(names), self.grid, self.attrs)

    def rename(self, mapping_: Mapping[str, str]) -> "Raster":
        names = tuple(mapping_.get(n, n) for n in self.band_names)
        return Raster(self.data, names, self.grid, self.attrs)

    def add_bands(self, *others: "Raster") -> "Raster":
        """Stack the bands of *others* after this raster's bands."""
        arrays = [self.data]
        names = list(self.band_names)
        attrs: Dict = dict(self.attrs)
        for other in others:
            Validators.assert_grids_match(
                self.grid, other.grid,
                label_a="/".join(self.band_names), label_b="/".join(other.band_names),
            )
            arrays.append(other.data)
            names.extend(other.band_names)
            attrs.update(other.attrs)
        return Raster(np.ma.concatenate(arrays, axis=0), tuple(names), self.grid, attrs)

    def clip(self, roi: RegionOfInterest) -> "Raster":
        """Mask every pixel whose centre lies outside *roi*."""
        outside = ~self.grid.roi_mask(roi)
        mask = np.ma.getmaskarray(self.data) | outside[np.newaxis, :, :]
        return Raster(np.ma.array(self.data.data, mask=mask), self.band_names, self.grid, self.attrs)

    def with_attrs(self, **attrs) -> "Raster":
        return Raster(self.data, self.band_names, self.grid, {**self.attrs, **attrs})


def stack_rasters(rasters: Iterable[Raster]) -> Raster:
    """Concatenate the bands of several same-grid rasters in order."""
    items = list(rasters)
    if not items:
        raise RasterError("Nothing to stack.")
    return items[0].add_bands(*items[1:])
