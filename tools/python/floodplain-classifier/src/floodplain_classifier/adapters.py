"""
adapters.py
===========
Raster access: the single capability the pipeline needs from a satellite
archive.

``RasterAccessAdapter.query_composite`` takes a ``CompositeRequest``
(collection, attribute filters, date range, reducer, bands), the ROI, a
resolution and a CRS, and returns one reduced ``Raster`` on the reference
grid for that ROI, clipped to the ROI.

Filtering semantics shared by every implementation
--------------------------------------------------
* acquisition date inside the window (start inclusive, end exclusive);
  requests without a window keep every observation;
* observation footprint intersects the ROI;
* every ``PropertyFilter`` matches;
* no observation left -> ``EmptyCompositeError``.

Implementations
---------------
InMemoryAdapter   -- observations held as ``Raster`` objects (tests, synthetic runs)
GeoTiffAdapter    -- observations are GeoTIFF files warped onto the grid
RoutingAdapter    -- dispatches on collection id to other adapters
stac.PlanetaryComputerAdapter -- Microsoft Planetary Computer (see stac.py)
"""

from __future__ import annotations

import logging
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Tuple

import numpy as np
import rasterio
from rasterio.warp import Resampling, reproject
from shapely.geometry import box

from shared.python.exceptions import EmptyCompositeError, InputValidationError
from shared.python.validators import Validators

from .config import TimeWindow
from .raster import Raster, RasterGrid, grid_for_region
from .roi import RegionOfInterest

logger = logging.getLogger("floodplain.adapters")

ReduceOp = Literal["median", "mosaic"]
REDUCE_OPS = ("median", "mosaic")
FILTER_OPS = ("eq", "lt", "lte", "gt", "gte", "contains")


# ---------------------------------------------------------------------------
# Request description
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PropertyFilter:
    """Attribute predicate on observation metadata, e.g. cloud cover < 15."""

    property: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPS:
            raise InputValidationError(
                f"Unsupported filter op '{self.op}'. Use one of: {', '.join(FILTER_OPS)}"
            )

    def matches(self, properties: Mapping[str, Any]) -> bool:
        if self.property not in properties:
            return False
        actual = properties[self.property]
        if actual is None:
            return False
        if self.op == "eq":
            return actual == self.value
        if self.op == "contains":
            return self.value in actual
        if self.op == "lt":
            return actual < self.value
        if self.op == "lte":
            return actual <= self.value
        if self.op == "gt":
            return actual > self.value
        return actual >= self.value

    def __str__(self) -> str:
        return f"{self.property} {self.op} {self.value!r}"


@dataclass(frozen=True)
class CompositeRequest:
    """What to reduce: collection, bands, window, filters and reducer."""

    collection_id: str
    bands: Tuple[str, ...]
    date_range: Optional[TimeWindow] = None
    filters: Tuple[PropertyFilter, ...] = ()
    reduce_op: ReduceOp = "median"

    def __post_init__(self) -> None:
        if self.reduce_op not in REDUCE_OPS:
            raise InputValidationError(
                f"Unsupported reducer '{self.reduce_op}'. Use one of: {', '.join(REDUCE_OPS)}"
            )
        if not self.bands:
            raise InputValidationError(f"No bands requested from '{self.collection_id}'.")
        object.__setattr__(self, "bands", tuple(self.bands))
        object.__setattr__(self, "filters", tuple(self.filters))

    @property
    def window_label(self) -> str:
        return str(self.date_range) if self.date_range is not None else "all dates"

    def accepts(self, acquired: Optional[date], properties: Mapping[str, Any]) -> bool:
        """Date-window and attribute filtering for one observation."""
        if self.date_range is not None:
            if acquired is None or not self.date_range.contains(acquired):
                return False
        return all(f.matches(properties) for f in self.filters)


# ---------------------------------------------------------------------------
# Adapter interface
# ---------------------------------------------------------------------------

class RasterAccessAdapter(ABC):
    """Data-access capability consumed by the composite builder."""

    @abstractmethod
    def query_composite(
        self,
        request: CompositeRequest,
        region: RegionOfInterest,
        resolution: float,
        crs: str,
    ) -> Raster:
        """Return the reduced, ROI-clipped raster for *request*.

        Raises:
            EmptyCompositeError: If no observation passes the filters.
        """


def reduce_observations(stack: np.ndarray, reduce_op: ReduceOp) -> np.ndarray:
    """Reduce a ``(time, band, rows, cols)`` NaN-filled stack over time.

    ``median`` is the NaN-aware per-pixel median; ``mosaic`` keeps the
    first valid value in stack order.  Pixels with no valid observation
    come back as NaN.
    """
    if stack.ndim != 4 or stack.shape[0] == 0:
        raise ValueError(f"Expected a non-empty (time, band, rows, cols) stack, got {stack.shape}.")
    if reduce_op == "median":
        with warnings.catch_warnings():
            # all-NaN slices are expected outside the swath / under clouds
            warnings.simplefilter("ignore", category=RuntimeWarning)
            return np.nanmedian(stack, axis=0).astype(np.float32)
    valid = ~np.isnan(stack)
    first = valid.argmax(axis=0)
    return np.take_along_axis(stack, first[np.newaxis], axis=0)[0].astype(np.float32)


# ---------------------------------------------------------------------------
# Observation-list adapters
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Observation:
    """One scene (or static tile) with its acquisition date and metadata."""

    source: Any
    acquired: Optional[date] = None
    properties: Mapping[str, Any] = field(default_factory=dict)


class _ObservationAdapter(RasterAccessAdapter):
    """Shared filtering / reduction for adapters backed by observation lists."""

    def __init__(self) -> None:
        self._collections: Dict[str, List[Observation]] = {}

    def collections(self) -> List[str]:
        return sorted(self._collections)

    def _register(self, collection_id: str, observation: Observation) -> None:
        self._collections.setdefault(collection_id, []).append(observation)

    # -- hooks ---------------------------------------------------------

    @abstractmethod
    def _footprint(self, obs: Observation, region: RegionOfInterest) -> bool:
        """True when the observation intersects the ROI."""

    @abstractmethod
    def _load(self, obs: Observation, bands: Sequence[str], grid: RasterGrid) -> np.ndarray:
        """Return ``(band, rows, cols)`` float32 values on *grid*, NaN = no data."""

    # -- interface -----------------------------------------------------

    def query_composite(
        self,
        request: CompositeRequest,
        region: RegionOfInterest,
        resolution: float,
        crs: str,
    ) -> Raster:
        candidates = self._collections.get(request.collection_id, [])
        selected = [
            obs for obs in candidates
            if request.accepts(obs.acquired, obs.properties) and self._footprint(obs, region)
        ]
        logger.info(
            "%s: %d of %d observation(s) qualify for %s",
            request.collection_id, len(selected), len(candidates), request.window_label,
        )
        if not selected:
            raise EmptyCompositeError(request.collection_id, request.window_label)

        # acquisition order; static tiles keep registration order
        order = sorted(
            range(len(selected)),
            key=lambda i: (selected[i].acquired or date.min, i),
        )
        grid = grid_for_region(region, resolution, crs)
        stack = np.stack([self._load(selected[i], request.bands, grid) for i in order])
        reduced = reduce_observations(stack, request.reduce_op)

        raster = Raster(
            reduced,
            request.bands,
            grid,
            {"collection": request.collection_id, "observations": len(selected)},
        )
        return raster.clip(region)


class InMemoryAdapter(_ObservationAdapter):
    """Serve composites from ``Raster`` observations held in memory.

    Every registered raster must already be on the reference grid of the
    ROI it will be queried with.

    Example::

        adapter = InMemoryAdapter()
        adapter.add("sentinel-2-l2a", scene, acquired=date(2024, 1, 5),
                    **{"eo:cloud_cover": 3.0})
    """

    def add(
        self,
        collection_id: str,
        raster: Raster,
        acquired: Optional[date] = None,
        **properties: Any,
    ) -> None:
        self._register(collection_id, Observation(raster, acquired, properties))

    def _footprint(self, obs: Observation, region: RegionOfInterest) -> bool:
        grid: RasterGrid = obs.source.grid
        return box(*grid.bounds).intersects(region.geometry_in(grid.crs))

    def _load(self, obs: Observation, bands: Sequence[str], grid: RasterGrid) -> np.ndarray:
        raster: Raster = obs.source
        Validators.assert_grids_match(raster.grid, grid, "observation", "reference grid")
        selected = raster.select(bands).data.astype(np.float32)
        return selected.filled(np.nan)


class GeoTiffAdapter(_ObservationAdapter):
    """Serve composites from GeoTIFF files, warped onto the reference grid.

    Band names come from the file's band descriptions, falling back to
    ``b1``, ``b2``, ... in band order.

    Parameters
    ----------
    resampling:
        ``rasterio.warp.Resampling`` used when warping; bilinear suits the
        continuous elevation / canopy-height surfaces this adapter serves.
    """

    def __init__(self, resampling: Resampling = Resampling.bilinear) -> None:
        super().__init__()
        self.resampling = resampling

    def add(
        self,
        collection_id: str,
        path: str | Path,
        acquired: Optional[date] = None,
        **properties: Any,
    ) -> None:
        path = Path(path)
        Validators.assert_file_exists(path)
        Validators.assert_supported_extension(path, [".tif", ".tiff", ".vrt"])
        self._register(collection_id, Observation(path, acquired, properties))

    @staticmethod
    def band_names(src: rasterio.io.DatasetReader) -> List[str]:
        return [desc or f"b{i + 1}" for i, desc in enumerate(src.descriptions)]

    def _footprint(self, obs: Observation, region: RegionOfInterest) -> bool:
        with rasterio.open(obs.source) as src:
            if src.crs is None:
                return False
            geom = region.geometry_in(src.crs.to_string())
            return box(*src.bounds).intersects(geom)

    def _load(self, obs: Observation, bands: Sequence[str], grid: RasterGrid) -> np.ndarray:
        out = np.full((len(bands), *grid.shape), np.nan, dtype=np.float32)
        with rasterio.open(obs.source) as src:
            names = self.band_names(src)
            Validators.assert_bands_present(names, bands)
            for i, band in enumerate(bands):
                reproject(
                    source=rasterio.band(src, names.index(band) + 1),
                    destination=out[i],
                    src_nodata=src.nodata,
                    dst_transform=grid.transform,
                    dst_crs=grid.crs,
                    dst_nodata=np.nan,
                    resampling=self.resampling,
                )
        return out


class RoutingAdapter(RasterAccessAdapter):
    """Send each request to the adapter registered for its collection id.

    Example::

        adapter = RoutingAdapter(
            {"glad-gedi-canopy-height": tiles},
            default=PlanetaryComputerAdapter(),
        )
    """

    def __init__(
        self,
        routes: Mapping[str, RasterAccessAdapter],
        default: Optional[RasterAccessAdapter] = None,
    ) -> None:
        self.routes = dict(routes)
        self.default = default

    def query_composite(
        self,
        request: CompositeRequest,
        region: RegionOfInterest,
        resolution: float,
        crs: str,
    ) -> Raster:
        adapter = self.routes.get(request.collection_id, self.default)
        if adapter is None:
            raise InputValidationError(
                f"No data source configured for collection '{request.collection_id}'."
            )
        return adapter.query_composite(request, region, resolution, crs)
