"""
composite.py
============
Per-window feature stacks.

For one time window the builder requests

  1.  a Sentinel-1 median (IW mode, VH available, descending pass), VH band
  2.  a Sentinel-2 median (cloud cover under the threshold), B2/B3/B4/B8
  3.  NDWI = (green - nir) / (green + nir), masked where green + nir == 0

and stacks them with elevation and canopy height.  Elevation and canopy
height are mosaics built once per builder and shared by every window, so
both feature stacks carry identical band names, order and grid and differ
only in their radar / optical / NDWI values.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, Optional

import numpy as np

from shared.python.exceptions import EmptyCompositeError
from shared.python.validators import Validators

from .adapters import CompositeRequest, PropertyFilter, RasterAccessAdapter
from .config import PipelineConfig, TimeWindow
from .raster import Raster, grid_for_region, stack_rasters
from .roi import RegionOfInterest

logger = logging.getLogger("floodplain.composite")

RADAR_BAND = "VH"
OPTICAL_BANDS = ("B2", "B3", "B4", "B8")   # blue, green, red, nir
WATER_INDEX_BAND = "NDWI"
ELEVATION_BAND = "elevation"
CANOPY_BAND = "canopy_height"

FEATURE_BANDS = (
    RADAR_BAND,
    *OPTICAL_BANDS,
    WATER_INDEX_BAND,
    ELEVATION_BAND,
    CANOPY_BAND,
)


def normalized_difference(a: np.ndarray, b: np.ndarray) -> np.ma.MaskedArray:
    """``(a - b) / (a + b)`` per pixel.

    Masked where either input is masked or the denominator is zero.
    """
    a_f = np.ma.asarray(a, dtype=np.float32).filled(np.nan)
    b_f = np.ma.asarray(b, dtype=np.float32).filled(np.nan)
    denominator = a_f + b_f
    with np.errstate(invalid="ignore", divide="ignore"):
        nd = np.where(denominator == 0, np.nan, (a_f - b_f) / denominator)
    # negative surface reflectance can push the ratio past +/-1
    with np.errstate(invalid="ignore"):
        out_of_range = int((np.abs(nd) > 1.0).sum())
    if out_of_range:
        logger.warning(
            "Normalized difference: %d pixel(s) outside [-1, 1] clipped (negative reflectance?)",
            out_of_range,
        )
    nd = np.clip(nd, -1.0, 1.0)
    return np.ma.masked_invalid(nd.astype(np.float32))


def water_index(optical: Raster) -> Raster:
    """NDWI band from the green (B3) and near-infrared (B8) bands."""
    ndwi = normalized_difference(optical.band("B3"), optical.band("B8"))
    return Raster(ndwi[np.newaxis], (WATER_INDEX_BAND,), optical.grid)


class CompositeBuilder:
    """Builds feature stacks for arbitrary time windows over one ROI.

    Parameters
    ----------
    adapter:
        Raster access capability (``query_composite``).
    roi:
        Region every request is clipped to.
    config:
        Resolution, CRS, cloud threshold and source collections.
    """

    def __init__(
        self,
        adapter: RasterAccessAdapter,
        roi: RegionOfInterest,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.adapter = adapter
        self.roi = roi
        self.config = config or PipelineConfig()
        self.grid = grid_for_region(roi, self.config.resolution_m, self.config.crs)
        self._static: Optional[Raster] = None
        self._static_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def radar_request(self, window: TimeWindow) -> CompositeRequest:
        src = self.config.sources
        return CompositeRequest(
            collection_id=src.radar_collection,
            bands=(src.radar_band,),
            date_range=window,
            filters=(
                PropertyFilter(src.instrument_mode_property, "eq", src.instrument_mode),
                PropertyFilter(src.polarization_property, "contains", src.polarization),
                PropertyFilter(src.orbit_property, "eq", src.orbit_pass),
            ),
            reduce_op="median",
        )

    def optical_request(self, window: TimeWindow) -> CompositeRequest:
        src = self.config.sources
        return CompositeRequest(
            collection_id=src.optical_collection,
            bands=tuple(src.optical_bands),
            date_range=window,
            filters=(PropertyFilter(src.cloud_property, "lt", self.config.max_cloud_pct),),
            reduce_op="median",
        )

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def _query(self, request: CompositeRequest) -> Raster:
        raster = self.adapter.query_composite(
            request, self.roi, self.config.resolution_m, self.config.crs,
        )
        if raster.is_empty:
            raise EmptyCompositeError(request.collection_id, request.window_label)
        Validators.assert_grids_match(
            raster.grid, self.grid, request.collection_id, "reference grid",
        )
        return raster

    def build_radar(self, window: TimeWindow) -> Raster:
        raster = self._query(self.radar_request(window))
        return raster.rename({self.config.sources.radar_band: RADAR_BAND})

    def build_optical(self, window: TimeWindow) -> Raster:
        request = self.optical_request(window)
        raster = self._query(request)
        logger.info(
            "Sentinel-2 scenes between %s and %s: %s",
            window.start, window.end, raster.attrs.get("observations", "?"),
        )
        return raster.rename(dict(zip(request.bands, OPTICAL_BANDS)))

    def build_static_layers(self) -> Raster:
        """Elevation and canopy-height mosaics, built on first use only."""
        with self._static_lock:
            if self._static is None:
                src = self.config.sources
                dem = self._query(CompositeRequest(
                    collection_id=src.elevation_collection,
                    bands=(src.elevation_band,),
                    reduce_op="mosaic",
                )).rename({src.elevation_band: ELEVATION_BAND})
                canopy = self._query(CompositeRequest(
                    collection_id=src.canopy_collection,
                    bands=(src.canopy_band,),
                    reduce_op="mosaic",
                )).rename({src.canopy_band: CANOPY_BAND})
                self._static = dem.add_bands(canopy)
                logger.debug("Static layers ready: %s", self._static.band_names)
            return self._static

    # ------------------------------------------------------------------
    # Feature stacks
    # ------------------------------------------------------------------

    def build(self, window: TimeWindow) -> Raster:
        """Return the 8-band feature stack for *window*.

        Raises:
            EmptyCompositeError: If radar, optical or a static layer has
                no qualifying observations, or comes back fully masked.
        """
        logger.info("Building composite for %s", window)
        static = self.build_static_layers()
        radar = self.build_radar(window)
        optical = self.build_optical(window)
        ndwi = water_index(optical)

        stack = stack_rasters([
            radar.with_attrs(radar_observations=radar.attrs.get("observations")),
            optical.with_attrs(optical_observations=optical.attrs.get("observations")),
            ndwi,
            static,
        ])
        stack = stack.select(FEATURE_BANDS).with_attrs(window=window.name)
        stack = Raster(stack.data.astype(np.float32), stack.band_names, stack.grid, stack.attrs)
        logger.info(
            "  %s: %d band(s), %dx%d px, %d valid pixel(s)",
            window.name, stack.count, stack.grid.height, stack.grid.width,
            int(stack.valid_mask.sum()),
        )
        return stack

    def build_many(
        self,
        windows: Iterable[TimeWindow],
        parallel: bool = False,
    ) -> Dict[str, Raster]:
        """Build one stack per window, keyed by window name.

        Windows are independent; with ``parallel=True`` they are built on
        a thread pool.  The static layers are built before the pool starts.
        """
        windows = list(windows)
        self.build_static_layers()
        if parallel and len(windows) > 1:
            with ThreadPoolExecutor(max_workers=len(windows)) as pool:
                stacks = list(pool.map(self.build, windows))
        else:
            stacks = [self.build(w) for w in windows]
        return {w.name: s for w, s in zip(windows, stacks)}
