"""
stac.py
=======
Query and reduce imagery from Microsoft Planetary Computer via the STAC
API.  No full-scene downloads -- stackstac reads only the window covered
by the reference grid of the ROI.

Collections used by the default configuration
---------------------------------------------
sentinel-1-rtc     -- Sentinel-1 GRD, RTC-processed to gamma0 linear power
sentinel-2-l2a     -- Sentinel-2 Level-2A surface reflectance (0-10000 scale)
cop-dem-glo-30     -- Copernicus GLO-30 Digital Elevation Model (30 m)

Items are filtered by their STAC properties in-process (the same
``PropertyFilter`` semantics as every other adapter), stacked onto the
reference grid, reduced over time, and clipped to the ROI.
"""

from __future__ import annotations

import logging
from typing import Any, List

import numpy as np

try:
    import pystac_client
    import planetary_computer
    import stackstac
except ImportError as e:
    raise ImportError(
        f"Missing dependency: {e}.  "
        "Install with: pip install pystac-client planetary-computer stackstac"
    ) from e

from pyproj import CRS

from shared.python.exceptions import EmptyCompositeError, GridMismatchError

from .adapters import CompositeRequest, RasterAccessAdapter, reduce_observations
from .raster import Raster, grid_for_region
from .roi import RegionOfInterest

logger = logging.getLogger("floodplain.stac")

PLANETARY_COMPUTER_URL = "https://planetarycomputer.microsoft.com/api/stac/v1"


class PlanetaryComputerAdapter(RasterAccessAdapter):
    """Streams composites from the Planetary Computer STAC catalogue.

    Parameters
    ----------
    catalog_url:
        STAC API root.  Defaults to Planetary Computer.
    chunk_size:
        Dask chunk size in pixels for x and y dimensions.  Larger chunks
        are faster for bulk operations; smaller chunks reduce peak memory.
    """

    def __init__(
        self,
        catalog_url: str = PLANETARY_COMPUTER_URL,
        chunk_size: int = 1024,
    ) -> None:
        self.catalog_url = catalog_url
        self.chunk_size = chunk_size

        # Open catalog once; sign_inplace adds SAS tokens to asset hrefs
        self._catalog = pystac_client.Client.open(
            catalog_url,
            modifier=planetary_computer.sign_inplace,
        )

    # ------------------------------------------------------------------
    # Interface
    # ------------------------------------------------------------------

    def query_composite(
        self,
        request: CompositeRequest,
        region: RegionOfInterest,
        resolution: float,
        crs: str,
    ) -> Raster:
        items = self._search(request, region)
        if not items:
            raise EmptyCompositeError(request.collection_id, request.window_label)

        grid = grid_for_region(region, resolution, crs)
        epsg = CRS.from_user_input(grid.crs).to_epsg()
        left, bottom, right, top = grid.bounds

        stack = stackstac.stack(
            items,
            assets=list(request.bands),
            bounds=(left, bottom, right, top),
            snap_bounds=False,
            epsg=epsg,
            resolution=grid.resolution[0],
            dtype="float32",  # type: ignore[arg-type]
            fill_value=np.float32("nan"),  # type: ignore[arg-type]
            rescale=False,   # keep raw linear power / DN values
            chunksize={"x": self.chunk_size, "y": self.chunk_size},  # type: ignore[arg-type]
            sortby_date="asc",
        )
        values = stack.compute(scheduler="synchronous").values.astype(np.float32)

        if values.shape[-2:] != grid.shape:
            raise GridMismatchError(
                request.collection_id, "reference grid",
                f"stacked shape {values.shape[-2:]} != {grid.shape}",
            )

        reduced = reduce_observations(values, request.reduce_op)
        raster = Raster(
            reduced,
            request.bands,
            grid,
            {"collection": request.collection_id, "observations": len(items)},
        )
        return raster.clip(region)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _search(self, request: CompositeRequest, region: RegionOfInterest) -> List[Any]:
        """Search the catalogue and keep the items that pass every filter."""
        window = request.date_range
        datetime_range = f"{window.start}/{window.end}" if window is not None else None
        search = self._catalog.search(
            collections=[request.collection_id],
            bbox=region.bbox_wgs84,
            datetime=datetime_range,
        )
        items = self.filter_items(search.items(), request)
        logger.info(
            "Found %d %s item(s) for %s", len(items), request.collection_id, request.window_label,
        )
        return items

    @staticmethod
    def filter_items(items, request: CompositeRequest) -> List[Any]:
        """Apply date and property filters to STAC items.

        STAC datetime searches are end-inclusive, so the window end is
        re-checked here to keep the end-exclusive contract.
        """
        kept = []
        for item in items:
            acquired = item.datetime.date() if item.datetime is not None else None
            if request.accepts(acquired, item.properties):
                kept.append(item)
        return kept
