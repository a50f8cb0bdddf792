"""
Shared synthetic floodplain scene for the test suite.

A 600 m x 600 m ROI in UTM zone 20S on a 60 m grid gives a 10 x 10 pixel
reference grid where every pixel covers exactly 0.36 ha.  Each class has a
fixed spectral prototype, so a Random Forest separates them perfectly and
expected maps can be written down by hand:

    high water   cols 0-2 water | cols 3-6 land | cols 7-9 humid
    low water    cols 0-1 water | cols 2-3 humid | cols 4-9 land

Elevation and canopy height are flat, so only the seasonal layers carry
class information.  No network access is needed.
"""

from __future__ import annotations

from datetime import date

import geopandas as gpd
import numpy as np
import pytest
from shapely.geometry import Point

from floodplain_classifier.adapters import InMemoryAdapter
from floodplain_classifier.config import HUMID, LAND, WATER, PipelineConfig
from floodplain_classifier.raster import Raster, grid_for_region
from floodplain_classifier.roi import RegionBuilder

CRS_UTM = "EPSG:32720"
SIZE = 600.0
RES = 60.0
PIXEL_HA = 0.36

# VH, then B02, B03, B04, B08
PROTOTYPES = {
    WATER: {"vh": 0.005, "B02": 0.05, "B03": 0.06, "B04": 0.04, "B08": 0.02},
    LAND: {"vh": 0.050, "B02": 0.04, "B03": 0.07, "B04": 0.06, "B08": 0.35},
    HUMID: {"vh": 0.020, "B02": 0.05, "B03": 0.08, "B04": 0.05, "B08": 0.15},
}
ELEVATION_M = 15.0
CANOPY_M = 5.0


def high_water_layout() -> np.ndarray:
    layout = np.full((10, 10), LAND, dtype=np.uint8)
    layout[:, 0:3] = WATER
    layout[:, 7:10] = HUMID
    return layout


def low_water_layout() -> np.ndarray:
    layout = np.full((10, 10), LAND, dtype=np.uint8)
    layout[:, 0:2] = WATER
    layout[:, 2:4] = HUMID
    return layout


def pixel_centre(row: int, col: int) -> Point:
    return Point(col * RES + RES / 2, SIZE - (row * RES + RES / 2))


def band_from_layout(layout: np.ndarray, band: str, scale: float = 1.0) -> np.ndarray:
    out = np.zeros(layout.shape, dtype=np.float32)
    for code, values in PROTOTYPES.items():
        out[layout == code] = values[band] * scale
    return out


def make_roi():
    return RegionBuilder.from_bbox(0.0, 0.0, SIZE, SIZE, crs=CRS_UTM)


def make_config(**overrides) -> PipelineConfig:
    return PipelineConfig(crs=CRS_UTM, resolution_m=RES, **overrides)


def make_adapter(roi, masked_pixel=None) -> InMemoryAdapter:
    """In-memory archive holding qualifying and non-qualifying scenes.

    ``masked_pixel`` (row, col) is set to NaN in every high-water radar
    scene so the high-water stack is masked there.
    """
    grid = grid_for_region(roi, RES, CRS_UTM)
    adapter = InMemoryAdapter()
    radar_props = {
        "sar:instrument_mode": "IW",
        "sar:polarizations": ["VV", "VH"],
        "sat:orbit_state": "descending",
    }
    windows = (
        (high_water_layout(), (date(2024, 1, 10), date(2024, 2, 10)), masked_pixel),
        (low_water_layout(), (date(2024, 7, 10), date(2024, 8, 10)), None),
    )
    for layout, days, hole in windows:
        for day, scale in zip(days, (0.8, 1.2)):
            vh = band_from_layout(layout, "vh", scale)
            if hole is not None:
                vh[hole] = np.nan
            adapter.add("sentinel-1-rtc", Raster.from_bands({"vh": vh}, grid), day, **radar_props)
            optical = {b: band_from_layout(layout, b) for b in ("B02", "B03", "B04", "B08")}
            adapter.add("sentinel-2-l2a", Raster.from_bands(optical, grid), day,
                        **{"eo:cloud_cover": 5.0})

        # scenes that every filter must reject
        junk_vh = np.full((10, 10), 99.0, dtype=np.float32)
        adapter.add("sentinel-1-rtc", Raster.from_bands({"vh": junk_vh}, grid), days[0],
                    **{**radar_props, "sat:orbit_state": "ascending"})
        junk_optical = {b: np.full((10, 10), 0.9, dtype=np.float32) for b in ("B02", "B03", "B04", "B08")}
        adapter.add("sentinel-2-l2a", Raster.from_bands(junk_optical, grid), days[1],
                    **{"eo:cloud_cover": 80.0})

    adapter.add("cop-dem-glo-30",
                Raster.from_bands({"data": np.full((10, 10), ELEVATION_M, np.float32)}, grid))
    adapter.add("glad-gedi-canopy-height",
                Raster.from_bands({"b1": np.full((10, 10), CANOPY_M, np.float32)}, grid))
    return adapter


def make_samples():
    """10 water, 15 land and 5 humid points at pixel centres (high water)."""
    water = [pixel_centre(r, 1) for r in range(10)]
    land = [pixel_centre(r, 4) for r in range(10)] + [pixel_centre(r, 5) for r in range(5)]
    humid = [pixel_centre(r, 8) for r in range(5)]
    as_gdf = lambda pts: gpd.GeoDataFrame(geometry=pts, crs=CRS_UTM)  # noqa: E731
    return as_gdf(water), as_gdf(land), as_gdf(humid)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def roi():
    return make_roi()


@pytest.fixture()
def config() -> PipelineConfig:
    return make_config()


@pytest.fixture()
def adapter(roi) -> InMemoryAdapter:
    return make_adapter(roi)


@pytest.fixture()
def samples():
    return make_samples()
