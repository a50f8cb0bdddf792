"""
Tests for the ROI builders, the reference grid and the Raster container.
"""

from __future__ import annotations

import numpy as np
import pytest
from rasterio.transform import Affine

from floodplain_classifier.raster import Raster, RasterGrid, grid_for_region, stack_rasters
from floodplain_classifier.roi import RegionBuilder
from shared.python.exceptions import (
    BandNotFoundError,
    GridMismatchError,
    InputValidationError,
    RasterError,
)

from conftest import CRS_UTM, make_roi


def _grid(width: int = 4, height: int = 3) -> RasterGrid:
    return RasterGrid(Affine(60.0, 0.0, 0.0, 0.0, -60.0, 180.0), width, height, CRS_UTM)


# ---------------------------------------------------------------------------
# ROI
# ---------------------------------------------------------------------------

class TestRegionBuilder:

    def test_bbox(self) -> None:
        roi = RegionBuilder.from_bbox(0, 0, 600, 600, crs=CRS_UTM)
        assert roi.crs == CRS_UTM
        assert roi.geometry.area == pytest.approx(360_000.0)

    def test_degenerate_bbox_raises(self) -> None:
        with pytest.raises(InputValidationError):
            RegionBuilder.from_bbox(10, 0, 0, 5)

    def test_polygon_is_closed(self) -> None:
        roi = RegionBuilder.from_polygon([(0, 0), (1, 0), (1, 1)])
        assert roi.geometry.is_valid
        assert roi.crs == "EPSG:4326"

    def test_bbox_wgs84_is_southern_hemisphere(self) -> None:
        min_lon, min_lat, max_lon, max_lat = make_roi().bbox_wgs84
        assert min_lon < max_lon
        assert max_lat < 0

    def test_file_round_trip(self, tmp_path) -> None:
        import geopandas as gpd
        from shapely.geometry import box

        path = tmp_path / "roi.gpkg"
        gpd.GeoDataFrame(geometry=[box(0, 0, 300, 300), box(300, 0, 600, 300)], crs=CRS_UTM).to_file(path)
        roi = RegionBuilder.from_file(path)
        # two touching boxes dissolve into one polygon
        assert roi.geometry.geom_type == "Polygon"
        assert roi.geometry.area == pytest.approx(180_000.0)

    def test_unsupported_extension_raises(self, tmp_path) -> None:
        path = tmp_path / "roi.txt"
        path.write_text("nope")
        with pytest.raises(InputValidationError):
            RegionBuilder.from_file(path)


# ---------------------------------------------------------------------------
# Reference grid
# ---------------------------------------------------------------------------

class TestGridForRegion:

    def test_projected_grid(self) -> None:
        grid = grid_for_region(make_roi(), 60.0, CRS_UTM)
        assert grid.shape == (10, 10)
        assert grid.resolution == (60.0, 60.0)
        assert grid.bounds == pytest.approx((0.0, 0.0, 600.0, 600.0))

    def test_bounds_snap_outward(self) -> None:
        roi = RegionBuilder.from_bbox(10, 10, 590, 590, crs=CRS_UTM)
        grid = grid_for_region(roi, 60.0, CRS_UTM)
        assert grid.bounds == pytest.approx((0.0, 0.0, 600.0, 600.0))

    def test_same_inputs_same_grid(self) -> None:
        assert grid_for_region(make_roi(), 60.0, CRS_UTM) == grid_for_region(make_roi(), 60.0, CRS_UTM)

    def test_geographic_resolution_in_degrees(self) -> None:
        grid = grid_for_region(make_roi(), 60.0, "EPSG:4326")
        assert grid.is_geographic
        assert grid.resolution[0] == pytest.approx(60.0 / 111_320.0)

    def test_non_positive_resolution_raises(self) -> None:
        with pytest.raises(RasterError):
            grid_for_region(make_roi(), 0.0, CRS_UTM)


# ---------------------------------------------------------------------------
# Raster container
# ---------------------------------------------------------------------------

class TestRaster:

    def test_nan_becomes_masked(self) -> None:
        data = np.ones((3, 4), dtype=np.float32)
        data[1, 2] = np.nan
        r = Raster(data, ("a",), _grid())
        assert r.data.shape == (1, 3, 4)
        assert r.valid_mask.sum() == 11
        assert not r.valid_mask[1, 2]

    def test_band_count_mismatch_raises(self) -> None:
        with pytest.raises(RasterError):
            Raster(np.ones((2, 3, 4)), ("a",), _grid())

    def test_duplicate_names_raise(self) -> None:
        with pytest.raises(RasterError):
            Raster(np.ones((2, 3, 4)), ("a", "a"), _grid())

    def test_shape_must_match_grid(self) -> None:
        with pytest.raises(RasterError):
            Raster(np.ones((1, 4, 4)), ("a",), _grid())

    def test_select_and_missing_band(self) -> None:
        r = Raster.from_bands({"a": np.zeros((3, 4)), "b": np.ones((3, 4))}, _grid())
        assert r.select(["b"]).band_names == ("b",)
        with pytest.raises(BandNotFoundError):
            r.band("c")

    def test_rename_returns_new_raster(self) -> None:
        r = Raster.from_bands({"a": np.zeros((3, 4))}, _grid())
        renamed = r.rename({"a": "z"})
        assert renamed.band_names == ("z",)
        assert r.band_names == ("a",)

    def test_stack_requires_same_grid(self) -> None:
        a = Raster.from_bands({"a": np.zeros((3, 4))}, _grid())
        b = Raster.from_bands({"b": np.zeros((3, 5))}, _grid(width=5))
        with pytest.raises(GridMismatchError):
            stack_rasters([a, b])

    def test_stack_keeps_order_and_masks(self) -> None:
        a = Raster.from_bands({"a": np.zeros((3, 4))}, _grid())
        b_data = np.ones((3, 4))
        b_data[0, 0] = np.nan
        b = Raster.from_bands({"b": b_data}, _grid())
        stacked = stack_rasters([a, b])
        assert stacked.band_names == ("a", "b")
        assert not stacked.valid_mask[0, 0]
        assert stacked.valid_mask.sum() == 11

    def test_clip_masks_outside_roi(self) -> None:
        grid = grid_for_region(make_roi(), 60.0, CRS_UTM)
        half = RegionBuilder.from_bbox(0, 0, 300, 600, crs=CRS_UTM)
        r = Raster.from_bands({"a": np.ones((10, 10))}, grid).clip(half)
        assert r.valid_mask[:, :5].all()
        assert not r.valid_mask[:, 5:].any()

    def test_is_empty(self) -> None:
        r = Raster(np.full((3, 4), np.nan), ("a",), _grid())
        assert r.is_empty
