"""
Tests for raster and vector area accounting.
"""

from __future__ import annotations

import logging

import geopandas as gpd
import numpy as np
import pytest
from rasterio.transform import Affine
from shapely.geometry import box

from floodplain_classifier.area import (
    RASTER_METHOD,
    VECTOR_METHOD,
    AreaRecord,
    area_by_raster,
    area_by_vector,
    area_table,
    pixel_area_m2,
    raster_area_records,
    reconcile,
    relative_difference,
    vector_area_records,
)
from floodplain_classifier.classifier import CLASS_BAND, ClassifiedRaster
from floodplain_classifier.config import HUMID, LAND, WATER
from floodplain_classifier.raster import Raster, RasterGrid
from floodplain_classifier.vectorize import vectorize_classes


def _utm_grid(rows: int = 4, cols: int = 4) -> RasterGrid:
    return RasterGrid(Affine(60.0, 0.0, 500000.0, 0.0, -60.0, 7000000.0), cols, rows, "EPSG:32720")


def _geo_grid() -> RasterGrid:
    # 1-degree cells from the equator to 60 degrees north
    return RasterGrid(Affine(1.0, 0.0, 0.0, 0.0, -1.0, 60.0), 2, 60, "EPSG:4326")


class TestPixelArea:

    def test_projected_is_constant(self) -> None:
        areas = pixel_area_m2(_utm_grid())
        assert areas.shape == (4, 4)
        assert np.allclose(areas, 3600.0)

    def test_geographic_shrinks_poleward(self) -> None:
        areas = pixel_area_m2(_geo_grid())
        assert areas.shape == (60, 2)
        # row 0 is the northernmost row
        assert areas[0, 0] < areas[-1, 0]
        assert np.all(np.diff(areas[:, 0]) > 0)
        assert np.array_equal(areas[:, 0], areas[:, 1])
        # a 1x1 degree cell at the equator is about 12,300 km2
        assert areas[-1, 0] == pytest.approx(1.23e10, rel=0.01)

    def test_area_by_raster(self) -> None:
        mask = np.zeros((4, 4), bool)
        mask[0, :] = True
        assert area_by_raster(mask, _utm_grid()) == pytest.approx(4 * 0.36)


class TestAreaByVector:

    def test_planar(self) -> None:
        gdf = gpd.GeoDataFrame(geometry=[box(0, 0, 100, 100)], crs="EPSG:32720")
        assert area_by_vector(gdf) == pytest.approx(1.0)

    def test_geodesic_matches_raster(self) -> None:
        gdf = gpd.GeoDataFrame(geometry=[box(0, 0, 1, 1)], crs="EPSG:4326")
        raster_ha = pixel_area_m2(_geo_grid())[-1, 0] / 10_000.0
        assert area_by_vector(gdf) == pytest.approx(raster_ha, rel=1e-6)

    def test_empty(self) -> None:
        assert area_by_vector(gpd.GeoDataFrame(geometry=[], crs="EPSG:32720")) == 0.0


class TestRecordsAndReconcile:

    def _classified(self) -> ClassifiedRaster:
        values = np.zeros((4, 4), dtype=np.uint8)
        values[:, 0] = WATER
        values[3, 3] = HUMID
        mask = np.zeros((4, 4), bool)
        mask[0, 3] = True
        data = np.ma.array(values, mask=mask)
        return ClassifiedRaster(Raster(data[np.newaxis], (CLASS_BAND,), _utm_grid()), "m", "high_water")

    def test_raster_records(self) -> None:
        records = {r.class_code: r for r in raster_area_records(self._classified())}
        assert records[WATER].hectares == pytest.approx(4 * 0.36)
        assert records[HUMID].hectares == pytest.approx(0.36)
        # the masked pixel counts towards no class
        assert records[LAND].hectares == pytest.approx(10 * 0.36)
        assert all(r.method == RASTER_METHOD for r in records.values())

    def test_raster_and_vector_agree(self) -> None:
        classified = self._classified()
        records = raster_area_records(classified) + vector_area_records(
            vectorize_classes(classified), classified.period,
        )
        assert reconcile(records) == []
        by_key = {(r.class_code, r.method): r.hectares for r in records}
        for code in (LAND, WATER, HUMID):
            assert by_key[(code, RASTER_METHOD)] == pytest.approx(by_key[(code, VECTOR_METHOD)])

    def test_mismatch_is_reported_and_logged(self, caplog) -> None:
        records = [
            AreaRecord(WATER, "water", "high_water", RASTER_METHOD, 10.0),
            AreaRecord(WATER, "water", "high_water", VECTOR_METHOD, 9.5),
            AreaRecord(LAND, "land", "high_water", RASTER_METHOD, 10.0),
            AreaRecord(LAND, "land", "high_water", VECTOR_METHOD, 9.95),
        ]
        with caplog.at_level(logging.WARNING, logger="floodplain.area"):
            mismatches = reconcile(records, tolerance=0.01)
        assert len(mismatches) == 1
        assert mismatches[0].class_code == WATER
        assert mismatches[0].relative_difference == pytest.approx(0.05)
        assert "water" in caplog.text

    def test_unpaired_records_are_skipped(self) -> None:
        records = [AreaRecord(WATER, "water", "low_water", RASTER_METHOD, 3.0)]
        assert reconcile(records) == []

    def test_relative_difference(self) -> None:
        assert relative_difference(0.0, 0.0) == 0.0
        assert relative_difference(10.0, 5.0) == pytest.approx(0.5)
        assert relative_difference(5.0, 10.0) == pytest.approx(0.5)

    def test_area_table(self) -> None:
        records = raster_area_records(self._classified())
        frame = area_table(records)
        assert list(frame.columns) == ["class_code", "class_name", "period", "method", "hectares"]
        assert len(frame) == 3
        assert area_table(records, periods=["low_water"]).empty
