"""
End-to-end tests for FloodplainClassifier on the synthetic scene.
"""

from __future__ import annotations

import numpy as np
import pytest

from floodplain_classifier.config import HIGH_WATER, HUMID, LAND, LOW_WATER, WATER
from floodplain_classifier.pipeline import FloodplainClassifier
from floodplain_classifier.roi import RegionBuilder
from shared.python.exceptions import InputValidationError

from conftest import CRS_UTM, PIXEL_HA, SIZE, high_water_layout, low_water_layout, make_adapter, make_config


@pytest.fixture()
def tool(adapter, roi, config, samples):
    water, land, humid = samples
    return FloodplainClassifier(adapter, roi, water, land, humid, config=config)


class TestFloodplainClassifier:

    def test_result_before_run_raises(self, tool) -> None:
        with pytest.raises(RuntimeError):
            _ = tool.result

    def test_class_maps(self, tool) -> None:
        tool.run()
        result = tool.result
        assert np.array_equal(result.smoothed[HIGH_WATER].classes.filled(255), high_water_layout())
        assert np.array_equal(result.smoothed[LOW_WATER].classes.filled(255), low_water_layout())

    def test_one_model_for_both_periods(self, tool) -> None:
        tool.run()
        result = tool.result
        ids = {c.model_id for c in result.classified.values()} | {c.model_id for c in result.smoothed.values()}
        assert ids == {result.model.model_id}

    def test_high_water_areas(self, tool) -> None:
        tool.run()
        result = tool.result
        assert result.hectares(HIGH_WATER, WATER) == pytest.approx(30 * PIXEL_HA)
        assert result.hectares(HIGH_WATER, LAND) == pytest.approx(40 * PIXEL_HA)
        assert result.hectares(HIGH_WATER, HUMID) == pytest.approx(30 * PIXEL_HA)
        for code in (WATER, LAND, HUMID):
            assert result.hectares(HIGH_WATER, code, "vector") == pytest.approx(
                result.hectares(HIGH_WATER, code, "raster"))
        assert result.diagnostics.area_mismatches == []

    def test_low_water_areas_and_change(self, tool) -> None:
        tool.run()
        result = tool.result
        assert result.hectares(LOW_WATER, WATER) == pytest.approx(20 * PIXEL_HA)
        assert result.hectares(LOW_WATER, HUMID) == pytest.approx(20 * PIXEL_HA)
        assert result.hectares(LOW_WATER, LAND) == pytest.approx(60 * PIXEL_HA)
        assert result.seasonally_flooded_ha == pytest.approx(10 * PIXEL_HA)
        assert result.transitions.loc["humid", "land"] == pytest.approx(30 * PIXEL_HA)
        # no vector records for low water
        with pytest.raises(KeyError):
            result.hectares(LOW_WATER, WATER, "vector")

    def test_area_frame(self, tool) -> None:
        tool.run()
        frame = tool.result.area_frame()
        assert len(frame) == 9
        assert set(frame["method"]) == {"raster", "vector"}

    def test_diagnostics(self, tool) -> None:
        tool.run()
        diag = tool.result.diagnostics
        assert diag.sample_report.kept == 30
        assert diag.masked_pixels == {HIGH_WATER: 0, LOW_WATER: 0}
        as_dict = diag.to_dict()
        assert as_dict["samples"]["total"] == 30
        assert as_dict["area_mismatches"] == []

    def test_masked_pixel_reported(self, roi, config, samples, caplog) -> None:
        water, land, humid = samples
        tool = FloodplainClassifier(make_adapter(roi, masked_pixel=(5, 5)), roi,
                                    water, land, humid, config=config)
        with caplog.at_level("WARNING", logger="floodplain.pipeline"):
            tool.run()
        result = tool.result
        assert result.diagnostics.masked_pixels[HIGH_WATER] == 1
        assert result.smoothed[HIGH_WATER].classes.mask[5, 5]
        assert result.hectares(HIGH_WATER, LAND) == pytest.approx(39 * PIXEL_HA)
        assert "unclassified" in caplog.text

    def test_parallel_composites(self, adapter, roi, samples) -> None:
        tool = FloodplainClassifier(adapter, roi, *samples, config=make_config(parallel_composites=True))
        tool.run()
        assert tool.result.hectares(HIGH_WATER, WATER) == pytest.approx(30 * PIXEL_HA)

    def test_empty_sample_set_raises(self, adapter, roi, config, samples) -> None:
        water, land, _ = samples
        tool = FloodplainClassifier(adapter, roi, water, land, humid=[], config=config)
        with pytest.raises(InputValidationError):
            tool.run()

    def test_pixels_outside_roi_are_not_masked_predictions(self, config, samples, caplog) -> None:
        # top-left corner cut off: pixel (0, 0) lies outside the ROI
        roi = RegionBuilder.from_polygon(
            [(0.0, 0.0), (SIZE, 0.0), (SIZE, SIZE), (90.0, SIZE), (0.0, SIZE - 90.0)], crs=CRS_UTM,
        )
        tool = FloodplainClassifier(make_adapter(roi), roi, *samples, config=config)
        with caplog.at_level("WARNING", logger="floodplain.pipeline"):
            tool.run()
        result = tool.result
        assert result.smoothed[HIGH_WATER].classes.mask[0, 0]
        assert result.classified[HIGH_WATER].masked_count == 1
        assert result.diagnostics.masked_pixels == {HIGH_WATER: 0, LOW_WATER: 0}
        assert "unclassified" not in caplog.text
        assert result.hectares(HIGH_WATER, WATER) == pytest.approx(29 * PIXEL_HA)
