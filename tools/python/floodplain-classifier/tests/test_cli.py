"""
Tests for the geo-floodplain command.
"""

from __future__ import annotations

import json

import geopandas as gpd
import pytest
from click.testing import CliRunner

from floodplain_classifier import cli

from conftest import CRS_UTM, SIZE, make_adapter, make_roi, make_samples


@pytest.fixture()
def inputs(tmp_path):
    from shapely.geometry import box

    gpd.GeoDataFrame({"name": ["roi"]}, geometry=[box(0, 0, SIZE, SIZE)], crs=CRS_UTM).to_file(
        tmp_path / "roi.gpkg", driver="GPKG")
    for name, gdf in zip(("water", "land", "humid"), make_samples()):
        gdf.to_file(tmp_path / f"{name}.gpkg", driver="GPKG")
    (tmp_path / "canopy.tif").write_bytes(b"")
    (tmp_path / "config.json").write_text(json.dumps({"crs": CRS_UTM, "resolution_m": 60}))
    return tmp_path


def _args(root, **extra):
    args = [
        "--roi", str(root / "roi.gpkg"),
        "--water", str(root / "water.gpkg"),
        "--land", str(root / "land.gpkg"),
        "--humid", str(root / "humid.gpkg"),
        "--canopy-tif", str(root / "canopy.tif"),
        "--config", str(extra.pop("config", root / "config.json")),
        "--output-dir", str(root / "out"),
    ]
    for key, value in extra.items():
        args += [f"--{key.replace('_', '-')}", str(value)]
    return args


class TestCli:

    def test_missing_required_option(self, tmp_path) -> None:
        result = CliRunner().invoke(cli.main, ["--roi", str(tmp_path / "nope.gpkg")])
        assert result.exit_code == 2

    def test_bad_config_exits_1(self, inputs) -> None:
        bad = inputs / "bad.json"
        bad.write_text("{not json")
        result = CliRunner().invoke(cli.main, _args(inputs, config=bad))
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_unknown_config_key_exits_1(self, inputs) -> None:
        bad = inputs / "unknown.json"
        bad.write_text(json.dumps({"crs": CRS_UTM, "colour": "blue"}))
        result = CliRunner().invoke(cli.main, _args(inputs, config=bad))
        assert result.exit_code == 1
        assert "colour" in result.output

    def test_full_run(self, inputs, monkeypatch) -> None:
        seen = {}

        def fake_adapter(canopy_tifs, config):
            seen["tifs"] = canopy_tifs
            seen["config"] = config
            return make_adapter(make_roi())

        monkeypatch.setattr(cli, "build_adapter", fake_adapter)
        result = CliRunner().invoke(cli.main, _args(inputs, high_start="2024-01-05"))
        assert result.exit_code == 0, result.output
        assert "Seasonally flooded: 3.60 ha" in result.output
        assert seen["config"].high_water.start == "2024-01-05"
        assert seen["config"].low_water.start == "2024-07-01"
        assert len(seen["tifs"]) == 1
        assert (inputs / "out" / "floodplain_classes_high_water.tif").exists()
        assert (inputs / "out" / "floodplain_summary.json").exists()
