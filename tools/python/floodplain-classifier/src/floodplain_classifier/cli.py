"""
Floodplain Classifier — CLI Entry Point
========================================
Installed as the ``geo-floodplain`` command via ``pyproject.toml``.

Usage:
    geo-floodplain --roi data/roi.geojson \\
                   --water data/water.geojson --land data/land.geojson \\
                   --humid data/humid.geojson \\
                   --canopy-tif data/canopy_height.tif \\
                   --output-dir output/floodplain
"""

from __future__ import annotations

import dataclasses
import sys
from pathlib import Path
from typing import Optional, Sequence

import click
import geopandas as gpd

from shared.python.exceptions import FloodplainError, InputValidationError
from shared.python.validators import Validators

from .adapters import GeoTiffAdapter, RasterAccessAdapter, RoutingAdapter
from .config import HIGH_WATER, LOW_WATER, PipelineConfig, TimeWindow
from .export import OutputWriter
from .pipeline import FloodplainClassifier
from .roi import VECTOR_EXTENSIONS, RegionBuilder

_FILE = click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path)


def build_adapter(canopy_tifs: Sequence[Path], config: PipelineConfig) -> RasterAccessAdapter:
    """Canopy height from local GeoTIFFs, everything else from Planetary Computer."""
    from .stac import PlanetaryComputerAdapter

    tiles = GeoTiffAdapter()
    for path in canopy_tifs:
        tiles.add(config.sources.canopy_collection, path)
    return RoutingAdapter(
        {config.sources.canopy_collection: tiles},
        default=PlanetaryComputerAdapter(),
    )


def _window(name: str, start: Optional[str], end: Optional[str], current: TimeWindow) -> TimeWindow:
    if start is None and end is None:
        return current
    return TimeWindow(name, start or current.start, end or current.end)


def _read_samples(path: Path, name: str) -> gpd.GeoDataFrame:
    try:
        gdf = gpd.read_file(path)
    except Exception as exc:  # pyogrio / fiona raise driver-specific errors
        raise InputValidationError(f"Cannot read {name} samples from '{path}': {exc}") from exc
    if gdf.empty:
        raise InputValidationError(f"The {name} sample file '{path}' has no features.")
    return gdf


@click.command(
    name="geo-floodplain",
    help="Classify a floodplain into water, land and humid ground at high and low water.",
)
@click.option("--roi", "roi_path", required=True, type=_FILE,
              help="Region of interest (Shapefile, GeoPackage or GeoJSON).")
@click.option("--water", "water_path", required=True, type=_FILE, help="Labeled water geometries.")
@click.option("--land", "land_path", required=True, type=_FILE, help="Labeled land geometries.")
@click.option("--humid", "humid_path", required=True, type=_FILE, help="Labeled humid-ground geometries.")
@click.option("--canopy-tif", "canopy_tifs", required=True, multiple=True, type=_FILE,
              help="Canopy-height GeoTIFF tile; repeat for several tiles.")
@click.option("--config", "config_path", default=None, type=_FILE,
              help="JSON file overriding the default configuration.")
@click.option("--high-start", default=None, help="High-water window start (YYYY-MM-DD).")
@click.option("--high-end", default=None, help="High-water window end, exclusive (YYYY-MM-DD).")
@click.option("--low-start", default=None, help="Low-water window start (YYYY-MM-DD).")
@click.option("--low-end", default=None, help="Low-water window end, exclusive (YYYY-MM-DD).")
@click.option("--resolution", default=None, type=float,
              help="Grid resolution in metres.  [default: 60]")
@click.option("--output-dir", "-o", default="./outputs", show_default=True,
              type=click.Path(file_okay=False, path_type=Path),
              help="Directory for GeoTIFF, GeoJSON, CSV, JSON and PNG outputs.")
@click.option("--study-name", default="floodplain", show_default=True,
              help="Prefix for every output filename.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def main(
    roi_path: Path,
    water_path: Path,
    land_path: Path,
    humid_path: Path,
    canopy_tifs: tuple[Path, ...],
    config_path: Path | None,
    high_start: str | None,
    high_end: str | None,
    low_start: str | None,
    low_end: str | None,
    resolution: float | None,
    output_dir: Path,
    study_name: str,
    verbose: bool,
) -> None:
    """CLI entry point — wires Click options into FloodplainClassifier."""
    try:
        config = PipelineConfig.from_json(config_path) if config_path else PipelineConfig()
        overrides = {
            "high_water": _window(HIGH_WATER, high_start, high_end, config.high_water),
            "low_water": _window(LOW_WATER, low_start, low_end, config.low_water),
        }
        if resolution is not None:
            overrides["resolution_m"] = resolution
        config = dataclasses.replace(config, **overrides)

        for path in (water_path, land_path, humid_path):
            Validators.assert_supported_extension(path, VECTOR_EXTENSIONS)
        roi = RegionBuilder.from_file(roi_path)
        RegionBuilder.summarise(roi)
        water = _read_samples(water_path, "water")
        land = _read_samples(land_path, "land")
        humid = _read_samples(humid_path, "humid")

        tool = FloodplainClassifier(
            adapter=build_adapter(canopy_tifs, config),
            roi=roi,
            water=water,
            land=land,
            humid=humid,
            config=config,
            output_dir=output_dir,
            verbose=verbose,
        )
        tool.run()
        paths = OutputWriter(tool.result, output_dir, study_name, config).save_all()
    except FloodplainError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    result = tool.result
    click.echo(f"\nOutputs written to: {output_dir} ({len(paths)} files)")
    for rec in result.area_records:
        click.echo(f"  {rec.period:<10} {rec.class_name:<6} {rec.method:<6} {rec.hectares:12.2f} ha")
    click.echo(f"Seasonally flooded: {result.seasonally_flooded_ha:.2f} ha")


if __name__ == "__main__":
    main()
