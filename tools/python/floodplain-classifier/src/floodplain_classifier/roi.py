"""
roi.py
======
Define the region of interest (ROI) that bounds every composite, sample,
classification and area sum in a run.

The ROI can come from:
  - Shapefile, GeoPackage or GeoJSON file
  - Esri FileGDB layer
  - Bounding box [min_x, min_y, max_x, max_y]
  - Polygon as a list of (x, y) coordinate pairs
  - An existing GeoDataFrame

All builders return an immutable ``RegionOfInterest``.  It is created once
at pipeline start and passed explicitly to every stage.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Tuple

import geopandas as gpd
from pyproj import CRS
from shapely.geometry import Polygon, box
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

logger = logging.getLogger("floodplain.roi")

VECTOR_EXTENSIONS = [".shp", ".gpkg", ".geojson", ".json", ".gdb"]


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RegionOfInterest:
    """Dissolved ROI geometry with its CRS."""

    geometry: BaseGeometry

    # Normalised CRS string, e.g. "EPSG:4326"
    crs: str

    label: str = "ROI"

    def __post_init__(self) -> None:
        if self.geometry is None or self.geometry.is_empty:
            raise InputValidationError("ROI geometry is empty.")
        if self.geometry.geom_type not in ("Polygon", "MultiPolygon"):
            raise InputValidationError(
                f"ROI must be a polygon, got {self.geometry.geom_type}."
            )

    def geometry_in(self, crs: str) -> BaseGeometry:
        """Return the ROI geometry reprojected to *crs*."""
        if CRS.from_user_input(crs) == CRS.from_user_input(self.crs):
            return self.geometry
        series = gpd.GeoSeries([self.geometry], crs=self.crs).to_crs(crs)
        return series.iloc[0]

    @property
    def bbox_wgs84(self) -> Tuple[float, float, float, float]:
        """(min_lon, min_lat, max_lon, max_lat) for catalogue searches."""
        b = self.geometry_in("EPSG:4326").bounds
        return (float(b[0]), float(b[1]), float(b[2]), float(b[3]))

    def __repr__(self) -> str:  # noqa: D105
        b = self.geometry.bounds
        return (
            f"<RegionOfInterest '{self.label}' {self.crs} "
            f"bounds=({b[0]:.4f},{b[1]:.4f},{b[2]:.4f},{b[3]:.4f})>"
        )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _normalise_crs(crs: object) -> str:
    """Return an authority string (``EPSG:xxxx``) when possible, else WKT."""
    parsed = CRS.from_user_input(crs)
    authority = parsed.to_authority()
    if authority is not None:
        return f"{authority[0]}:{authority[1]}"
    return parsed.to_wkt()


def _build_region(gdf: gpd.GeoDataFrame, label: str) -> RegionOfInterest:
    """Dissolve a GeoDataFrame into a single-geometry ROI."""
    if gdf.empty:
        raise InputValidationError(f"ROI source '{label}' contains no features.")
    if gdf.crs is None:
        warnings.warn(
            "ROI geometry has no CRS -- assuming WGS84 (EPSG:4326).",
            stacklevel=3,
        )
        gdf = gdf.set_crs("EPSG:4326")

    dissolved = unary_union(list(gdf.geometry))
    return RegionOfInterest(
        geometry=dissolved,
        crs=_normalise_crs(gdf.crs),
        label=label,
    )


# ---------------------------------------------------------------------------
# Public builder class
# ---------------------------------------------------------------------------

class RegionBuilder:
    """Resolves a ``RegionOfInterest`` from various sources."""

    @staticmethod
    def from_file(path: str | Path, layer: str | None = None) -> RegionOfInterest:
        """Read the first (or named) layer from a vector file.

        Parameters
        ----------
        path:
            Path to a ``.shp``, ``.gpkg``, ``.geojson`` file or ``.gdb``
            directory.
        layer:
            Layer name -- relevant for GeoPackage / FileGDB.
        """
        path = Path(path)
        Validators.assert_supported_extension(path, VECTOR_EXTENSIONS)
        if path.suffix.lower() != ".gdb":
            Validators.assert_file_exists(path)
        if layer:
            gdf = gpd.read_file(path, layer=layer)
        else:
            gdf = gpd.read_file(path)
        return _build_region(gdf, label=layer or path.name)

    @staticmethod
    def from_bbox(
        min_x: float,
        min_y: float,
        max_x: float,
        max_y: float,
        crs: str = "EPSG:4326",
    ) -> RegionOfInterest:
        """Define the ROI from a bounding box in *crs* units."""
        if min_x >= max_x or min_y >= max_y:
            raise InputValidationError(
                f"Degenerate bounding box ({min_x}, {min_y}, {max_x}, {max_y})."
            )
        gdf = gpd.GeoDataFrame(geometry=[box(min_x, min_y, max_x, max_y)], crs=crs)
        label = f"bbox({min_x:.3f},{min_y:.3f},{max_x:.3f},{max_y:.3f})"
        return _build_region(gdf, label=label)

    @staticmethod
    def from_polygon(
        coordinates: Sequence[Tuple[float, float]],
        crs: str = "EPSG:4326",
    ) -> RegionOfInterest:
        """Define the ROI from an explicit polygon.

        The ring is closed automatically if the first and last points
        differ.
        """
        coords = list(coordinates)
        if len(coords) < 3:
            raise InputValidationError("A polygon ROI needs at least 3 vertices.")
        if coords[0] != coords[-1]:
            coords.append(coords[0])
        gdf = gpd.GeoDataFrame(geometry=[Polygon(coords)], crs=crs)
        return _build_region(gdf, label="User-defined polygon")

    @staticmethod
    def from_geodataframe(gdf: gpd.GeoDataFrame, label: str = "ROI") -> RegionOfInterest:
        """Dissolve an in-memory GeoDataFrame into an ROI."""
        return _build_region(gdf, label=label)

    @staticmethod
    def summarise(roi: RegionOfInterest) -> None:
        """Log a brief summary of the resolved ROI."""
        b = roi.bbox_wgs84
        logger.info("ROI '%s' (%s)", roi.label, roi.crs)
        logger.info("  WGS84 bbox : W=%.4f  S=%.4f  E=%.4f  N=%.4f", *b)
