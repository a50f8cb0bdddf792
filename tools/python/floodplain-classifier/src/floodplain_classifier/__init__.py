"""
floodplain_classifier
=====================
Floodplain land-cover classifier.

Builds Sentinel-1 / Sentinel-2 / elevation / canopy-height feature stacks
for a high-water and a low-water period, trains one Random Forest on
labeled water, land and humid samples, classifies both periods with it,
smooths the maps with a circular modal filter, vectorises the high-water
classes, and reconciles raster and vector areas in hectares.

Submodules
----------
roi         -- Define the ROI from a vector file, bounding box or polygon
raster      -- Masked multi-band raster container and reference grid
adapters    -- Raster access: in-memory, GeoTIFF and routing adapters
stac        -- Planetary Computer STAC adapter (pystac-client + stackstac)
composite   -- Per-window 8-band feature stacks
training    -- Labeled sample merging and training-table assembly
classifier  -- Random Forest training and pixel classification
smoothing   -- Circular modal filter
vectorize   -- Class polygons from the smoothed map
area        -- Raster / vector areas and their reconciliation
change      -- High-water to low-water transitions
pipeline    -- End-to-end FloodplainClassifier tool
export      -- GeoTIFF, GeoJSON, CSV, JSON and PNG outputs
"""

from .roi import RegionBuilder, RegionOfInterest
from .raster import Raster, RasterGrid, grid_for_region
from .adapters import (
    CompositeRequest,
    GeoTiffAdapter,
    InMemoryAdapter,
    PropertyFilter,
    RasterAccessAdapter,
    RoutingAdapter,
)
from .config import PipelineConfig, SourceConfig, TimeWindow
from .composite import FEATURE_BANDS, CompositeBuilder
from .training import build_training_table, merge_labeled_sets
from .classifier import classify, train
from .smoothing import modal_filter
from .vectorize import vectorize, vectorize_classes
from .area import reconcile
from .pipeline import FloodplainClassifier, PipelineResult
from .export import OutputWriter

__version__ = "1.0.0"
__all__ = [
    "RegionBuilder",
    "RegionOfInterest",
    "Raster",
    "RasterGrid",
    "grid_for_region",
    "CompositeRequest",
    "GeoTiffAdapter",
    "InMemoryAdapter",
    "PropertyFilter",
    "RasterAccessAdapter",
    "RoutingAdapter",
    "PipelineConfig",
    "SourceConfig",
    "TimeWindow",
    "FEATURE_BANDS",
    "CompositeBuilder",
    "build_training_table",
    "merge_labeled_sets",
    "classify",
    "train",
    "modal_filter",
    "vectorize",
    "vectorize_classes",
    "reconcile",
    "FloodplainClassifier",
    "PipelineResult",
    "OutputWriter",
]
