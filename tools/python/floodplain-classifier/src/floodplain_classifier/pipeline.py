"""
pipeline.py
===========
End-to-end floodplain classification.

Data flow::

    ROI ──► CompositeBuilder ──► high-water stack ──┬─► training table ──► model
                             └─► low-water stack    │
                                                    ▼
              classify(model, high) / classify(model, low)   (one model)
                                                    ▼
                          modal filter ──► vectorise (high water)
                                                    ▼
                 raster + vector areas ──► reconcile ──► transitions

Classes:
    PipelineDiagnostics  Sample report, masked-prediction counts, area mismatches.
    PipelineResult       Every intermediate product of a run.
    FloodplainClassifier Primary tool class (inherits GeoTool).

Usage::

    tool = FloodplainClassifier(
        adapter=RoutingAdapter({"glad-gedi-canopy-height": tiles},
                               default=PlanetaryComputerAdapter()),
        roi=RegionBuilder.from_file("roi.geojson"),
        water=gpd.read_file("water.geojson"),
        land=gpd.read_file("land.geojson"),
        humid=gpd.read_file("humid.geojson"),
    )
    tool.run()
    print(tool.result.area_frame())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import geopandas as gpd
import pandas as pd

from shared.python.base_tool import GeoTool
from shared.python.exceptions import ClassificationError, InputValidationError

from .adapters import RasterAccessAdapter
from .area import (
    AreaMismatch,
    AreaRecord,
    area_table,
    raster_area_records,
    reconcile,
    vector_area_records,
)
from .change import seasonally_flooded_hectares, transition_areas
from .classifier import ClassifiedRaster, TrainedModel, classify, train
from .composite import CompositeBuilder
from .config import HIGH_WATER, LOW_WATER, PipelineConfig
from .raster import Raster
from .roi import RegionOfInterest
from .smoothing import modal_filter
from .training import SampleReport, TrainingTable, build_training_table, merge_labeled_sets
from .vectorize import vectorize_classes

logger = logging.getLogger("floodplain.pipeline")


@dataclass
class PipelineDiagnostics:
    """Data-quality findings that do not stop a run."""

    sample_report: Optional[SampleReport] = None
    masked_pixels: Dict[str, int] = field(default_factory=dict)
    area_mismatches: List[AreaMismatch] = field(default_factory=list)

    def to_dict(self) -> Dict:
        report = self.sample_report
        return {
            "samples": None if report is None else {
                "total": report.total,
                "kept": report.kept,
                "outside_roi": report.outside_roi,
                "masked": report.masked,
                "conflicting": report.conflicting,
                "per_class": {str(k): v for k, v in report.per_class.items()},
            },
            "masked_pixels": dict(self.masked_pixels),
            "area_mismatches": [
                {
                    "period": m.period,
                    "class_name": m.class_name,
                    "raster_hectares": m.raster_hectares,
                    "vector_hectares": m.vector_hectares,
                    "relative_difference": m.relative_difference,
                }
                for m in self.area_mismatches
            ],
        }


@dataclass
class PipelineResult:
    """Every product of one classification run, keyed by period."""

    stacks: Dict[str, Raster]
    table: TrainingTable
    model: TrainedModel
    classified: Dict[str, ClassifiedRaster]
    smoothed: Dict[str, ClassifiedRaster]
    vectors: Dict[int, gpd.GeoDataFrame]
    area_records: List[AreaRecord]
    transitions: pd.DataFrame
    seasonally_flooded_ha: float
    diagnostics: PipelineDiagnostics = field(default_factory=PipelineDiagnostics)

    def area_frame(self) -> pd.DataFrame:
        return area_table(self.area_records)

    def hectares(self, period: str, class_code: int, method: str = "raster") -> float:
        for rec in self.area_records:
            if rec.period == period and rec.class_code == class_code and rec.method == method:
                return rec.hectares
        raise KeyError((period, class_code, method))


class FloodplainClassifier(GeoTool):
    """Classify a floodplain into water / land / humid at two water levels.

    Args:
        adapter: Raster access for radar, optical, elevation and canopy data.
        roi: Region every stage is clipped to.
        water: Labeled water geometries (GeoDataFrame, GeoSeries or list).
        land: Labeled land geometries.
        humid: Labeled humid-ground geometries.
        config: Windows, resolution, model and smoothing parameters.
        output_dir: Only used for the completion message; files are written
            by :class:`~floodplain_classifier.export.OutputWriter`.
        verbose: Enable DEBUG-level logging.
    """

    def __init__(
        self,
        adapter: RasterAccessAdapter,
        roi: RegionOfInterest,
        water,
        land,
        humid,
        config: Optional[PipelineConfig] = None,
        output_dir: Path | None = None,
        *,
        verbose: bool = False,
    ) -> None:
        super().__init__(output_dir, verbose=verbose)
        self.adapter = adapter
        self.roi = roi
        self.water = water
        self.land = land
        self.humid = humid
        self.config = config or PipelineConfig()
        self._result: Optional[PipelineResult] = None

    @property
    def result(self) -> PipelineResult:
        if self._result is None:
            raise RuntimeError("FloodplainClassifier.run() has not completed yet.")
        return self._result

    # ------------------------------------------------------------------
    # GeoTool abstract method implementations
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Check the labeled sets and the two windows.

        Raises:
            InputValidationError: If a labeled set is empty or the windows
                are not named high_water / low_water.
        """
        for name, samples in (("water", self.water), ("land", self.land), ("humid", self.humid)):
            if samples is None or len(samples) == 0:
                raise InputValidationError(f"The {name} sample set is empty.")
        names = [w.name for w in self.config.windows]
        if names != [HIGH_WATER, LOW_WATER]:
            raise InputValidationError(f"Expected windows {HIGH_WATER}/{LOW_WATER}, got {names}.")
        logger.debug("Inputs validated: ROI %r, config %s", self.roi, self.config)

    def process(self) -> None:
        cfg = self.config

        # 1. feature stacks
        builder = CompositeBuilder(self.adapter, self.roi, cfg)
        stacks = builder.build_many(cfg.windows, parallel=cfg.parallel_composites)
        high_stack = stacks[HIGH_WATER]

        # 2. training table from the high-water stack only
        samples = merge_labeled_sets(self.water, self.land, self.humid, crs=self.roi.crs)
        table = build_training_table(high_stack, samples, roi=self.roi)

        # 3. one model, applied unchanged to both periods
        model = train(table, n_trees=cfg.n_trees, random_state=cfg.random_state)
        classified = {name: classify(model, stack, name) for name, stack in stacks.items()}
        self._assert_same_model(model, classified)

        # 4. smoothing
        smoothed = {name: modal_filter(c, cfg.smoothing_radius) for name, c in classified.items()}

        # 5. vectors (high water) and areas
        vectors = vectorize_classes(smoothed[HIGH_WATER])
        records: List[AreaRecord] = []
        for name in stacks:
            records.extend(raster_area_records(smoothed[name]))
        records.extend(vector_area_records(vectors, HIGH_WATER))
        mismatches = reconcile(records, cfg.area_tolerance)

        # 6. seasonal change
        transitions = transition_areas(smoothed[HIGH_WATER], smoothed[LOW_WATER])
        flooded = seasonally_flooded_hectares(smoothed[HIGH_WATER], smoothed[LOW_WATER])

        # pixels outside the ROI are masked by the clip, not by missing features
        inside = high_stack.grid.roi_mask(self.roi)
        masked = {name: c.masked_within(inside) for name, c in classified.items()}
        for name, count in masked.items():
            if count:
                logger.warning("%s: %d pixel(s) left unclassified (masked features)", name, count)

        self._result = PipelineResult(
            stacks=stacks,
            table=table,
            model=model,
            classified=classified,
            smoothed=smoothed,
            vectors=vectors,
            area_records=records,
            transitions=transitions,
            seasonally_flooded_ha=flooded,
            diagnostics=PipelineDiagnostics(table.report, masked, mismatches),
        )
        for rec in records:
            logger.info("  %-10s %-6s %-6s %12.2f ha", rec.period, rec.class_name, rec.method, rec.hectares)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _assert_same_model(model: TrainedModel, classified: Dict[str, ClassifiedRaster]) -> None:
        stray = {name: c.model_id for name, c in classified.items() if c.model_id != model.model_id}
        if stray:
            raise ClassificationError(
                f"Period(s) {', '.join(stray)} were not classified with model {model.model_id[:8]}."
            )
