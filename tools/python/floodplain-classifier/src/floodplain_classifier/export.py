"""
export.py
=========
Save pipeline outputs to disk.

Supported formats
-----------------
GeoTIFF   -- smoothed class map per period (uint8, nodata 255)
GeoJSON   -- high-water class polygons (reprojected to WGS84)
CSV       -- area records and the seasonal transition table
JSON      -- run summary: config, model, feature importances, diagnostics
PNG       -- side-by-side quicklook of both smoothed maps
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import matplotlib
matplotlib.use("Agg")  # non-interactive backend safe for headless execution
import matplotlib.pyplot as plt
import matplotlib.colors as mcolors
from matplotlib.patches import Patch
import rasterio
from rasterio.crs import CRS
from rasterio.errors import RasterioIOError

from shared.python.exceptions import OutputWriteError
from shared.python.validators import Validators

from .classifier import CLASS_NODATA, ClassifiedRaster
from .config import CLASS_CODES, CLASS_NAMES, PipelineConfig
from .pipeline import PipelineResult
from .vectorize import merge_class_vectors

logger = logging.getLogger("floodplain.export")

# land, water, humid
CLASS_COLOURS = {0: "#c8b273", 1: "#1f78b4", 2: "#33a02c"}


class OutputWriter:
    """Write all pipeline outputs to one directory.

    Parameters
    ----------
    result:
        Completed ``PipelineResult`` from ``FloodplainClassifier.run()``.
    output_dir:
        Root directory for all saved files.  Created if it does not exist.
    study_name:
        Short prefix added to every output filename.
    config:
        Configuration of the run, recorded in the JSON summary.
    """

    def __init__(
        self,
        result: PipelineResult,
        output_dir: str | Path = "./outputs",
        study_name: str = "floodplain",
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.result = result
        self.study_name = study_name
        self.config = config
        self.out_dir = Path(output_dir)
        Validators.assert_output_dir_writable(self.out_dir)

    # ------------------------------------------------------------------
    # Convenience: save everything
    # ------------------------------------------------------------------

    def save_all(self) -> Dict[str, Path]:
        """Save all outputs; return a dict of {label: path}."""
        paths: Dict[str, Path] = {}
        paths.update(self.save_rasters())
        paths.update(self.save_vectors())
        paths.update(self.save_csv())
        paths.update(self.save_summary())
        paths.update(self.save_png_summary())
        logger.info("All outputs written to: %s", self.out_dir.resolve())
        return paths

    # ------------------------------------------------------------------
    # Rasters (GeoTIFF)
    # ------------------------------------------------------------------

    def save_rasters(self) -> Dict[str, Path]:
        """One GeoTIFF per period, keyed ``classes_<period>``."""
        paths: Dict[str, Path] = {}
        for period, classified in self.result.smoothed.items():
            name = f"classes_{period}"
            paths[name] = self._write_tiff(classified, name)
            logger.info("  Saved raster : %s", paths[name].name)
        return paths

    def _write_tiff(self, classified: ClassifiedRaster, name: str) -> Path:
        path = self.out_dir / f"{self.study_name}_{name}.tif"
        grid = classified.grid
        out = classified.classes.filled(CLASS_NODATA).astype(np.uint8)
        try:
            with rasterio.open(
                path,
                "w",
                driver="GTiff",
                height=grid.height,
                width=grid.width,
                count=1,
                dtype="uint8",
                crs=CRS.from_user_input(grid.crs),
                transform=grid.transform,
                nodata=CLASS_NODATA,
                compress="lzw",
            ) as dst:
                dst.write(out, 1)
                dst.set_band_description(1, "class")
                dst.update_tags(
                    layer=name,
                    study=self.study_name,
                    period=classified.period,
                    model_id=classified.model_id,
                    classes=json.dumps({str(k): v for k, v in CLASS_NAMES.items()}),
                )
        except RasterioIOError as exc:
            raise OutputWriteError(str(path), str(exc)) from exc
        return path

    # ------------------------------------------------------------------
    # Vector outputs
    # ------------------------------------------------------------------

    def save_vectors(self) -> Dict[str, Path]:
        """Write the high-water class polygons as WGS84 GeoJSON."""
        crs = next(iter(self.result.smoothed.values())).grid.crs
        polygons = merge_class_vectors(self.result.vectors, crs)
        if polygons.empty:
            logger.info("  No class polygons to export.")
            return {}
        path = self.out_dir / f"{self.study_name}_polygons.geojson"
        try:
            polygons.to_crs("EPSG:4326").to_file(str(path), driver="GeoJSON")
        except (OSError, ValueError) as exc:
            raise OutputWriteError(str(path), str(exc)) from exc
        logger.info("  Saved vector : %s  (%d polygons)", path.name, len(polygons))
        return {"polygons": path}

    # ------------------------------------------------------------------
    # CSV tables
    # ------------------------------------------------------------------

    def save_csv(self) -> Dict[str, Path]:
        """Write the area records and the transition table."""
        areas = self.out_dir / f"{self.study_name}_areas.csv"
        self.result.area_frame().to_csv(str(areas), index=False)
        transitions = self.out_dir / f"{self.study_name}_transitions.csv"
        self.result.transitions.to_csv(str(transitions))
        logger.info("  Saved CSV    : %s, %s", areas.name, transitions.name)
        return {"areas_csv": areas, "transitions_csv": transitions}

    # ------------------------------------------------------------------
    # JSON summary
    # ------------------------------------------------------------------

    def summary(self) -> Dict:
        r = self.result
        return {
            "study": self.study_name,
            "config": self.config.to_dict() if self.config is not None else None,
            "model": {
                "model_id": r.model.model_id,
                "n_trees": len(r.model.estimator.estimators_),
                "features": list(r.model.feature_names),
                "feature_importances": r.model.feature_importances(),
            },
            "training_rows": len(r.table),
            "areas": r.area_frame().to_dict(orient="records"),
            "seasonally_flooded_ha": r.seasonally_flooded_ha,
            "diagnostics": r.diagnostics.to_dict(),
        }

    def save_summary(self) -> Dict[str, Path]:
        path = self.out_dir / f"{self.study_name}_summary.json"
        path.write_text(json.dumps(self.summary(), indent=2, default=str), encoding="utf-8")
        logger.info("  Saved JSON   : %s", path.name)
        return {"summary": path}

    # ------------------------------------------------------------------
    # PNG quicklook
    # ------------------------------------------------------------------

    def save_png_summary(self) -> Dict[str, Path]:
        """One panel per period with the smoothed class map."""
        smoothed = self.result.smoothed
        cmap = mcolors.ListedColormap([CLASS_COLOURS[c] for c in CLASS_CODES])
        norm = mcolors.BoundaryNorm([c - 0.5 for c in CLASS_CODES] + [CLASS_CODES[-1] + 0.5], cmap.N)

        fig, axes = plt.subplots(1, len(smoothed), figsize=(6 * len(smoothed), 6), squeeze=False)
        fig.suptitle(f"Floodplain classes — {self.study_name}", fontsize=14, fontweight="bold")
        for ax, (period, classified) in zip(axes[0], smoothed.items()):
            ax.imshow(classified.classes, cmap=cmap, norm=norm, interpolation="nearest")
            ax.set_title(period.replace("_", " ").title(), fontsize=11, fontweight="bold")
            ax.axis("off")
        fig.legend(
            handles=[Patch(color=CLASS_COLOURS[c], label=CLASS_NAMES[c]) for c in CLASS_CODES],
            loc="lower center", ncol=len(CLASS_CODES), frameon=False,
        )

        path = self.out_dir / f"{self.study_name}_summary.png"
        fig.savefig(str(path), dpi=120, bbox_inches="tight")
        plt.close(fig)
        logger.info("  Saved PNG    : %s", path.name)
        return {"png": path}
