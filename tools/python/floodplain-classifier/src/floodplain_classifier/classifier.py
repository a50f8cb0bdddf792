"""
classifier.py
=============
Random Forest land-cover classification.

One model is trained on the high-water training table and then applied,
unchanged, to the feature stack of every period.  Each classified raster
carries the ``model_id`` of the model that produced it so downstream
stages can check that both periods share the same decision rule.

Output rasters hold a single ``uint8`` band named ``class`` with codes
0 = land, 1 = water, 2 = humid.  Pixels masked in any input band are
masked in the output.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np
from sklearn.ensemble import RandomForestClassifier

from shared.python.exceptions import ClassificationError, RasterError
from shared.python.validators import Validators

from .config import CLASS_NAMES
from .raster import Raster
from .training import TrainingTable

logger = logging.getLogger("floodplain.classifier")

CLASS_BAND = "class"
CLASS_NODATA = 255


@dataclass(frozen=True, eq=False)
class TrainedModel:
    """Fitted estimator plus the feature order it was trained with."""

    estimator: RandomForestClassifier
    feature_names: Tuple[str, ...]
    classes: Tuple[int, ...]
    model_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def feature_importances(self) -> Dict[str, float]:
        """Mean decrease in impurity per feature, highest first."""
        pairs = zip(self.feature_names, self.estimator.feature_importances_)
        return dict(sorted(((n, float(v)) for n, v in pairs), key=lambda kv: -kv[1]))


@dataclass(frozen=True, eq=False)
class ClassifiedRaster:
    """Class map of one period and the model that produced it."""

    raster: Raster
    model_id: str
    period: str

    @property
    def classes(self) -> np.ma.MaskedArray:
        """2-D masked ``uint8`` class codes."""
        return self.raster.data[0]

    @property
    def grid(self):
        return self.raster.grid

    @property
    def masked_count(self) -> int:
        return int(np.ma.getmaskarray(self.classes).sum())

    def masked_within(self, inside: np.ndarray) -> int:
        """Masked pixels among those flagged True in *inside* (e.g. the ROI)."""
        return int((np.ma.getmaskarray(self.classes) & np.asarray(inside, dtype=bool)).sum())

    def class_counts(self) -> Dict[int, int]:
        codes = self.classes.compressed()
        return {code: int((codes == code).sum()) for code in CLASS_NAMES}

    def with_classes(self, classes: np.ma.MaskedArray) -> "ClassifiedRaster":
        """Same model and period, new class values (e.g. after smoothing)."""
        raster = Raster(classes[np.newaxis], (CLASS_BAND,), self.grid, self.raster.attrs)
        return ClassifiedRaster(raster, self.model_id, self.period)


def train(
    table: TrainingTable,
    n_trees: int = 50,
    random_state: Optional[int] = 0,
) -> TrainedModel:
    """Fit a Random Forest with *n_trees* trees on *table*.

    Raises:
        ClassificationError: If the table is empty or holds a single class.
    """
    if n_trees < 1:
        raise ClassificationError(f"n_trees must be >= 1, got {n_trees}.")
    if len(table) == 0:
        raise ClassificationError("Cannot train on an empty training table.")
    y = table.y
    classes = tuple(int(c) for c in np.unique(y))
    if len(classes) < 2:
        raise ClassificationError(
            f"Training table holds a single class ({CLASS_NAMES.get(classes[0], classes[0])})."
        )

    estimator = RandomForestClassifier(
        n_estimators=n_trees,
        random_state=random_state,
        n_jobs=-1,
    )
    estimator.fit(table.X, y)
    model = TrainedModel(estimator, tuple(table.feature_names), classes)
    logger.info(
        "Trained Random Forest: %d tree(s), %d sample row(s), %d feature(s), classes %s [model %s]",
        n_trees, len(table), len(model.feature_names),
        [CLASS_NAMES.get(c, c) for c in classes], model.model_id[:8],
    )
    return model


def classify(model: TrainedModel, stack: Raster, period: str) -> ClassifiedRaster:
    """Apply *model* to every valid pixel of *stack*.

    Pixels masked in any feature band stay masked.  Classification is
    deterministic: the same model and stack always give the same map.

    Raises:
        ClassificationError: If *stack* lacks a feature the model was
            trained on.
    """
    try:
        Validators.assert_bands_present(stack.band_names, model.feature_names)
    except RasterError as exc:
        raise ClassificationError(
            f"Feature stack for {period} cannot be classified: {exc}"
        ) from exc

    features = stack.select(model.feature_names)
    valid = features.valid_mask
    out = np.full(features.grid.shape, CLASS_NODATA, dtype=np.uint8)

    if valid.any():
        X = features.data.data[:, valid].T.astype(np.float32)   # (pixels, features)
        out[valid] = model.estimator.predict(X).astype(np.uint8)

    classes = np.ma.array(out, mask=~valid)
    raster = Raster(
        classes[np.newaxis],
        (CLASS_BAND,),
        features.grid,
        {"period": period, "model_id": model.model_id},
    )
    result = ClassifiedRaster(raster, model.model_id, period)
    logger.info(
        "Classified %s: %d pixel(s), %d masked, counts %s",
        period, int(valid.sum()), result.masked_count,
        {CLASS_NAMES[c]: n for c, n in result.class_counts().items()},
    )
    return result
