"""
change.py
=========
Seasonal change between the high-water and low-water class maps.

Only pixels valid in both maps are compared.  The transition table gives
the hectares that moved from each high-water class to each low-water
class; "seasonally flooded" ground is water at high water and anything
else at low water.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from shared.python.exceptions import ClassificationError
from shared.python.validators import Validators

from .area import M2_PER_HECTARE, pixel_area_m2
from .classifier import ClassifiedRaster
from .config import CLASS_CODES, CLASS_NAMES, WATER

logger = logging.getLogger("floodplain.change")


def _check_pair(high: ClassifiedRaster, low: ClassifiedRaster) -> None:
    Validators.assert_grids_match(high.grid, low.grid, high.period, low.period)
    if high.model_id != low.model_id:
        raise ClassificationError(
            f"{high.period} and {low.period} were classified by different models "
            f"({high.model_id[:8]} vs {low.model_id[:8]})."
        )


def _both_valid(high: ClassifiedRaster, low: ClassifiedRaster) -> np.ndarray:
    return ~np.ma.getmaskarray(high.classes) & ~np.ma.getmaskarray(low.classes)


def transition_areas(high: ClassifiedRaster, low: ClassifiedRaster) -> pd.DataFrame:
    """Hectares per (high-water class, low-water class) pair.

    Rows are high-water classes, columns low-water classes, both labelled
    by class name.
    """
    _check_pair(high, low)
    areas = pixel_area_m2(high.grid)
    valid = _both_valid(high, low)
    names = [CLASS_NAMES[c] for c in CLASS_CODES]
    table = pd.DataFrame(0.0, index=pd.Index(names, name=high.period),
                         columns=pd.Index(names, name=low.period))
    for src in CLASS_CODES:
        from_src = valid & (high.classes.data == src)
        for dst in CLASS_CODES:
            m2 = float(areas[from_src & (low.classes.data == dst)].sum())
            table.loc[CLASS_NAMES[src], CLASS_NAMES[dst]] = m2 / M2_PER_HECTARE
    return table


def seasonal_water_mask(high: ClassifiedRaster, low: ClassifiedRaster) -> np.ndarray:
    """True where a pixel is water at high water but not at low water."""
    _check_pair(high, low)
    valid = _both_valid(high, low)
    return valid & (high.classes.data == WATER) & (low.classes.data != WATER)


def seasonally_flooded_hectares(high: ClassifiedRaster, low: ClassifiedRaster) -> float:
    mask = seasonal_water_mask(high, low)
    hectares = float(pixel_area_m2(high.grid)[mask].sum()) / M2_PER_HECTARE
    logger.info("Seasonally flooded: %.2f ha (%d pixel(s))", hectares, int(mask.sum()))
    return hectares
