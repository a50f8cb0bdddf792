"""
smoothing.py
============
Modal (majority) filter over a circular neighbourhood.

Each valid pixel takes the most frequent class among the valid pixels
whose centres lie within ``radius`` pixels of it, itself included.
Votes are counted with one ``scipy.ndimage.convolve`` per class over a
one-hot mask, so masked pixels never vote and the work stays vectorised.

Ties go to the lowest class code.  Masked pixels stay masked.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from scipy import ndimage

from shared.python.exceptions import ClassificationError

from .classifier import CLASS_NODATA, ClassifiedRaster
from .config import CLASS_CODES

logger = logging.getLogger("floodplain.smoothing")


def circular_footprint(radius: float) -> np.ndarray:
    """Boolean kernel of the pixels with ``dy**2 + dx**2 <= radius**2``.

    A radius of 1.5 gives the full 3x3 square.
    """
    if radius < 1:
        raise ClassificationError(f"Smoothing radius must be >= 1 pixel, got {radius}.")
    r = int(math.floor(radius))
    dy, dx = np.mgrid[-r:r + 1, -r:r + 1]
    return (dy ** 2 + dx ** 2) <= radius ** 2


def modal_filter(classified: ClassifiedRaster, radius: float = 1.5) -> ClassifiedRaster:
    """Return *classified* with every valid pixel replaced by its local mode."""
    footprint = circular_footprint(radius).astype(np.int32)
    classes = classified.classes
    valid = ~np.ma.getmaskarray(classes)
    values = classes.data

    votes = np.stack([
        ndimage.convolve(((values == code) & valid).astype(np.int32), footprint,
                         mode="constant", cval=0)
        for code in CLASS_CODES
    ])
    # argmax returns the first maximum, i.e. the lowest class code
    winners = np.asarray(CLASS_CODES, dtype=np.uint8)[votes.argmax(axis=0)]

    out = np.where(valid, winners, CLASS_NODATA).astype(np.uint8)
    smoothed = classified.with_classes(np.ma.array(out, mask=~valid))
    changed = int((out[valid] != values[valid]).sum())
    logger.info(
        "Modal filter (radius %.2f px, %d-pixel footprint) on %s: %d pixel(s) changed",
        radius, int(footprint.sum()), classified.period, changed,
    )
    return smoothed
