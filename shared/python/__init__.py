"""
Floodplain Classifier — Shared Python Package
==============================================
Re-exports the shared base class, exception hierarchy, and validator
utilities so pipeline modules can import from a single location::

    from shared.python import GeoTool, Validators
    from shared.python.exceptions import EmptyCompositeError
"""

from shared.python.base_tool import GeoTool
from shared.python.exceptions import (
    BandNotFoundError,
    ClassificationError,
    ColumnNotFoundError,
    CRSError,
    EmptyCompositeError,
    FloodplainError,
    GridMismatchError,
    InputValidationError,
    OutputWriteError,
    RasterError,
    TrainingSampleError,
)
from shared.python.validators import Validators

__all__ = [
    "GeoTool",
    "Validators",
    "FloodplainError",
    "InputValidationError",
    "ColumnNotFoundError",
    "CRSError",
    "RasterError",
    "BandNotFoundError",
    "GridMismatchError",
    "EmptyCompositeError",
    "TrainingSampleError",
    "ClassificationError",
    "OutputWriteError",
]
