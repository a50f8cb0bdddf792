"""
Floodplain Classifier — Custom Exception Hierarchy
===================================================
Every stage of the classifier raises exceptions from this module so callers
can catch them at the right level of granularity.

Hierarchy::

    FloodplainError                      ← catch-all base
    ├── InputValidationError             ← bad files, dates, labeled sets
    │   └── ColumnNotFoundError          ← attribute table column missing
    ├── CRSError                         ← invalid / unknown CRS string
    ├── RasterError                      ← raster assembly / shape issues
    │   ├── BandNotFoundError            ← requested band is not in the stack
    │   └── GridMismatchError            ← two rasters on different grids
    ├── EmptyCompositeError              ← no qualifying observations
    ├── TrainingSampleError              ← no usable training samples
    ├── ClassificationError              ← model / stack inconsistency
    └── OutputWriteError                 ← cannot write to output path

Usage::

    from shared.python.exceptions import EmptyCompositeError

    raise EmptyCompositeError("sentinel-2-l2a", "2024-01-01/2024-03-31")
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class FloodplainError(Exception):
    """Base exception for the floodplain classifier.

    Catch this to handle any classifier error without caring about the
    exact subtype.

    Args:
        message: Human-readable description of the error.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(FloodplainError):
    """Raised when pipeline inputs fail pre-processing validation.

    This is the parent class for more specific input problems.
    """


class ColumnNotFoundError(InputValidationError):
    """Raised when an expected column is absent from an attribute table.

    Args:
        column: The name of the missing column.
        available: Column names that ARE present, used to build the
                   error message.

    Example::

        raise ColumnNotFoundError("class", gdf.columns.tolist())
    """

    def __init__(self, column: str, available: list[str]) -> None:
        available_str = ", ".join(f"'{c}'" for c in available)
        super().__init__(
            f"Column '{column}' not found. Available columns: {available_str}"
        )
        self.column: str = column
        self.available: list[str] = available


# ---------------------------------------------------------------------------
# CRS
# ---------------------------------------------------------------------------


class CRSError(FloodplainError):
    """Raised when a coordinate reference system string cannot be parsed.

    Args:
        crs_string: The raw CRS string that caused the error
                    (e.g. ``"EPSG:99999"``).
    """

    def __init__(self, crs_string: str) -> None:
        super().__init__(
            f"Invalid or unrecognised CRS: '{crs_string}'. "
            "Use an EPSG code (e.g. 'EPSG:4326') or a valid WKT/PROJ string."
        )
        self.crs_string: str = crs_string


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


class RasterError(FloodplainError):
    """Raised for general raster assembly failures.

    Subclass this for more specific raster errors.
    """


class BandNotFoundError(RasterError):
    """Raised when a requested band name is not present in a raster.

    Args:
        band: The band name that was requested.
        available: Band names the raster actually carries.

    Example::

        raise BandNotFoundError("NDWI", ["VH", "B2", "B3"])
    """

    def __init__(self, band: str, available: list[str]) -> None:
        super().__init__(
            f"Band '{band}' does not exist. "
            f"Available bands: {', '.join(available) or '(none)'}."
        )
        self.band: str = band
        self.available: list[str] = available


class GridMismatchError(RasterError):
    """Raised when two rasters that must share a pixel grid do not.

    Args:
        label_a: Name of the first raster (used in the message).
        label_b: Name of the second raster.
        detail: Which grid property differs.
    """

    def __init__(self, label_a: str, label_b: str, detail: str) -> None:
        super().__init__(
            f"Grid mismatch between {label_a} and {label_b}: {detail}"
        )
        self.detail: str = detail


# ---------------------------------------------------------------------------
# Pipeline stages
# ---------------------------------------------------------------------------


class EmptyCompositeError(FloodplainError):
    """Raised when a composite request yields no usable observations.

    A median of zero scenes is undefined, so the affected time window
    must be aborted rather than classified.

    Args:
        collection_id: The source collection that came back empty.
        window: Human-readable date range or layer label.
    """

    def __init__(self, collection_id: str, window: str) -> None:
        super().__init__(
            f"No qualifying observations in '{collection_id}' for {window}. "
            "Widen the date range or relax the scene filters."
        )
        self.collection_id: str = collection_id
        self.window: str = window


class TrainingSampleError(FloodplainError):
    """Raised when the labeled samples cannot produce a usable training table."""


class ClassificationError(FloodplainError):
    """Raised when a model and a feature stack cannot be used together."""


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputWriteError(FloodplainError):
    """Raised when an output cannot be written to disk.

    Args:
        output_path: String representation of the path that failed.
        reason: Underlying OS or library error message.
    """

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write output to '{output_path}': {reason}"
        )
        self.output_path: str = output_path
        self.reason: str = reason
