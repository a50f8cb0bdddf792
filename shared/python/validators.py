"""
Floodplain Classifier — Shared Input Validators
================================================
Static utility methods used across the classifier to validate common
preconditions before processing begins.

All methods raise an appropriate exception from
:mod:`shared.python.exceptions` rather than returning booleans — this
keeps ``validate_inputs`` implementations short and readable::

    class MyTool(GeoTool):
        def validate_inputs(self) -> None:
            Validators.assert_file_exists(self.roi_path)
            Validators.assert_crs_valid(self.config.crs)
            Validators.assert_date_range_valid("2024-01-01", "2024-03-31")
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Sequence

# Lazy imports for heavy libraries so callers that do not use them avoid
# the import cost at startup.
#   pyproj → assert_crs_valid

from shared.python.exceptions import (
    BandNotFoundError,
    ColumnNotFoundError,
    CRSError,
    GridMismatchError,
    InputValidationError,
    OutputWriteError,
)


class Validators:
    """Collection of static precondition checks.

    All methods are ``@staticmethod`` — this class is never instantiated.
    It exists purely as a logical namespace.
    """

    # ------------------------------------------------------------------
    # File-system checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* points to an existing regular file.

        Raises:
            InputValidationError: If *path* does not exist or is a
                directory rather than a file.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input file not found: '{path}'. "
                "Check that the path is correct and the file exists."
            )
        if path.is_dir():
            raise InputValidationError(
                f"Expected a file but got a directory: '{path}'."
            )

    @staticmethod
    def assert_output_dir_writable(output_dir: Path) -> None:
        """Create *output_dir* (and parents) if needed.

        Raises:
            OutputWriteError: If the directory cannot be created.
        """
        try:
            Path(output_dir).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_dir), str(exc)) from exc

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that *path* has one of the allowed file extensions.

        Args:
            path: File path to check.
            extensions: Allowed extensions, each starting with a dot
                        (e.g. ``[".shp", ".geojson", ".gpkg"]``).

        Raises:
            InputValidationError: If the extension is not in *extensions*.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}'. "
                f"Accepted extensions: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # CRS / projection checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_crs_valid(crs_string: str) -> None:
        """Assert that *crs_string* can be parsed as a valid CRS.

        Uses :mod:`pyproj` to attempt parsing.  Accepts EPSG codes
        (``"EPSG:4326"``), PROJ strings, and WKT strings.

        Raises:
            CRSError: If *crs_string* is not recognised by pyproj.
        """
        try:
            from pyproj import CRS  # noqa: PLC0415

            CRS.from_user_input(crs_string)
        except Exception as exc:
            raise CRSError(str(crs_string)) from exc

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    @staticmethod
    def assert_date_range_valid(start: str, end: str) -> None:
        """Assert that *start* and *end* are ISO dates with ``start < end``.

        Raises:
            InputValidationError: If either date cannot be parsed or the
                range is empty.

        Example::

            Validators.assert_date_range_valid("2024-01-01", "2024-03-31")
        """
        try:
            d0 = date.fromisoformat(str(start))
            d1 = date.fromisoformat(str(end))
        except ValueError as exc:
            raise InputValidationError(
                f"Invalid date range {start!r} -> {end!r}: {exc}"
            ) from exc
        if d0 >= d1:
            raise InputValidationError(
                f"Empty date range: start {start} is not before end {end}."
            )

    # ------------------------------------------------------------------
    # Tabular data checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_columns_exist(
        df: object,  # pandas DataFrame — typed loosely to avoid hard dep
        required_columns: Sequence[str],
    ) -> None:
        """Assert that all *required_columns* are present in *df*.

        Raises:
            ColumnNotFoundError: On the first missing column found.
        """
        available = list(df.columns)  # type: ignore[union-attr]
        for col in required_columns:
            if col not in available:
                raise ColumnNotFoundError(col, available)

    # ------------------------------------------------------------------
    # Raster checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_bands_present(
        available: Sequence[str],
        required: Sequence[str],
    ) -> None:
        """Assert that every name in *required* is in *available*.

        Raises:
            BandNotFoundError: On the first missing band.
        """
        for band in required:
            if band not in available:
                raise BandNotFoundError(band, list(available))

    @staticmethod
    def assert_grids_match(
        grid_a: object,
        grid_b: object,
        label_a: str = "raster A",
        label_b: str = "raster B",
    ) -> None:
        """Assert that two raster grids are identical.

        Compares shape, affine transform and CRS.  Pixel-wise arithmetic
        and band stacking both require this.

        Raises:
            GridMismatchError: Naming the first property that differs.
        """
        for attr in ("height", "width", "crs"):
            va, vb = getattr(grid_a, attr), getattr(grid_b, attr)
            if va != vb:
                raise GridMismatchError(label_a, label_b, f"{attr} {va!r} != {vb!r}")
        ta, tb = grid_a.transform, grid_b.transform  # type: ignore[attr-defined]
        if not ta.almost_equals(tb):
            raise GridMismatchError(label_a, label_b, f"transform {ta!r} != {tb!r}")
