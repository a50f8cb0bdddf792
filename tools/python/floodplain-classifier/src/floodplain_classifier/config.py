"""
config.py
=========
Run configuration: the two hydrological time windows, source collections
and the numeric parameters of every stage.

Defaults reproduce the reference study: high water January-March 2024,
low water July-September 2024, 60 m grid in EPSG:4326, Sentinel-2 scenes
under 15 % cloud, a 50-tree Random Forest and a 1.5 px modal filter.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from datetime import date
from pathlib import Path
from typing import Any, Dict, Tuple

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

HIGH_WATER = "high_water"
LOW_WATER = "low_water"

# Land-cover class codes
LAND = 0
WATER = 1
HUMID = 2
CLASS_NAMES: Dict[int, str] = {LAND: "land", WATER: "water", HUMID: "humid"}
CLASS_CODES: Tuple[int, ...] = tuple(CLASS_NAMES)


@dataclass(frozen=True)
class TimeWindow:
    """Named date range; ``start`` inclusive, ``end`` exclusive."""

    name: str
    start: str
    end: str

    def __post_init__(self) -> None:
        Validators.assert_date_range_valid(self.start, self.end)

    @property
    def start_date(self) -> date:
        return date.fromisoformat(self.start)

    @property
    def end_date(self) -> date:
        return date.fromisoformat(self.end)

    def contains(self, day: date) -> bool:
        return self.start_date <= day < self.end_date

    def __str__(self) -> str:
        return f"{self.name} ({self.start}/{self.end})"


@dataclass(frozen=True)
class SourceConfig:
    """Collection ids, asset names and scene-filter values.

    Defaults target the Microsoft Planetary Computer STAC catalogue; the
    canopy-height collection has no catalogue entry and is normally
    routed to local GeoTIFF tiles.
    """

    radar_collection: str = "sentinel-1-rtc"
    radar_band: str = "vh"
    instrument_mode_property: str = "sar:instrument_mode"
    instrument_mode: str = "IW"
    polarization_property: str = "sar:polarizations"
    polarization: str = "VH"
    orbit_property: str = "sat:orbit_state"
    orbit_pass: str = "descending"

    optical_collection: str = "sentinel-2-l2a"
    # blue, green, red, near-infrared
    optical_bands: Tuple[str, str, str, str] = ("B02", "B03", "B04", "B08")
    cloud_property: str = "eo:cloud_cover"

    elevation_collection: str = "cop-dem-glo-30"
    elevation_band: str = "data"

    canopy_collection: str = "glad-gedi-canopy-height"
    canopy_band: str = "b1"


@dataclass(frozen=True)
class PipelineConfig:
    """Parameters for one classification run."""

    high_water: TimeWindow = TimeWindow(HIGH_WATER, "2024-01-01", "2024-03-31")
    low_water: TimeWindow = TimeWindow(LOW_WATER, "2024-07-01", "2024-09-30")
    resolution_m: float = 60.0
    crs: str = "EPSG:4326"
    max_cloud_pct: float = 15.0
    n_trees: int = 50
    random_state: int | None = 0
    smoothing_radius: float = 1.5
    area_tolerance: float = 0.01
    parallel_composites: bool = False
    sources: SourceConfig = field(default_factory=SourceConfig)

    def __post_init__(self) -> None:
        Validators.assert_crs_valid(self.crs)
        if self.resolution_m <= 0:
            raise InputValidationError(f"resolution_m must be positive, got {self.resolution_m}.")
        if not 0 < self.max_cloud_pct <= 100:
            raise InputValidationError(f"max_cloud_pct must be in (0, 100], got {self.max_cloud_pct}.")
        if self.n_trees < 1:
            raise InputValidationError(f"n_trees must be >= 1, got {self.n_trees}.")
        if self.smoothing_radius < 1:
            raise InputValidationError(
                f"smoothing_radius must be >= 1 pixel, got {self.smoothing_radius}."
            )
        if self.area_tolerance < 0:
            raise InputValidationError(f"area_tolerance must be >= 0, got {self.area_tolerance}.")

    @property
    def windows(self) -> Tuple[TimeWindow, TimeWindow]:
        return (self.high_water, self.low_water)

    # ------------------------------------------------------------------
    # (De)serialisation
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PipelineConfig":
        """Build a config from plain values, e.g. parsed JSON.

        Windows are given as ``{"start": ..., "end": ...}``; unknown keys
        raise ``InputValidationError``.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(raw) - known
        if unknown:
            raise InputValidationError(f"Unknown config key(s): {', '.join(sorted(unknown))}")

        kwargs: Dict[str, Any] = {}
        for key, value in raw.items():
            if key in (HIGH_WATER, LOW_WATER):
                kwargs[key] = TimeWindow(key, value["start"], value["end"])
            elif key == "sources":
                source_known = {f.name for f in fields(SourceConfig)}
                bad = set(value) - source_known
                if bad:
                    raise InputValidationError(f"Unknown source key(s): {', '.join(sorted(bad))}")
                if "optical_bands" in value:
                    value = {**value, "optical_bands": tuple(value["optical_bands"])}
                kwargs[key] = SourceConfig(**value)
            else:
                kwargs[key] = value
        return cls(**kwargs)

    @classmethod
    def from_json(cls, path: str | Path) -> "PipelineConfig":
        path = Path(path)
        Validators.assert_file_exists(path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise InputValidationError(f"Config file '{path}' is not valid JSON: {exc}") from exc
        return cls.from_dict(raw)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        for key in (HIGH_WATER, LOW_WATER):
            out[key] = {"start": out[key]["start"], "end": out[key]["end"]}
        return out
