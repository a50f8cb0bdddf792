"""
Tests for STAC item filtering (no network access).
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

pytest.importorskip("stackstac")
pytest.importorskip("pystac_client")
pytest.importorskip("planetary_computer")

from floodplain_classifier.adapters import CompositeRequest, PropertyFilter  # noqa: E402
from floodplain_classifier.config import HIGH_WATER, TimeWindow  # noqa: E402
from floodplain_classifier.stac import PlanetaryComputerAdapter  # noqa: E402


def _item(day: str, **props):
    when = datetime.fromisoformat(day).replace(tzinfo=timezone.utc)
    return SimpleNamespace(id=day, datetime=when, properties=props)


@pytest.fixture()
def request_():
    return CompositeRequest(
        collection_id="sentinel-1-rtc",
        bands=("vh",),
        date_range=TimeWindow(HIGH_WATER, "2024-01-01", "2024-04-01"),
        filters=(
            PropertyFilter("sar:instrument_mode", "eq", "IW"),
            PropertyFilter("sat:orbit_state", "eq", "descending"),
        ),
    )


class TestFilterItems:

    def test_keeps_matching_items(self, request_) -> None:
        items = [
            _item("2024-01-10", **{"sar:instrument_mode": "IW", "sat:orbit_state": "descending"}),
            _item("2024-01-11", **{"sar:instrument_mode": "IW", "sat:orbit_state": "ascending"}),
            _item("2024-01-12", **{"sar:instrument_mode": "EW", "sat:orbit_state": "descending"}),
            _item("2024-01-13", **{"sar:instrument_mode": "IW"}),
        ]
        kept = PlanetaryComputerAdapter.filter_items(items, request_)
        assert [i.id for i in kept] == ["2024-01-10"]

    def test_window_end_is_exclusive(self, request_) -> None:
        props = {"sar:instrument_mode": "IW", "sat:orbit_state": "descending"}
        items = [_item("2024-03-31", **props), _item("2024-04-01", **props)]
        kept = PlanetaryComputerAdapter.filter_items(items, request_)
        assert [i.id for i in kept] == ["2024-03-31"]

    def test_items_without_datetime_rejected(self, request_) -> None:
        item = SimpleNamespace(id="x", datetime=None,
                               properties={"sar:instrument_mode": "IW", "sat:orbit_state": "descending"})
        assert PlanetaryComputerAdapter.filter_items([item], request_) == []
