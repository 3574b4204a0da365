from __future__ import annotations

import random
from typing import Any

from conftest import NOW

from pydelivery._constants import FALLBACK_LATITUDE, FALLBACK_LONGITUDE, REVIEW_COLOR, VIABLE_COLOR
from pydelivery.markers import build_marker, build_markers, placeholder_coordinates
from pydelivery.models.sync import SyncPackage


def _package(**fields: Any) -> SyncPackage:
    return SyncPackage.model_validate({"id": "1", "tracking_number": "TRK-1", **fields})


def test_destination_coordinates_win() -> None:
    package = _package(
        location_details={
            "origin": {"coordinates": {"latitude": 19.0, "longitude": -99.0}},
            "destination": {"coordinates": {"latitude": 20.7, "longitude": -103.4}},
        }
    )
    marker = build_marker(package, rng=random.Random(0), synced_at=NOW)

    assert marker.coordinates.latitude == 20.7
    assert not marker.is_placeholder
    assert marker.id == "package_1"
    assert marker.title == "TRK-1"


def test_origin_is_used_without_destination() -> None:
    package = _package(location_details={"origin": {"coordinates": {"latitude": 19.0, "longitude": -99.0}}})
    marker = build_marker(package, rng=random.Random(0), synced_at=NOW)

    assert marker.coordinates.latitude == 19.0
    assert not marker.is_placeholder


def test_placeholder_stays_within_jitter_of_fallback() -> None:
    rng = random.Random(42)
    for _ in range(200):
        point = placeholder_coordinates(rng, jitter=0.1)
        assert abs(point.latitude - FALLBACK_LATITUDE) <= 0.05
        assert abs(point.longitude - FALLBACK_LONGITUDE) <= 0.05


def test_missing_coordinates_yield_flagged_placeholder() -> None:
    marker = build_marker(
        _package(location_details={"destination": {"coordinates": {"latitude": "x"}}}),
        rng=random.Random(1),
        synced_at=NOW,
        fallback_latitude=10.0,
        fallback_longitude=20.0,
        jitter=0.5,
    )

    assert marker.is_placeholder
    assert abs(marker.coordinates.latitude - 10.0) <= 0.25
    assert abs(marker.coordinates.longitude - 20.0) <= 0.25


def test_style_and_description() -> None:
    viable = _package(
        carrier="DHL",
        route_summary={"from": "Zapopan", "to": "Centro", "viable": True, "geocoding_ready": True},
        quality={"address_confidence": 0.876},
        stamps_summary={"green_numbers": ["G1", "G2"], "total_stamps": 5},
        location_details={"destination": {"coordinates": {"latitude": 20.7, "longitude": -103.4}, "query": "Centro"}},
    )
    marker = build_marker(viable, rng=random.Random(0), synced_at=NOW)

    assert marker.style.color == VIABLE_COLOR
    assert marker.style.icon == "💚"
    lines = marker.description.splitlines()
    assert "Carrier: DHL" in lines
    assert "Route: Zapopan → Centro" in lines
    assert "Status: Viable" in lines
    assert "Confidence: 88%" in lines
    assert "Coordinates: 20.700000, -103.400000" in lines
    assert "Green numbers: 2" in lines
    assert "Destination query: Yes" in lines
    assert "Stamps detected: 5" in lines
    assert "Synced: 00:00:00" in lines

    review = build_marker(_package(), rng=random.Random(0), synced_at=NOW)
    assert review.style.color == REVIEW_COLOR
    assert review.style.icon == "📦"


def test_build_markers_only_includes_geocoding_ready() -> None:
    ready = _package(id="ready", route_summary={"geocoding_ready": True})
    pending = _package(id="pending", route_summary={"geocoding_ready": False})

    markers = build_markers([ready, pending], rng=random.Random(0), synced_at=NOW)

    assert [m.id for m in markers] == ["package_ready"]
