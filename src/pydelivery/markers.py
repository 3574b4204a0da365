"""Map-ready markers for synced packages."""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from datetime import datetime

from pydelivery._constants import FALLBACK_LATITUDE, FALLBACK_LONGITUDE, REVIEW_COLOR, VIABLE_COLOR
from pydelivery.models._base import utcnow
from pydelivery.models.package import Coordinates
from pydelivery.models.sync import MarkerStyle, PackageMarker, SyncPackage

_logger = logging.getLogger(__name__)


def placeholder_coordinates(
    rng: random.Random,
    *,
    latitude: float = FALLBACK_LATITUDE,
    longitude: float = FALLBACK_LONGITUDE,
    jitter: float = 0.1,
) -> Coordinates:
    """A point within ``jitter / 2`` degrees of the fallback position on each axis."""
    return Coordinates(
        latitude=latitude + (rng.random() - 0.5) * jitter,
        longitude=longitude + (rng.random() - 0.5) * jitter,
    )


def marker_style(package: SyncPackage) -> MarkerStyle:
    return MarkerStyle(
        color=VIABLE_COLOR if package.is_route_viable else REVIEW_COLOR,
        icon="💚" if package.stamp_codes else "📦",
    )


def _description(package: SyncPackage, coordinates: Coordinates, synced_at: datetime) -> str:
    route = package.route_summary
    return "\n".join(
        [
            f"Carrier: {package.carrier or 'unknown'}",
            f"Route: {route.from_ or package.origin_short or 'N/A'} → {route.to or package.destination_short or 'N/A'}",
            f"Status: {'Viable' if route.viable else 'Review'}",
            f"Confidence: {round(package.quality.address_confidence * 100)}%",
            f"Coordinates: {coordinates.latitude:.6f}, {coordinates.longitude:.6f}",
            f"Green numbers: {len(package.stamp_codes)}",
            f"Destination query: {'Yes' if package.destination_query else 'No'}",
            f"Stamps detected: {package.stamps_summary.total_stamps}",
            f"Synced: {synced_at.strftime('%H:%M:%S')}",
        ]
    )


def build_marker(
    package: SyncPackage,
    *,
    rng: random.Random,
    synced_at: datetime,
    fallback_latitude: float = FALLBACK_LATITUDE,
    fallback_longitude: float = FALLBACK_LONGITUDE,
    jitter: float = 0.1,
) -> PackageMarker:
    """Project one package; position falls back destination, origin, placeholder."""
    coordinates = package.destination_coordinates or package.origin_coordinates
    is_placeholder = coordinates is None
    if coordinates is None:
        _logger.warning("Package %s has no valid coordinates, using placeholder", package.tracking_number or package.id)
        coordinates = placeholder_coordinates(
            rng,
            latitude=fallback_latitude,
            longitude=fallback_longitude,
            jitter=jitter,
        )
    return PackageMarker(
        id=f"package_{package.id}",
        title=package.tracking_number or package.id,
        description=_description(package, coordinates, synced_at),
        coordinates=coordinates,
        is_placeholder=is_placeholder,
        style=marker_style(package),
        package=package,
    )


def build_markers(
    packages: Iterable[SyncPackage],
    *,
    rng: random.Random | None = None,
    synced_at: datetime | None = None,
    fallback_latitude: float = FALLBACK_LATITUDE,
    fallback_longitude: float = FALLBACK_LONGITUDE,
    jitter: float = 0.1,
) -> list[PackageMarker]:
    """One marker per geocoding-ready package, in input order."""
    rng = rng or random.Random()
    synced_at = synced_at or utcnow()
    return [
        build_marker(
            package,
            rng=rng,
            synced_at=synced_at,
            fallback_latitude=fallback_latitude,
            fallback_longitude=fallback_longitude,
            jitter=jitter,
        )
        for package in packages
        if package.is_geocoding_ready
    ]
