"""In-memory queries over package collections.

Pure functions over ``Iterable[Package]``: sorting, statistics, search,
proximity, grouping, validation and CSV export. They apply equally to the
output of either store.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from math import atan2, cos, radians, sin, sqrt
from typing import Any

from pydantic import ValidationError

from pydelivery.lifecycle import is_terminal
from pydelivery.models._base import utcnow
from pydelivery.models.package import Package, PackageStatus, Priority

_logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000.0

CSV_HEADERS: tuple[str, ...] = (
    "ID",
    "Tracking Number",
    "Recipient Name",
    "Recipient Address",
    "Status",
    "Priority",
    "Estimated Delivery",
    "Attempts",
    "Carrier",
)

_STATUS_ORDER: dict[PackageStatus, int] = {status: index for index, status in enumerate(PackageStatus)}


class SortKey(StrEnum):
    PRIORITY = "priority"
    STATUS = "status"
    DELIVERY_TIME = "delivery_time"
    CREATED = "created"


@dataclass(frozen=True)
class DeliveryStats:
    total: int = 0
    pending: int = 0
    assigned: int = 0
    in_transit: int = 0
    out_for_delivery: int = 0
    delivered: int = 0
    failed: int = 0

    @property
    def in_flight(self) -> int:
        return self.total - self.delivered - self.failed


@dataclass(frozen=True)
class ValidationReport:
    errors: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


def sort_packages(packages: Iterable[Package], by: SortKey | str = SortKey.PRIORITY) -> list[Package]:
    """Return *packages* ordered by *by*; the sort is stable.

    ``priority`` puts the most urgent first, ``status`` follows the
    workflow order, ``delivery_time`` puts the earliest estimate first
    (packages without one last) and ``created`` the oldest first.
    """
    key = SortKey(by)
    items = list(packages)
    if key is SortKey.PRIORITY:
        return sorted(items, key=lambda pkg: -pkg.priority.rank)
    if key is SortKey.STATUS:
        return sorted(items, key=lambda pkg: _STATUS_ORDER[pkg.status])
    if key is SortKey.DELIVERY_TIME:
        return sorted(
            items,
            key=lambda pkg: (pkg.estimated_delivery is None, pkg.estimated_delivery or datetime.min),
        )
    return sorted(items, key=lambda pkg: pkg.created_at)


def delivery_stats(packages: Iterable[Package]) -> DeliveryStats:
    counts = {status: 0 for status in PackageStatus}
    total = 0
    for package in packages:
        counts[package.status] += 1
        total += 1
    return DeliveryStats(
        total=total,
        pending=counts[PackageStatus.PENDING],
        assigned=counts[PackageStatus.ASSIGNED],
        in_transit=counts[PackageStatus.IN_TRANSIT],
        out_for_delivery=counts[PackageStatus.OUT_FOR_DELIVERY],
        delivered=counts[PackageStatus.DELIVERED],
        failed=counts[PackageStatus.FAILED],
    )


def search_packages(packages: Iterable[Package], term: str | None) -> list[Package]:
    """Case-insensitive substring match on tracking number, recipient, address and tags."""
    items = list(packages)
    needle = (term or "").strip().lower()
    if not needle:
        return items

    def _hit(package: Package) -> bool:
        fields = (package.tracking_number, package.recipient_name, package.address.display, *package.tags)
        return any(needle in field.lower() for field in fields if field)

    return [package for package in items if _hit(package)]


def priority_packages(packages: Iterable[Package]) -> list[Package]:
    """Packages that need attention: urgent, failed, or out of attempts and undelivered."""
    return [
        package
        for package in packages
        if package.priority is Priority.URGENT
        or package.status is PackageStatus.FAILED
        or (package.attempts >= package.max_attempts and package.status is not PackageStatus.DELIVERED)
    ]


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres."""
    phi1, phi2 = radians(lat1), radians(lat2)
    dphi = radians(lat2 - lat1)
    dlambda = radians(lon2 - lon1)
    a = sin(dphi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * atan2(sqrt(a), sqrt(1 - a))


def packages_near(
    packages: Iterable[Package],
    latitude: float,
    longitude: float,
    radius: float = 1000.0,
) -> list[Package]:
    """Packages whose coordinates lie within *radius* metres; unlocated ones are skipped."""
    return [
        package
        for package in packages
        if package.coordinates is not None
        and haversine(latitude, longitude, package.coordinates.latitude, package.coordinates.longitude) <= radius
    ]


def group_by_status(packages: Iterable[Package]) -> dict[PackageStatus, list[Package]]:
    grouped: dict[PackageStatus, list[Package]] = {}
    for package in packages:
        grouped.setdefault(package.status, []).append(package)
    return grouped


def due_packages(
    packages: Iterable[Package],
    *,
    within: timedelta = timedelta(hours=2),
    now: datetime | None = None,
) -> list[Package]:
    """Unfinished packages whose estimated delivery falls in ``[now, now + within]``."""
    start = now or utcnow()
    end = start + within
    return [
        package
        for package in packages
        if package.estimated_delivery is not None
        and start <= package.estimated_delivery <= end
        and not is_terminal(package.status)
    ]


def _describe(error: Mapping[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "package"
    return f"{location}: {error.get('msg', 'invalid')}"


def validate_package(data: Package | Mapping[str, Any]) -> ValidationReport:
    """Check that a record is complete enough to be delivered.

    A mapping is parsed first; parse errors are reported instead of raised.
    """
    if isinstance(data, Package):
        package = data
    else:
        if not data.get("status"):
            return ValidationReport(errors=("Status is required",))
        try:
            package = Package.model_validate(dict(data))
        except ValidationError as exc:
            return ValidationReport(errors=tuple(_describe(err) for err in exc.errors()))

    errors: list[str] = []
    if not package.recipient_name:
        errors.append("Recipient name is required")
    if not package.address.display:
        errors.append("Recipient address is required")
    if package.coordinates is None:
        errors.append("Delivery coordinates are required")
    return ValidationReport(errors=tuple(errors))


def export_csv(packages: Iterable[Package]) -> str:
    """Render *packages* as CSV with a header row; empty input gives ``""``."""
    items = list(packages)
    if not items:
        return ""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for package in items:
        writer.writerow(
            (
                package.id,
                package.tracking_number,
                package.recipient_name,
                package.address.display,
                package.status.value,
                package.priority.value,
                package.estimated_delivery.isoformat() if package.estimated_delivery else "",
                package.attempts,
                package.carrier or "",
            )
        )
    _logger.debug("Exported %d packages to CSV", len(items))
    return buffer.getvalue()
