"""Bulk sync protocol models.

The aggregation endpoint speaks snake_case for package records
(``tracking_number``, ``route_summary``, ``stamps_summary`` ...) while the
request/response envelope is camelCase. Older service revisions put
``green_numbers``/``total_stamps`` flat on the package; those are folded into
the canonical ``stamps_summary`` block during validation (the nested block
wins when both are present).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pydelivery._normalize import safe_float
from pydelivery.models._base import DeliveryBaseModel, OptionalTimestamp, SnakeCaseModel
from pydelivery.models.location import LocationFix
from pydelivery.models.package import Address, Coordinates, Package, PackageStatus


def _coordinates_or_none(value: Any) -> Any:
    if isinstance(value, Coordinates):
        return value
    if not isinstance(value, dict):
        return None
    lat = safe_float(value.get("latitude", value.get("lat")))
    lng = safe_float(value.get("longitude", value.get("lng")))
    if lat is None or lng is None or not -90 <= lat <= 90 or not -180 <= lng <= 180:
        return None
    return {"latitude": lat, "longitude": lng}


class StampMarker(SnakeCaseModel):
    """A recognized visual stamp ("green number") on the shipping label."""

    code: str
    label: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_number(cls, values: Any) -> Any:
        if isinstance(values, (str, int)):
            return {"code": str(values)}
        if isinstance(values, dict) and "code" not in values and "number" in values:
            merged = dict(values)
            merged["code"] = merged.pop("number")
            return merged
        return values

    @field_validator("code", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return str(value).strip()


class StampsSummary(SnakeCaseModel):
    green_numbers: list[StampMarker] = Field(default_factory=list)
    total_stamps: int = 0


class RouteSummary(SnakeCaseModel):
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    viable: bool = False
    geocoding_ready: bool = False


class Quality(SnakeCaseModel):
    address_confidence: float = 0.0

    @field_validator("address_confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        parsed = safe_float(value)
        if parsed is None:
            return 0.0
        return min(1.0, max(0.0, parsed))


class LocationPoint(SnakeCaseModel):
    coordinates: Coordinates | None = None
    query: str | None = None

    @field_validator("coordinates", mode="before")
    @classmethod
    def _lenient_coordinates(cls, value: Any) -> Any:
        return _coordinates_or_none(value)


class LocationDetails(SnakeCaseModel):
    origin: LocationPoint | None = None
    destination: LocationPoint | None = None


class SyncPackage(SnakeCaseModel):
    """A package record as returned by the aggregation endpoint."""

    id: str
    tracking_number: str = ""
    carrier: str = ""
    phone: str | None = None
    status: PackageStatus | None = None
    origin_short: str | None = None
    destination_short: str | None = None
    route_summary: RouteSummary = Field(default_factory=RouteSummary)
    quality: Quality = Field(default_factory=Quality)
    stamps_summary: StampsSummary = Field(default_factory=StampsSummary)
    location_details: LocationDetails = Field(default_factory=LocationDetails)
    created_at: OptionalTimestamp = None

    @model_validator(mode="before")
    @classmethod
    def _fold_flat_stamps(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        flat_numbers = merged.pop("green_numbers", None)
        if flat_numbers is None:
            flat_numbers = merged.pop("stamps", None)
        flat_total = merged.pop("total_stamps", None)

        summary = merged.get("stamps_summary")
        summary = dict(summary) if isinstance(summary, dict) else {}
        if flat_numbers is not None and "green_numbers" not in summary:
            summary["green_numbers"] = flat_numbers
        if flat_total is not None and "total_stamps" not in summary:
            summary["total_stamps"] = flat_total
        merged["stamps_summary"] = summary

        if isinstance(merged.get("id"), int):
            merged["id"] = str(merged["id"])
        return merged

    @field_validator("status", mode="before")
    @classmethod
    def _lenient_status(cls, value: Any) -> Any:
        try:
            return PackageStatus(value)
        except ValueError:
            return None

    @property
    def is_route_viable(self) -> bool:
        return self.route_summary.viable

    @property
    def is_geocoding_ready(self) -> bool:
        return self.route_summary.geocoding_ready

    @property
    def stamp_codes(self) -> list[str]:
        return [stamp.code for stamp in self.stamps_summary.green_numbers]

    @property
    def destination_query(self) -> str | None:
        destination = self.location_details.destination
        if destination is None or not destination.query:
            return None
        query = destination.query.strip()
        return query or None

    @property
    def destination_coordinates(self) -> Coordinates | None:
        destination = self.location_details.destination
        return destination.coordinates if destination is not None else None

    @property
    def origin_coordinates(self) -> Coordinates | None:
        origin = self.location_details.origin
        return origin.coordinates if origin is not None else None

    def to_package(self) -> Package:
        """Project into the repository :class:`Package` shape."""
        formatted = self.destination_query or self.destination_short or self.route_summary.to
        changes: dict[str, Any] = {
            "id": self.id,
            "tracking_number": self.tracking_number,
            "carrier": self.carrier or None,
            "recipient_phone": self.phone,
            "address": Address(formatted=formatted),
            "coordinates": self.destination_coordinates or self.origin_coordinates,
            "tags": tuple(f"stamp:{code}" for code in self.stamp_codes),
        }
        if self.status is not None:
            changes["status"] = self.status
        if self.created_at is not None:
            changes["created_at"] = self.created_at
        return Package.model_validate(changes)


# ---------------------------------------------------------------------------
# Request / response envelope
# ---------------------------------------------------------------------------


class LocationFingerprint(DeliveryBaseModel):
    latitude: float
    longitude: float
    accuracy: float | None = None

    @classmethod
    def from_fix(cls, fix: LocationFix) -> LocationFingerprint:
        return cls(latitude=fix.latitude, longitude=fix.longitude, accuracy=fix.accuracy)


class SyncFilters(SnakeCaseModel):
    geocoding_ready: bool = True
    date_from: datetime


class SyncRequest(DeliveryBaseModel):
    timestamp: datetime
    device_id: str
    location: LocationFingerprint | None = None
    request_id: str
    filters: SyncFilters
    limit: int = 100
    include_metadata: bool = True
    enable_geocoding: bool = True

    def to_wire(self) -> dict[str, Any]:
        # ``location`` is sent as an explicit null when unknown.
        return self.model_dump(mode="json", by_alias=True)


class SyncErrorDetail(DeliveryBaseModel):
    message: str = "Unknown error"


class SyncResponse(DeliveryBaseModel):
    success: bool
    packages: list[SyncPackage] = Field(default_factory=list)
    total_packages: int = 0
    returned_packages: int = 0
    timestamp: OptionalTimestamp = None
    error: SyncErrorDetail | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Derived outputs
# ---------------------------------------------------------------------------


class SyncSummary(BaseModel):
    """Per-response counters."""

    model_config = ConfigDict(frozen=True)

    total_returned: int = 0
    with_route: int = 0
    geocoding_ready: int = 0
    with_stamps: int = 0
    stamps_total: int = 0
    with_destination_query: int = 0


class SyncStats(BaseModel):
    """Running statistics across syncs of one client."""

    model_config = ConfigDict(frozen=True)

    sync_count: int = 0
    last_sync: datetime | None = None
    total_packages: int = 0
    returned_packages: int = 0
    cumulative_stamps: int = 0
    cumulative_destination_queries: int = 0
    distinct_stamp_codes: int = 0
    distinct_packages: int = 0
    new_packages: int = 0
    new_stamp_codes: int = 0


class MarkerStyle(BaseModel):
    model_config = ConfigDict(frozen=True)

    color: str
    size: str = "medium"
    icon: str = "package"


class PackageMarker(BaseModel):
    """Map-ready projection of a synced package."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: str = "package"
    title: str
    description: str
    coordinates: Coordinates
    is_placeholder: bool = False
    style: MarkerStyle
    package: SyncPackage


class SyncResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    response: SyncResponse
    summary: SyncSummary
    stats: SyncStats
    markers: list[PackageMarker] = Field(default_factory=list)


class SyncReport(BaseModel):
    """Statistics of the last synced batch."""

    model_config = ConfigDict(frozen=True)

    synced: int = 0
    total_on_server: int = 0
    viable: int = 0
    geocoding_ready: int = 0
    with_phone: int = 0
    stamps_total: int = 0
    with_destination_query: int = 0
    average_confidence: float = 0.0
    carriers: list[tuple[str, int]] = Field(default_factory=list)
    last_sync: datetime | None = None
    sync_count: int = 0
