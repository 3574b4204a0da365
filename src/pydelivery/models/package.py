"""Package entity and its value objects."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator, model_validator

from pydelivery.models._base import DeliveryBaseModel, OptionalTimestamp, Timestamp, utcnow


class _CaseInsensitiveEnum(StrEnum):
    @classmethod
    def _missing_(cls, value: object) -> Any:
        if isinstance(value, str):
            normalized = value.strip().upper().replace("-", "_").replace(" ", "_")
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class PackageStatus(_CaseInsensitiveEnum):
    """Delivery workflow states (see :mod:`pydelivery.lifecycle`)."""

    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class Priority(_CaseInsensitiveEnum):
    """Ordered priority; ``MEDIUM`` and ``NORMAL`` rank equally."""

    URGENT = "URGENT"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    NORMAL = "NORMAL"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        """Higher is more urgent."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: dict[Priority, int] = {
    Priority.URGENT: 3,
    Priority.HIGH: 2,
    Priority.MEDIUM: 1,
    Priority.NORMAL: 1,
    Priority.LOW: 0,
}


class Coordinates(DeliveryBaseModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class Address(DeliveryBaseModel):
    street: str | None = None
    city: str | None = None
    postal_code: str | None = None
    formatted: str | None = None

    @property
    def display(self) -> str:
        if self.formatted:
            return self.formatted
        parts = [part for part in (self.street, self.city, self.postal_code) if part]
        return ", ".join(parts)


class StatusContext(DeliveryBaseModel):
    """Courier-supplied context of a status update."""

    location: Coordinates | None = None
    notes: str | None = None


class Package(DeliveryBaseModel):
    """A deliverable unit tracked through the status lifecycle.

    ``id`` is immutable: use :meth:`with_changes` to derive an updated
    record, which refuses to touch it.
    """

    id: str
    tracking_number: str = ""
    recipient_name: str = ""
    recipient_phone: str | None = None
    recipient_email: str | None = None
    address: Address = Field(default_factory=Address)
    coordinates: Coordinates | None = None

    status: PackageStatus = PackageStatus.PENDING
    priority: Priority = Priority.MEDIUM
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)

    carrier: str | None = None
    delivery_person_id: str | None = None
    delivery_instructions: str | None = None
    tags: tuple[str, ...] = ()
    notes: str | None = None
    last_location: Coordinates | None = None

    created_at: Timestamp = Field(default_factory=utcnow)
    updated_at: OptionalTimestamp = None
    estimated_delivery: OptionalTimestamp = None
    delivered_at: OptionalTimestamp = None

    @model_validator(mode="before")
    @classmethod
    def _fold_flat_fields(cls, values: Any) -> Any:
        """Accept the flat ``recipientAddress``/``latitude``/``longitude`` shape."""
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        flat_address = merged.pop("recipientAddress", None) or merged.pop("recipient_address", None)
        if isinstance(merged.get("address"), str):
            merged["address"] = {"formatted": merged["address"]}
        elif flat_address and "address" not in merged:
            merged["address"] = {"formatted": flat_address}

        lat = merged.pop("latitude", None)
        lng = merged.pop("longitude", None)
        if "coordinates" not in merged and lat is not None and lng is not None:
            merged["coordinates"] = {"latitude": lat, "longitude": lng}
        return merged

    @field_validator("id")
    @classmethod
    def _require_id(cls, value: str) -> str:
        package_id = str(value).strip()
        if not package_id:
            raise ValueError("id must be non-empty")
        return package_id

    @model_validator(mode="after")
    def _clamp_attempts(self) -> Package:
        """Over-attempted records are clamped; an unfinished one becomes ``FAILED``."""
        if self.attempts > self.max_attempts:
            object.__setattr__(self, "attempts", self.max_attempts)
            if self.status is not PackageStatus.DELIVERED:
                object.__setattr__(self, "status", PackageStatus.FAILED)
        return self

    def with_changes(self, **changes: Any) -> Package:
        """Return a copy with *changes* applied; ``id`` cannot change."""
        if "id" in changes and changes["id"] != self.id:
            raise ValueError("Package id is immutable")
        return self.model_copy(update=changes)
