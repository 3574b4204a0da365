"""Location fix supplied by an external location provider."""

from __future__ import annotations

from pydantic import Field

from pydelivery.models._base import DeliveryBaseModel, Timestamp, utcnow
from pydelivery.models.package import Coordinates


class LocationFix(DeliveryBaseModel):
    """Opaque device position; ``accuracy`` is in metres."""

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    accuracy: float | None = Field(default=None, ge=0.0)
    timestamp: Timestamp = Field(default_factory=utcnow)

    def to_coordinates(self) -> Coordinates:
        return Coordinates(latitude=self.latitude, longitude=self.longitude)
