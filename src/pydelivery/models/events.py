"""Repository change events and server push envelopes.

Both are tagged unions: repository events are discriminated on ``type``
(snake_case tags) and push envelopes on the wire ``type`` field
(``packageUpdate``, ``statusChange``, ``packageCreated``, ``packageDeleted``).
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from pydelivery.models._base import DeliveryBaseModel, utcnow
from pydelivery.models.package import Package, PackageStatus


class EventSource(StrEnum):
    """Where a repository event originated."""

    LOCAL = "local"
    REMOTE = "remote"
    PUSH = "push"
    OPTIMISTIC = "optimistic"
    SIMULATION = "simulation"
    QUEUE = "queue"


class _RepositoryEventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: EventSource = EventSource.LOCAL
    observed_at: datetime = Field(default_factory=utcnow)


class PackageAdded(_RepositoryEventBase):
    type: Literal["package_added"] = "package_added"
    package: Package


class PackageUpdated(_RepositoryEventBase):
    """A package changed; ``package`` is absent when only the id is known."""

    type: Literal["package_updated"] = "package_updated"
    package_id: str = ""
    package: Package | None = None

    @model_validator(mode="after")
    def _default_package_id(self) -> PackageUpdated:
        if not self.package_id:
            if self.package is None:
                raise ValueError("package_updated needs a package or a package_id")
            object.__setattr__(self, "package_id", self.package.id)
        return self


class PackageStatusChanged(_RepositoryEventBase):
    type: Literal["package_status_changed"] = "package_status_changed"
    package_id: str
    old_status: PackageStatus | None = None
    new_status: PackageStatus
    package: Package | None = None


class PackageRemoved(_RepositoryEventBase):
    type: Literal["package_removed"] = "package_removed"
    package_id: str


RepositoryEvent = Annotated[
    PackageAdded | PackageUpdated | PackageStatusChanged | PackageRemoved,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Push channel envelopes
# ---------------------------------------------------------------------------


class PackageUpdatePush(DeliveryBaseModel):
    type: Literal["packageUpdate"]
    package_id: str
    package: Package | None = None


class StatusChangePush(DeliveryBaseModel):
    type: Literal["statusChange"]
    package_id: str
    old_status: PackageStatus | None = None
    new_status: PackageStatus
    package: Package | None = None


class PackageCreatedPush(DeliveryBaseModel):
    type: Literal["packageCreated"]
    package: Package
    package_id: str = ""

    @model_validator(mode="after")
    def _default_package_id(self) -> PackageCreatedPush:
        if not self.package_id:
            object.__setattr__(self, "package_id", self.package.id)
        return self


class PackageDeletedPush(DeliveryBaseModel):
    type: Literal["packageDeleted"]
    package_id: str


PushEvent = Annotated[
    PackageUpdatePush | StatusChangePush | PackageCreatedPush | PackageDeletedPush,
    Field(discriminator="type"),
]

_PUSH_EVENT_ADAPTER: TypeAdapter[PushEvent] = TypeAdapter(PushEvent)


def parse_push_event(payload: Any) -> PushEvent:
    """Validate a decoded push envelope into its tagged variant.

    Raises :class:`pydantic.ValidationError` for unknown ``type`` tags or
    malformed envelopes.
    """
    return _PUSH_EVENT_ADAPTER.validate_python(payload)
