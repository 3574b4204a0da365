"""Data models for delivery packages, events and the bulk sync protocol."""

from pydelivery.models._base import DeliveryBaseModel, parse_timestamp
from pydelivery.models.events import (
    EventSource,
    PackageAdded,
    PackageCreatedPush,
    PackageDeletedPush,
    PackageRemoved,
    PackageStatusChanged,
    PackageUpdated,
    PackageUpdatePush,
    PushEvent,
    RepositoryEvent,
    StatusChangePush,
    parse_push_event,
)
from pydelivery.models.location import LocationFix
from pydelivery.models.mutations import (
    CreatePackageMutation,
    DeletePackageMutation,
    QueuedMutation,
    UpdateStatusMutation,
)
from pydelivery.models.package import Address, Coordinates, Package, PackageStatus, Priority, StatusContext
from pydelivery.models.sync import (
    MarkerStyle,
    PackageMarker,
    StampMarker,
    SyncPackage,
    SyncReport,
    SyncRequest,
    SyncResponse,
    SyncResult,
    SyncStats,
    SyncSummary,
)

__all__ = [
    "Address",
    "Coordinates",
    "CreatePackageMutation",
    "DeletePackageMutation",
    "DeliveryBaseModel",
    "EventSource",
    "LocationFix",
    "MarkerStyle",
    "Package",
    "PackageAdded",
    "PackageCreatedPush",
    "PackageDeletedPush",
    "PackageMarker",
    "PackageRemoved",
    "PackageStatus",
    "PackageStatusChanged",
    "PackageUpdatePush",
    "PackageUpdated",
    "Priority",
    "PushEvent",
    "QueuedMutation",
    "RepositoryEvent",
    "StampMarker",
    "StatusChangePush",
    "StatusContext",
    "SyncPackage",
    "SyncReport",
    "SyncRequest",
    "SyncResponse",
    "SyncResult",
    "SyncStats",
    "SyncSummary",
    "UpdateStatusMutation",
    "parse_push_event",
    "parse_timestamp",
]
