"""pydelivery - Async package synchronization and caching engine."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pydelivery")
except PackageNotFoundError:
    __version__ = "0+local"
from pydelivery.bulk_sync import BulkSyncClient, LocationProvider
from pydelivery.config import BulkSyncConfig, LocalStoreConfig, PushConfig, RemoteStoreConfig
from pydelivery.exceptions import (
    DeliveryConfigError,
    DeliveryError,
    HttpStatusError,
    InvalidResponseError,
    InvalidStatusError,
    NetworkError,
    NetworkTimeoutError,
    NotFoundError,
    OfflineQueueExpired,
    ServerError,
    SyncTimeoutError,
)
from pydelivery.factory import StoreKind, create_repository, create_repository_from_env
from pydelivery.local_store import LocalPackageStore
from pydelivery.models import (
    EventSource,
    LocationFix,
    Package,
    PackageAdded,
    PackageMarker,
    PackageRemoved,
    PackageStatus,
    PackageStatusChanged,
    PackageUpdated,
    Priority,
    RepositoryEvent,
    StatusContext,
    SyncPackage,
    SyncResult,
)
from pydelivery.notify import LoggingNotifier, Notifier
from pydelivery.remote_store import BatchStatusUpdate, RemotePackageStore
from pydelivery.repository import PackageRepository
from pydelivery.storage import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore, StorageError

__all__ = [
    "__version__",
    "BatchStatusUpdate",
    "BulkSyncClient",
    "BulkSyncConfig",
    "DeliveryConfigError",
    "DeliveryError",
    "EventSource",
    "HttpStatusError",
    "InvalidResponseError",
    "InvalidStatusError",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LocalPackageStore",
    "LocalStoreConfig",
    "LocationFix",
    "LocationProvider",
    "LoggingNotifier",
    "MemoryKeyValueStore",
    "NetworkError",
    "NetworkTimeoutError",
    "Notifier",
    "NotFoundError",
    "OfflineQueueExpired",
    "Package",
    "PackageAdded",
    "PackageMarker",
    "PackageRemoved",
    "PackageRepository",
    "PackageStatus",
    "PackageStatusChanged",
    "PackageUpdated",
    "Priority",
    "PushConfig",
    "RemotePackageStore",
    "RemoteStoreConfig",
    "RepositoryEvent",
    "ServerError",
    "StatusContext",
    "StorageError",
    "StoreKind",
    "SyncPackage",
    "SyncResult",
    "SyncTimeoutError",
    "create_repository",
    "create_repository_from_env",
]
