"""Offline package store backed by a durable key-value store.

The whole collection lives under one key as a JSON array. Mutations are
serialized by a lock and rewrite the collection; when it grows past
``max_storage_size`` the oldest packages (by ``created_at``) are evicted.
An optional simulator advances one random in-flight package per tick.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import random
from collections.abc import Callable, Mapping
from datetime import date, datetime
from typing import Any

from pydantic import ValidationError

from pydelivery._normalize import split_csv
from pydelivery._seed import sample_packages
from pydelivery.config import LocalStoreConfig
from pydelivery.exceptions import DeliveryError, NotFoundError
from pydelivery.lifecycle import apply_status_change, coerce_status, is_terminal, next_status
from pydelivery.models._base import utcnow
from pydelivery.models.events import EventSource, PackageAdded, PackageRemoved, PackageUpdated
from pydelivery.models.package import Package, PackageStatus, StatusContext
from pydelivery.repository import Filters, PackageRepository, Subscriber, SubscriberSet, Unsubscribe
from pydelivery.storage import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore, StorageError

_logger = logging.getLogger(__name__)


def _parse_filter_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        _logger.debug("Ignoring unparseable date filter %r", value)
        return None


def matches_filters(package: Package, filters: Filters | None) -> bool:
    """Return whether *package* satisfies every supported key in *filters*."""
    if not filters:
        return True

    statuses = {token.upper() for token in split_csv(filters.get("status"))}
    if statuses and package.status.value not in statuses:
        return False

    priorities = {token.upper() for token in split_csv(filters.get("priority"))}
    if priorities and package.priority.value not in priorities:
        return False

    carrier = filters.get("carrier")
    if carrier and (package.carrier or "").lower() != str(carrier).strip().lower():
        return False

    person = filters.get("deliveryPersonId") or filters.get("delivery_person_id")
    if person and package.delivery_person_id != str(person):
        return False

    day = _parse_filter_date(filters.get("date"))
    return not (day is not None and package.created_at.date() != day)


def _resolve_storage(config: LocalStoreConfig, storage: KeyValueStore | None) -> KeyValueStore:
    if not config.enable_persistence:
        return MemoryKeyValueStore()
    if storage is not None:
        return storage
    if config.storage_path:
        return JsonFileKeyValueStore(config.storage_path)
    _logger.warning(
        "Persistence is enabled but neither storage nor storage_path is set; packages are kept in memory only"
    )
    return MemoryKeyValueStore()


class LocalPackageStore(PackageRepository):
    """Package repository persisted through a :class:`KeyValueStore`.

    Usage::

        async with LocalPackageStore(LocalStoreConfig(enable_simulation=False)) as store:
            pending = await store.list_packages({"status": "PENDING"})
    """

    def __init__(
        self,
        config: LocalStoreConfig | None = None,
        *,
        storage: KeyValueStore | None = None,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config or LocalStoreConfig()
        self._storage = _resolve_storage(self._config, storage)
        self._clock = clock
        self._rng = rng or random.Random()
        self._packages: list[Package] = []
        self._subscribers = SubscriberSet("LocalPackageStore")
        self._lock = asyncio.Lock()
        self._init_lock = asyncio.Lock()
        self._initialized = False
        self._closed = False
        self._simulation_task: asyncio.Task[None] | None = None

    @property
    def config(self) -> LocalStoreConfig:
        return self._config

    @property
    def storage(self) -> KeyValueStore:
        return self._storage

    @property
    def is_simulating(self) -> bool:
        return self._simulation_task is not None and not self._simulation_task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self._ensure_initialized()

    async def aclose(self) -> None:
        self._closed = True
        task = self._simulation_task
        self._simulation_task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            _logger.debug("Status simulation stopped")
        self._subscribers.clear()

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            if self._closed:
                raise DeliveryError("Local package store is closed")
            packages = await self._load()
            async with self._lock:
                self._packages = packages
                if not self._packages and self._config.seed_when_empty:
                    self._packages = sample_packages(self._clock())
                    try:
                        await self._persist()
                    except StorageError:
                        _logger.warning("Could not persist sample packages", exc_info=True)
                    _logger.debug("Seeded %d sample packages", len(self._packages))
            self._initialized = True
            _logger.debug("Local store ready with %d packages", len(self._packages))
            if self._config.enable_simulation:
                self._simulation_task = asyncio.get_running_loop().create_task(self._simulation_loop())
                _logger.debug("Status simulation started every %ss", self._config.simulation_interval)

    async def _load(self) -> list[Package]:
        key = self._config.storage_key
        try:
            raw = await self._storage.get(key)
        except StorageError:
            _logger.warning("Could not read stored packages, starting empty", exc_info=True)
            return []
        if not raw:
            return []
        try:
            records = json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning("Stored packages under %s are not valid JSON, starting empty", key)
            return []
        if not isinstance(records, list):
            _logger.warning("Stored packages under %s are not a list, starting empty", key)
            return []

        packages: list[Package] = []
        seen: set[str] = set()
        for record in records:
            try:
                package = Package.model_validate(record)
            except ValidationError as exc:
                _logger.warning("Skipping invalid stored package: %s", exc.errors()[:1])
                continue
            if package.id in seen:
                continue
            seen.add(package.id)
            packages.append(package)
        _logger.debug("Loaded %d packages from %s", len(packages), key)
        return packages

    def _evict(self) -> list[Package]:
        limit = self._config.max_storage_size
        if not self._config.auto_cleanup or len(self._packages) <= limit:
            return []
        excess = len(self._packages) - limit
        ranked = sorted(range(len(self._packages)), key=lambda i: (self._packages[i].created_at, i))
        dropped = set(ranked[:excess])
        evicted = [pkg for i, pkg in enumerate(self._packages) if i in dropped]
        self._packages = [pkg for i, pkg in enumerate(self._packages) if i not in dropped]
        _logger.debug("Evicted %d oldest packages, %d remain", len(evicted), len(self._packages))
        return evicted

    async def _persist(self) -> list[Package]:
        """Evict past capacity, then write the whole collection. Caller holds the lock."""
        evicted = self._evict()
        payload = json.dumps([pkg.to_wire() for pkg in self._packages], separators=(",", ":"))
        await self._storage.set(self._config.storage_key, payload)
        return evicted

    def _index_of(self, package_id: str) -> int | None:
        for index, package in enumerate(self._packages):
            if package.id == package_id:
                return index
        return None

    def _emit_evictions(self, evicted: list[Package]) -> None:
        for package in evicted:
            self._subscribers.notify(PackageRemoved(package_id=package.id, source=EventSource.LOCAL))

    # ------------------------------------------------------------------
    # Repository contract
    # ------------------------------------------------------------------

    async def list_packages(self, filters: Filters | None = None) -> list[Package]:
        await self._ensure_initialized()
        packages = [pkg for pkg in self._packages if matches_filters(pkg, filters)]
        _logger.debug("Listed %d of %d local packages", len(packages), len(self._packages))
        return packages

    async def get_package_detail(self, package_id: str) -> Package:
        await self._ensure_initialized()
        index = self._index_of(package_id)
        if index is None:
            raise NotFoundError(package_id)
        return self._packages[index]

    async def update_status(
        self,
        package_id: str,
        status: PackageStatus | str,
        context: StatusContext | None = None,
    ) -> Package:
        target = coerce_status(status)
        await self._ensure_initialized()
        async with self._lock:
            index = self._index_of(package_id)
            if index is None:
                raise NotFoundError(package_id)
            previous = self._packages[index]
            updated, evicted = await self._store_status(index, target, context)
        self._announce_status(previous, updated, evicted, EventSource.LOCAL)
        return updated

    async def _store_status(
        self,
        index: int,
        status: PackageStatus,
        context: StatusContext | None,
    ) -> tuple[Package, list[Package]]:
        """Apply *status* to the package at *index* and persist. Caller holds the lock."""
        snapshot = list(self._packages)
        updated = apply_status_change(self._packages[index], status, now=self._clock(), context=context)
        self._packages[index] = updated
        try:
            evicted = await self._persist()
        except Exception:
            self._packages = snapshot
            raise
        return updated, evicted

    def _announce_status(
        self,
        previous: Package,
        updated: Package,
        evicted: list[Package],
        source: EventSource,
    ) -> None:
        _logger.debug(
            "Package %s status %s -> %s (%s)",
            updated.id,
            previous.status.value,
            updated.status.value,
            source.value,
        )
        self._subscribers.notify(PackageUpdated(package=updated, source=source))
        self._emit_evictions(evicted)

    async def add_package(self, package: Package | Mapping[str, Any]) -> Package:
        """Insert *package*, replacing any stored record with the same id.

        A mapping without an ``id`` gets a generated ``PKG<epoch-ms>`` id.
        """
        if not isinstance(package, Package):
            data = dict(package)
            if not data.get("id"):
                data["id"] = f"PKG{int(self._clock().timestamp() * 1000)}"
            data.setdefault("createdAt", self._clock())
            package = Package.model_validate(data)

        await self._ensure_initialized()
        async with self._lock:
            snapshot = list(self._packages)
            index = self._index_of(package.id)
            if index is None:
                self._packages.append(package)
            else:
                self._packages[index] = package
            try:
                evicted = await self._persist()
            except Exception:
                self._packages = snapshot
                raise

        if index is None:
            _logger.debug("Added package %s", package.id)
            self._subscribers.notify(PackageAdded(package=package, source=EventSource.LOCAL))
        else:
            _logger.debug("Replaced package %s", package.id)
            self._subscribers.notify(PackageUpdated(package=package, source=EventSource.LOCAL))
        self._emit_evictions(evicted)
        return package

    async def remove_package(self, package_id: str) -> None:
        await self._ensure_initialized()
        async with self._lock:
            index = self._index_of(package_id)
            if index is None:
                raise NotFoundError(package_id)
            snapshot = list(self._packages)
            del self._packages[index]
            try:
                evicted = await self._persist()
            except Exception:
                self._packages = snapshot
                raise

        _logger.debug("Removed package %s", package_id)
        self._subscribers.notify(PackageRemoved(package_id=package_id, source=EventSource.LOCAL))
        self._emit_evictions(evicted)

    async def clear_storage(self) -> None:
        """Delete the stored collection and empty the in-memory view."""
        await self._ensure_initialized()
        async with self._lock:
            await self._storage.delete(self._config.storage_key)
            self._packages = []
        _logger.debug("Cleared local storage key %s", self._config.storage_key)

    def subscribe(self, callback: Subscriber) -> Unsubscribe:
        return self._subscribers.add(callback)

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    async def simulate_tick(self) -> Package | None:
        """Advance one random non-terminal package by exactly one edge.

        The target is computed under the store lock from the status held
        there. A package that changed (or left) since it was picked is
        skipped. Failures are logged, never raised. Returns the updated
        package or ``None`` when nothing moved.
        """
        try:
            await self._ensure_initialized()
            candidates = [pkg for pkg in self._packages if not is_terminal(pkg.status)]
            if not candidates:
                _logger.debug("Simulation tick: no package in flight")
                return None
            picked = self._rng.choice(candidates)
            return await self._advance(picked.id, picked.status)
        except Exception:
            _logger.warning("Simulation tick failed", exc_info=True)
            return None

    async def _advance(self, package_id: str, observed: PackageStatus) -> Package | None:
        async with self._lock:
            index = self._index_of(package_id)
            if index is None:
                _logger.debug("Simulation tick: package %s is gone", package_id)
                return None
            previous = self._packages[index]
            if previous.status is not observed or is_terminal(previous.status):
                _logger.debug(
                    "Simulation tick: package %s moved to %s meanwhile, skipped",
                    package_id,
                    previous.status.value,
                )
                return None
            target = next_status(previous.status, self._rng, delivered_ratio=self._config.delivered_ratio)
            if target is None:
                return None
            updated, evicted = await self._store_status(index, target, None)
        self._announce_status(previous, updated, evicted, EventSource.SIMULATION)
        return updated

    async def _simulation_loop(self) -> None:
        interval = self._config.simulation_interval
        while True:
            await asyncio.sleep(interval)
            await self.simulate_tick()
