"""Network-backed package store.

Reads go cache-then-network with a stale fallback; writes go to the
network and, while the store is offline, into a FIFO queue that is
replayed once connectivity returns. A push channel invalidates cached
entries and re-emits server changes to subscribers.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, NamedTuple
from urllib.parse import urlencode

import aiohttp
from pydantic import ValidationError

from pydelivery._cache import TtlCache
from pydelivery._constants import ALL_PACKAGES_KEY
from pydelivery._normalize import join_csv
from pydelivery._push import MqttPushChannel, NullPushChannel, PushChannel
from pydelivery._queue import DrainResult, ExpiredCallback, OfflineQueue
from pydelivery._retry import RetryPolicy
from pydelivery._transport import HttpTransport, Transport
from pydelivery.config import PushConfig, RemoteStoreConfig
from pydelivery.exceptions import CONNECTIVITY_ERRORS, DeliveryConfigError, DeliveryError, InvalidResponseError
from pydelivery.lifecycle import coerce_status
from pydelivery.models._base import utcnow
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
    StatusChangePush,
    parse_push_event,
)
from pydelivery.models.mutations import (
    CreatePackageMutation,
    DeletePackageMutation,
    QueuedMutation,
    UpdateStatusMutation,
)
from pydelivery.models.package import Package, PackageStatus, StatusContext
from pydelivery.repository import Filters, PackageRepository, Subscriber, SubscriberSet, Unsubscribe

_logger = logging.getLogger(__name__)


class BatchStatusUpdate(NamedTuple):
    package_id: str
    status: PackageStatus | str
    context: StatusContext | None = None


@dataclass(frozen=True)
class HealthStatus:
    healthy: bool
    checked_at: datetime
    response: Any = None
    error: str | None = None


@dataclass(frozen=True)
class StoreStatus:
    online: bool
    push_connected: bool
    cache_size: int
    queue_size: int
    queue_dropped: int
    subscriber_count: int
    base_url: str
    caching_enabled: bool


def _detail_key(package_id: str) -> str:
    return f"package_{package_id}"


def _history_key(package_id: str) -> str:
    return f"history_{package_id}"


def _query_params(filters: Filters | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for key, value in (filters or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            params[str(key)] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            params[str(key)] = str(value)
        else:
            joined = join_csv(value)
            if joined:
                params[str(key)] = joined
    return params


def _list_key(params: Mapping[str, str]) -> str:
    if not params:
        return ALL_PACKAGES_KEY
    return f"{ALL_PACKAGES_KEY}?{urlencode(sorted(params.items()))}"


def _parse_package(data: Any, endpoint: str, *, fallback_id: str | None = None) -> Package:
    if not isinstance(data, dict):
        raise InvalidResponseError(f"Expected a package object from {endpoint}", endpoint=endpoint)
    if fallback_id and not data.get("id"):
        data = {**data, "id": fallback_id}
    try:
        return Package.model_validate(data)
    except ValidationError as exc:
        raise InvalidResponseError(f"Malformed package from {endpoint}: {exc.errors()[:1]}", endpoint=endpoint) from exc


def _parse_packages(data: Any, endpoint: str) -> list[Package]:
    if isinstance(data, dict):
        data = data.get("packages", data.get("items"))
    if not isinstance(data, list):
        raise InvalidResponseError(f"Expected a package list from {endpoint}", endpoint=endpoint)
    return [_parse_package(item, endpoint) for item in data]


def _encode_cached(data: Any) -> Any:
    if isinstance(data, Package):
        return data.to_wire()
    if isinstance(data, tuple | list):
        return [_encode_cached(item) for item in data]
    return data


def _decode_cached(key: str, data: Any) -> Any:
    """Rebuild the in-memory shape of a cached value from its key family."""
    if key.startswith("package_"):
        return Package.model_validate(data)
    if key.startswith(ALL_PACKAGES_KEY):
        if not isinstance(data, list):
            raise TypeError(f"Expected a package list for {key}")
        return tuple(Package.model_validate(item) for item in data)
    if key.startswith("history_"):
        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise TypeError(f"Expected a list of events for {key}")
        return tuple(data)
    return data


def _build_push_channel(push: PushConfig) -> PushChannel:
    if push.enabled and push.host:
        return MqttPushChannel(push, logger=_logger)
    return NullPushChannel()


class RemotePackageStore(PackageRepository):
    """Package repository backed by the delivery REST API.

    Usage::

        async with RemotePackageStore(RemoteStoreConfig.from_env()) as store:
            packages = await store.list_packages({"status": "PENDING,ASSIGNED"})
    """

    def __init__(
        self,
        config: RemoteStoreConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        push_channel: PushChannel | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_queue_expired: ExpiredCallback | None = None,
    ) -> None:
        self._config = config or RemoteStoreConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._clock = clock
        self._sleep = sleep
        self._owns_retry = retry_policy is None
        self._owns_transport = transport is None
        self._owns_push = push_channel is None
        self._retry = retry_policy or RetryPolicy(
            max_attempts=self._config.retry_attempts,
            base_delay=self._config.retry_delay,
        )
        self._cache = TtlCache(
            default_ttl=self._config.cache_ttl,
            max_entries=self._config.max_cache_entries,
            clock=monotonic,
        )
        self._queue = OfflineQueue(
            max_age=self._config.queue_max_age,
            max_attempts=self._config.queue_max_attempts,
            max_size=self._config.queue_max_size,
            clock=monotonic,
            on_expired=on_queue_expired,
        )
        self._push = push_channel if push_channel is not None else _build_push_channel(self._config.push)
        self._subscribers = SubscriberSet("RemotePackageStore")
        self._online = True
        self._started = False
        self._drain_task: asyncio.Task[None] | None = None

    @property
    def config(self) -> RemoteStoreConfig:
        return self._config

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def cache(self) -> TtlCache:
        return self._cache

    @property
    def queue(self) -> OfflineQueue:
        return self._queue

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open the HTTP session, connect the push channel and start draining."""
        if self._started:
            return
        self._started = True
        await self._ensure_transport()
        self._start_push()
        self._drain_task = asyncio.get_running_loop().create_task(self._drain_loop())
        _logger.debug("Remote store started for %s", self._config.base_url)

    async def aclose(self) -> None:
        task = self._drain_task
        self._drain_task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._push.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None
        self._subscribers.clear()
        self._started = False

    def _start_push(self) -> None:
        try:
            self._push.start(self._on_push_payload)
        except Exception:
            _logger.warning("Push channel startup failed; continuing without push", exc_info=True)

    async def _ensure_transport(self) -> Transport:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(
                self._http_session,
                base_url=self._config.base_url,
                api_key=self._config.api_key,
                timeout=self._config.timeout,
            )
        return self._transport

    def update_config(self, **changes: Any) -> RemoteStoreConfig:
        """Apply *changes* to the live configuration.

        Retry, cache and queue bounds take effect immediately. A changed
        endpoint or credential rebuilds the HTTP transport on the next
        request, and a changed ``push`` reconnects the push channel. Injected
        collaborators are never replaced.
        """
        previous = self._config
        try:
            config = dataclasses.replace(previous, **changes)
        except TypeError as exc:
            raise DeliveryConfigError(f"Invalid remote store setting: {exc}") from exc
        self._config = config

        if self._owns_retry:
            self._retry = RetryPolicy(max_attempts=config.retry_attempts, base_delay=config.retry_delay)
        self._cache.reconfigure(default_ttl=config.cache_ttl, max_entries=config.max_cache_entries)
        if previous.enable_caching and not config.enable_caching:
            self._cache.clear()
        self._queue.reconfigure(
            max_age=config.queue_max_age,
            max_attempts=config.queue_max_attempts,
            max_size=config.queue_max_size,
        )
        if self._owns_transport and (
            (config.base_url, config.api_key, config.timeout) != (previous.base_url, previous.api_key, previous.timeout)
        ):
            self._transport = None
        if self._owns_push and config.push != previous.push:
            self._push.stop()
            self._push = _build_push_channel(config.push)
            if self._started:
                self._start_push()

        _logger.info("Remote store configuration updated: %s", ", ".join(sorted(changes)))
        return config

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        if online:
            _logger.info("Remote store back online (%d queued mutations)", len(self._queue))
        else:
            _logger.warning("Remote store offline; mutations will be queued")

    def _note_connectivity_loss(self, exc: DeliveryError) -> None:
        if self._config.auto_detect_offline and self._online:
            _logger.debug("Connectivity failure on %s: %s", exc.endpoint, exc)
            self.set_online(False)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Mapping[str, str] | None = None,
        parse: Callable[[Any], Any] = lambda body: body,
    ) -> Any:
        transport = await self._ensure_transport()

        async def _attempt() -> Any:
            body = await transport.request(method, path, json_body=json_body, params=params)
            return parse(body)

        try:
            return await self._retry.run(_attempt, description=f"{method} {path}", sleep=self._sleep)
        except CONNECTIVITY_ERRORS as exc:
            self._note_connectivity_loss(exc)
            raise

    async def health_check(self) -> HealthStatus:
        """Probe the health endpoint once; never raises."""
        path = self._config.endpoint("health")
        checked_at = self._clock()
        try:
            transport = await self._ensure_transport()
            body = await transport.request("GET", path)
        except DeliveryError as exc:
            _logger.debug("Health check failed: %s", exc)
            return HealthStatus(healthy=False, checked_at=checked_at, error=exc.message)
        healthy = isinstance(body, dict) and (body.get("status") == "ok" or body.get("healthy") is True)
        _logger.debug("Health check result: %s", healthy)
        return HealthStatus(healthy=healthy, checked_at=checked_at, response=body)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def _cached_read(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        *,
        ttl: float | None = None,
    ) -> Any:
        caching = self._config.enable_caching
        if caching:
            hit = self._cache.get(key)
            if hit is not None:
                _logger.debug("Cache hit for %s", key)
                return hit
        try:
            result = await fetch()
        except DeliveryError as exc:
            if caching:
                stale = self._cache.get(key, allow_stale=True)
                if stale is not None:
                    _logger.warning("Serving stale %s after %s", key, exc.kind)
                    return stale
            raise
        if caching:
            self._cache.set(key, result, ttl)
        return result

    async def list_packages(self, filters: Filters | None = None) -> list[Package]:
        params = _query_params(filters)
        path = self._config.endpoint("packages")

        async def _fetch() -> tuple[Package, ...]:
            return tuple(
                await self._request("GET", path, params=params or None, parse=lambda b: _parse_packages(b, path))
            )

        packages = await self._cached_read(_list_key(params), _fetch)
        return list(packages)

    async def get_package_detail(self, package_id: str) -> Package:
        path = self._config.endpoint("package_detail", package_id)

        async def _fetch() -> Package:
            return await self._request("GET", path, parse=lambda b: _parse_package(b, path))

        return await self._cached_read(_detail_key(package_id), _fetch)

    async def get_package_history(self, package_id: str) -> list[dict[str, Any]]:
        """Tracking events of one package, cached for ``history_cache_ttl``."""
        path = self._config.endpoint("history", package_id)

        def _parse(body: Any) -> tuple[dict[str, Any], ...]:
            if isinstance(body, dict):
                body = body.get("events", body.get("history"))
            if not isinstance(body, list) or not all(isinstance(item, dict) for item in body):
                raise InvalidResponseError(f"Expected a list of events from {path}", endpoint=path)
            return tuple(body)

        async def _fetch() -> tuple[dict[str, Any], ...]:
            return await self._request("GET", path, parse=_parse)

        events = await self._cached_read(_history_key(package_id), _fetch, ttl=self._config.history_cache_ttl)
        return [dict(event) for event in events]

    async def search_packages(self, query: str, filters: Filters | None = None) -> list[Package]:
        """Server-side search; results are not cached."""
        path = self._config.endpoint("search")
        params = {"q": query or "", **_query_params(filters)}
        packages = await self._request("GET", path, params=params, parse=lambda b: _parse_packages(b, path))
        _logger.debug("Search %r returned %d packages", query, len(packages))
        return packages

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def clear_expired_cache(self) -> int:
        return self._cache.purge_expired()

    def export_cache(self) -> dict[str, Any]:
        """JSON-ready snapshot of the response cache, for backup or debugging."""
        entries = self._cache.export_entries()
        for entry in entries.values():
            entry["data"] = _encode_cached(entry["data"])
        return {
            "timestamp": self._clock().isoformat(),
            "totalEntries": len(entries),
            "cache": entries,
        }

    def import_cache(self, snapshot: Mapping[str, Any]) -> int:
        """Restore still-fresh entries from :meth:`export_cache` output.

        Entries that are expired or fail to parse are skipped. Returns the
        number of entries imported.
        """
        if not isinstance(snapshot, Mapping) or not isinstance(snapshot.get("cache", {}), Mapping):
            raise ValueError("Invalid cache snapshot")
        decoded: dict[str, Any] = {}
        for key, entry in snapshot.get("cache", {}).items():
            if not isinstance(entry, Mapping):
                continue
            try:
                data = _decode_cached(str(key), entry.get("data"))
            except (ValidationError, TypeError, ValueError) as exc:
                _logger.debug("Skipping cache snapshot entry %s: %s", key, exc)
                continue
            decoded[str(key)] = {**entry, "data": data}
        imported = self._cache.import_entries(decoded)
        _logger.info("Imported %d cache entries", imported)
        return imported

    def _invalidate_lists(self) -> None:
        self._cache.invalidate_prefix(ALL_PACKAGES_KEY)

    def _invalidate_package(self, package_id: str) -> None:
        self._cache.invalidate(_detail_key(package_id))
        self._cache.invalidate(_history_key(package_id))
        self._invalidate_lists()

    def _patch_cached_lists(self, package_id: str, replacement: Package | None) -> None:
        """Swap (or drop) *package_id* in every cached list entry."""
        for key in self._cache.keys():
            if not key.startswith(ALL_PACKAGES_KEY):
                continue
            entry = self._cache.entry(key)
            if entry is None:
                continue
            patched: list[Package] = []
            for package in entry.data:
                if package.id != package_id:
                    patched.append(package)
                elif replacement is not None:
                    patched.append(replacement)
            self._cache.replace(key, tuple(patched))

    def _append_to_cached_list(self, package: Package) -> None:
        entry = self._cache.entry(ALL_PACKAGES_KEY)
        if entry is not None and all(item.id != package.id for item in entry.data):
            self._cache.replace(ALL_PACKAGES_KEY, (*entry.data, package))

    def _known_package(self, package_id: str) -> Package | None:
        cached = self._cache.get(_detail_key(package_id), allow_stale=True)
        if cached is not None:
            return cached
        for key in self._cache.keys():
            if key.startswith(ALL_PACKAGES_KEY):
                entry = self._cache.entry(key)
                for package in entry.data if entry is not None else ():
                    if package.id == package_id:
                        return package
        return None

    # ------------------------------------------------------------------
    # Network write path
    # ------------------------------------------------------------------

    def _status_payload(self, status: PackageStatus, context: StatusContext | None) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": status.value, "timestamp": self._clock().isoformat()}
        if context is not None:
            payload.update(context.to_wire())
        return payload

    async def _send_update(
        self,
        package_id: str,
        status: PackageStatus,
        context: StatusContext | None,
        *,
        source: EventSource,
    ) -> Package:
        path = self._config.endpoint("update_status", package_id)
        package = await self._request(
            "PATCH",
            path,
            json_body=self._status_payload(status, context),
            parse=lambda b: _parse_package(b, path, fallback_id=package_id),
        )
        if self._config.enable_caching:
            self._cache.set(_detail_key(package_id), package)
            self._cache.invalidate(_history_key(package_id))
            self._invalidate_lists()
        self._subscribers.notify(PackageUpdated(package=package, source=source))
        return package

    async def _send_create(self, package: Package, *, source: EventSource) -> Package:
        path = self._config.endpoint("create")
        created = await self._request(
            "POST",
            path,
            json_body=package.to_wire(),
            parse=lambda b: _parse_package(b, path, fallback_id=package.id),
        )
        if self._config.enable_caching:
            if created.id != package.id:
                self._cache.invalidate(_detail_key(package.id))
            self._cache.set(_detail_key(created.id), created)
            self._invalidate_lists()
        self._subscribers.notify(PackageAdded(package=created, source=source))
        return created

    async def _send_delete(self, package_id: str, *, source: EventSource) -> None:
        path = self._config.endpoint("delete", package_id)
        await self._request("DELETE", path)
        self._invalidate_package(package_id)
        self._subscribers.notify(PackageRemoved(package_id=package_id, source=source))

    # ------------------------------------------------------------------
    # Repository contract: writes
    # ------------------------------------------------------------------

    def _queue_or_raise(self, exc: DeliveryError) -> None:
        """Re-raise *exc* unless the failure took the store offline."""
        if self._online:
            raise exc

    async def update_status(
        self,
        package_id: str,
        status: PackageStatus | str,
        context: StatusContext | None = None,
    ) -> Package:
        target = coerce_status(status)
        if self._online:
            try:
                return await self._send_update(package_id, target, context, source=EventSource.REMOTE)
            except DeliveryError as exc:
                self._queue_or_raise(exc)
        return self._enqueue_update(package_id, target, context)

    def _enqueue_update(self, package_id: str, status: PackageStatus, context: StatusContext | None) -> Package:
        self._queue.enqueue(
            UpdateStatusMutation(
                target_id=package_id,
                enqueued_at=self._queue.now(),
                status=status,
                context=context or StatusContext(),
            )
        )
        base = self._known_package(package_id) or Package(id=package_id)
        changes: dict[str, Any] = {"status": status, "updated_at": self._clock()}
        if context is not None and context.notes is not None:
            changes["notes"] = context.notes
        if context is not None and context.location is not None:
            changes["last_location"] = context.location
        optimistic = base.with_changes(**changes)

        if self._config.enable_caching:
            self._cache.set(_detail_key(package_id), optimistic)
            self._patch_cached_lists(package_id, optimistic)
        _logger.debug("Optimistic status %s for %s while offline", status.value, package_id)
        self._subscribers.notify(PackageUpdated(package=optimistic, source=EventSource.OPTIMISTIC))
        return optimistic

    async def batch_update_status(
        self,
        updates: Iterable[BatchStatusUpdate | tuple[Any, ...]],
    ) -> list[Package]:
        """Update several packages in one request."""
        items = [BatchStatusUpdate(*update) for update in updates]
        if not items:
            raise ValueError("At least one status update is required")
        resolved = [(item.package_id, coerce_status(item.status), item.context) for item in items]

        if self._online:
            try:
                return await self._send_batch(resolved)
            except DeliveryError as exc:
                self._queue_or_raise(exc)
        return [self._enqueue_update(package_id, status, context) for package_id, status, context in resolved]

    async def _send_batch(
        self,
        updates: Sequence[tuple[str, PackageStatus, StatusContext | None]],
    ) -> list[Package]:
        path = self._config.endpoint("batch_status")
        body = {
            "updates": [
                {"packageId": package_id, **self._status_payload(status, context)}
                for package_id, status, context in updates
            ]
        }
        packages: list[Package] = await self._request(
            "PATCH",
            path,
            json_body=body,
            parse=lambda b: _parse_packages(b if b is not None else [], path),
        )
        if self._config.enable_caching:
            for package in packages:
                self._cache.set(_detail_key(package.id), package)
            self._invalidate_lists()
        for package in packages:
            self._subscribers.notify(PackageUpdated(package=package, source=EventSource.REMOTE))
        _logger.debug("Batch status update applied to %d packages", len(packages))
        return packages

    async def add_package(self, package: Package | Mapping[str, Any]) -> Package:
        """Create *package* on the server (queued while offline)."""
        if not isinstance(package, Package):
            data = dict(package)
            if not data.get("id"):
                data["id"] = f"PKG{int(self._clock().timestamp() * 1000)}"
            package = Package.model_validate(data)

        if self._online:
            try:
                return await self._send_create(package, source=EventSource.REMOTE)
            except DeliveryError as exc:
                self._queue_or_raise(exc)

        self._queue.enqueue(
            CreatePackageMutation(target_id=package.id, enqueued_at=self._queue.now(), package=package)
        )
        if self._config.enable_caching:
            self._cache.set(_detail_key(package.id), package)
            self._append_to_cached_list(package)
        self._subscribers.notify(PackageAdded(package=package, source=EventSource.OPTIMISTIC))
        return package

    async def remove_package(self, package_id: str) -> None:
        if self._online:
            try:
                await self._send_delete(package_id, source=EventSource.REMOTE)
                return
            except DeliveryError as exc:
                self._queue_or_raise(exc)

        self._queue.enqueue(DeletePackageMutation(target_id=package_id, enqueued_at=self._queue.now()))
        self._cache.invalidate(_detail_key(package_id))
        self._patch_cached_lists(package_id, None)
        self._subscribers.notify(PackageRemoved(package_id=package_id, source=EventSource.OPTIMISTIC))

    def subscribe(self, callback: Subscriber) -> Unsubscribe:
        return self._subscribers.add(callback)

    # ------------------------------------------------------------------
    # Offline queue
    # ------------------------------------------------------------------

    async def _replay(self, mutation: QueuedMutation) -> None:
        match mutation:
            case UpdateStatusMutation():
                await self._send_update(mutation.target_id, mutation.status, mutation.context, source=EventSource.QUEUE)
            case CreatePackageMutation():
                await self._send_create(mutation.package, source=EventSource.QUEUE)
            case DeletePackageMutation():
                await self._send_delete(mutation.target_id, source=EventSource.QUEUE)

    async def drain_queue(self) -> DrainResult:
        """Replay queued mutations now, in FIFO order."""
        return await self._queue.drain(self._replay)

    async def _drain_tick(self) -> None:
        self._queue.purge_expired()
        if not self._online:
            if not self._config.auto_detect_offline:
                return
            health = await self.health_check()
            if not health.healthy:
                return
            self.set_online(True)
        if self._queue:
            await self.drain_queue()

    async def _drain_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.drain_interval)
            try:
                await self._drain_tick()
            except Exception:
                _logger.warning("Offline queue drain tick failed", exc_info=True)

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------

    def _on_push_payload(self, payload: dict[str, Any]) -> None:
        """Handle a decoded push envelope (on the event loop thread)."""
        try:
            event = parse_push_event(payload)
        except ValidationError:
            _logger.debug("Ignoring unrecognised push envelope type=%s", payload.get("type"))
            return
        self._handle_push_event(event)

    def _handle_push_event(self, event: PushEvent) -> None:
        _logger.debug("Push %s for %s", event.type, event.package_id)
        match event:
            case PackageUpdatePush(package_id=package_id, package=package):
                self._invalidate_package(package_id)
                self._subscribers.notify(
                    PackageUpdated(package_id=package_id, package=package, source=EventSource.PUSH)
                )
            case StatusChangePush(package_id=package_id):
                self._invalidate_package(package_id)
                self._subscribers.notify(
                    PackageStatusChanged(
                        package_id=package_id,
                        old_status=event.old_status,
                        new_status=event.new_status,
                        package=event.package,
                        source=EventSource.PUSH,
                    )
                )
            case PackageCreatedPush(package=package):
                self._invalidate_lists()
                self._subscribers.notify(PackageAdded(package=package, source=EventSource.PUSH))
            case PackageDeletedPush(package_id=package_id):
                self._invalidate_package(package_id)
                self._subscribers.notify(PackageRemoved(package_id=package_id, source=EventSource.PUSH))

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def status(self) -> StoreStatus:
        return StoreStatus(
            online=self._online,
            push_connected=self._push.is_connected,
            cache_size=len(self._cache),
            queue_size=len(self._queue),
            queue_dropped=self._queue.dropped,
            subscriber_count=len(self._subscribers),
            base_url=self._config.base_url,
            caching_enabled=self._config.enable_caching,
        )
