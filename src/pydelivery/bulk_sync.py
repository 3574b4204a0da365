"""On-demand bulk synchronization against the aggregation endpoint."""

from __future__ import annotations

import asyncio
import logging
import random
import secrets
import time
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from pydelivery._transport import HttpTransport, Transport
from pydelivery.config import BulkSyncConfig
from pydelivery.exceptions import DeliveryError, InvalidResponseError, ServerError, SyncTimeoutError
from pydelivery.markers import build_markers
from pydelivery.models._base import utcnow
from pydelivery.models.location import LocationFix
from pydelivery.models.sync import (
    LocationFingerprint,
    SyncFilters,
    SyncPackage,
    SyncReport,
    SyncRequest,
    SyncResponse,
    SyncResult,
    SyncStats,
    SyncSummary,
)
from pydelivery.notify import Notifier, format_sync_message, report_error
from pydelivery.repository import PackageRepository

_logger = logging.getLogger(__name__)


class LocationProvider(Protocol):
    """Source of the device position sent with a sync request."""

    async def get_current_location(self) -> LocationFix:
        ...


def summarize(packages: Iterable[SyncPackage]) -> SyncSummary:
    total = with_route = geocoding_ready = with_stamps = stamps_total = with_query = 0
    for package in packages:
        total += 1
        with_route += package.is_route_viable
        geocoding_ready += package.is_geocoding_ready
        codes = len(package.stamp_codes)
        with_stamps += codes > 0
        stamps_total += codes
        with_query += package.destination_query is not None
    return SyncSummary(
        total_returned=total,
        with_route=with_route,
        geocoding_ready=geocoding_ready,
        with_stamps=with_stamps,
        stamps_total=stamps_total,
        with_destination_query=with_query,
    )


def parse_sync_response(body: Any, *, endpoint: str = "") -> SyncResponse:
    """Validate a decoded sync body, failing fast on the first contract violation."""
    if not isinstance(body, dict):
        raise InvalidResponseError(f"Sync response is not an object: {type(body).__name__}", endpoint=endpoint)
    data = body["data"] if isinstance(body.get("data"), dict) else body

    success = data.get("success")
    if success is False:
        error = data.get("error")
        message = error.get("message") if isinstance(error, dict) else None
        raise ServerError(str(message or "Unknown error"), endpoint=endpoint)
    if success is not True:
        raise InvalidResponseError(
            f"Sync response has no boolean success flag: {success!r}",
            endpoint=endpoint,
        )

    packages = data.get("packages")
    if not isinstance(packages, list):
        raise InvalidResponseError(
            f"Expected packages array, got: {type(packages).__name__}",
            endpoint=endpoint,
        )
    if not all(isinstance(item, dict) for item in packages):
        raise InvalidResponseError("Package entries must be objects", endpoint=endpoint)

    try:
        return SyncResponse.model_validate(data)
    except ValidationError as exc:
        raise InvalidResponseError(f"Malformed sync response: {exc.errors()[:1]}", endpoint=endpoint) from exc


def _log_orphaned_request(task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _logger.debug("Timed-out sync request finished with %s", exc)
    else:
        _logger.debug("Timed-out sync request completed after the deadline")


class BulkSyncClient:
    """Fetch the aggregated package batch and derive summary, markers and stats.

    Usage::

        async with BulkSyncClient(BulkSyncConfig.from_env(), repository=store) as client:
            result = await client.sync()
            print(result.summary.with_route, len(result.markers))
    """

    def __init__(
        self,
        config: BulkSyncConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        repository: PackageRepository | None = None,
        notifier: Notifier | None = None,
        location_provider: LocationProvider | None = None,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config or BulkSyncConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._repository = repository
        self._notifier = notifier
        self._location_provider = location_provider
        self._clock = clock
        self._rng = rng or random.Random()
        self._device_id = f"device_{self._config.platform}_{secrets.token_hex(5)[:9]}"
        self._stats = SyncStats()
        self._last_packages: list[SyncPackage] = []
        self._seen_ids: set[str] = set()
        self._seen_codes: set[str] = set()

    async def __aenter__(self) -> BulkSyncClient:
        await self._ensure_transport()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def stats(self) -> SyncStats:
        return self._stats

    @property
    def last_packages(self) -> list[SyncPackage]:
        return list(self._last_packages)

    async def _ensure_transport(self) -> Transport:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            # The exchange budget is enforced by ``sync``; the socket timeout
            # only bounds a request left running after that budget expired.
            self._transport = HttpTransport(
                self._http_session,
                timeout=self._config.timeout * 2,
                unwrap=False,
            )
        return self._transport

    def build_request(self, location: LocationFix | None = None) -> SyncRequest:
        now = self._clock()
        geocoding = self._config.geocoding_enabled
        return SyncRequest(
            timestamp=now,
            device_id=self._device_id,
            location=LocationFingerprint.from_fix(location) if location is not None else None,
            request_id=f"sync_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}",
            filters=SyncFilters(
                geocoding_ready=geocoding,
                date_from=now - timedelta(days=self._config.lookback_days),
            ),
            limit=self._config.limit,
            include_metadata=self._config.include_metadata,
            enable_geocoding=geocoding,
        )

    async def _current_location(self) -> LocationFix | None:
        if self._location_provider is None:
            return None
        try:
            return await self._location_provider.get_current_location()
        except Exception:
            _logger.warning("Location fix unavailable, syncing without location", exc_info=True)
            return None

    async def sync(self, location: LocationFix | None = None) -> SyncResult:
        """Run one sync exchange.

        Raises a classified :class:`~pydelivery.exceptions.DeliveryError`
        (after reporting it to the notifier, if any) on failure.
        """
        try:
            return await self._sync(location)
        except DeliveryError as exc:
            _logger.warning("Sync failed: %s (%s)", exc.message, exc.kind)
            if self._notifier is not None:
                report_error(self._notifier, exc)
            raise

    async def _sync(self, location: LocationFix | None) -> SyncResult:
        if location is None:
            location = await self._current_location()
        request = self.build_request(location)
        endpoint = self._config.endpoint
        transport = await self._ensure_transport()
        _logger.debug(
            "Starting sync device=%s has_location=%s limit=%d",
            request.device_id,
            request.location is not None,
            request.limit,
        )

        task = asyncio.ensure_future(transport.request("POST", endpoint, json_body=request.to_wire()))
        try:
            body = await asyncio.wait_for(asyncio.shield(task), self._config.timeout)
        except TimeoutError as exc:
            task.add_done_callback(_log_orphaned_request)
            raise SyncTimeoutError(f"Sync exceeded {self._config.timeout}s", endpoint=endpoint) from exc

        response = parse_sync_response(body, endpoint=endpoint)
        result, new_ids = self._apply(response)
        await self._feed_repository([package for package in response.packages if package.id in new_ids])
        if self._notifier is not None:
            self._notifier.notify("Sync complete", format_sync_message(result))
        return result

    def _apply(self, response: SyncResponse) -> tuple[SyncResult, set[str]]:
        packages = response.packages
        now = self._clock()
        summary = summarize(packages)
        markers = build_markers(
            packages,
            rng=self._rng,
            synced_at=now,
            fallback_latitude=self._config.fallback_latitude,
            fallback_longitude=self._config.fallback_longitude,
            jitter=self._config.placeholder_jitter,
        )

        ids = {package.id for package in packages}
        codes = {code for package in packages for code in package.stamp_codes}
        new_ids = ids - self._seen_ids
        new_codes = codes - self._seen_codes
        self._seen_ids |= ids
        self._seen_codes |= codes

        previous = self._stats
        self._stats = SyncStats(
            sync_count=previous.sync_count + 1,
            last_sync=response.timestamp or now,
            total_packages=response.total_packages,
            returned_packages=response.returned_packages or len(packages),
            cumulative_stamps=previous.cumulative_stamps + summary.stamps_total,
            cumulative_destination_queries=previous.cumulative_destination_queries + summary.with_destination_query,
            distinct_stamp_codes=len(self._seen_codes),
            distinct_packages=len(self._seen_ids),
            new_packages=len(new_ids),
            new_stamp_codes=len(new_codes),
        )
        self._last_packages = list(packages)
        _logger.debug(
            "Sync #%d: %d of %d packages, %d viable, %d markers",
            self._stats.sync_count,
            summary.total_returned,
            response.total_packages,
            summary.with_route,
            len(markers),
        )
        return SyncResult(response=response, summary=summary, stats=self._stats, markers=markers), new_ids

    async def _feed_repository(self, packages: list[SyncPackage]) -> None:
        if self._repository is None:
            return
        for package in packages:
            try:
                await self._repository.add_package(package.to_package())
            except Exception:
                _logger.warning("Could not feed synced package %s to repository", package.id, exc_info=True)

    def stats_report(self) -> SyncReport:
        """Statistics of the last synced batch."""
        packages = self._last_packages
        stats = self._stats
        if not packages:
            return SyncReport(last_sync=stats.last_sync, sync_count=stats.sync_count)
        carriers = Counter(package.carrier or "unknown" for package in packages)
        return SyncReport(
            synced=len(packages),
            total_on_server=stats.total_packages,
            viable=sum(package.is_route_viable for package in packages),
            geocoding_ready=sum(package.is_geocoding_ready for package in packages),
            with_phone=sum(1 for package in packages if package.phone),
            stamps_total=sum(len(package.stamp_codes) for package in packages),
            with_destination_query=sum(1 for package in packages if package.destination_query),
            average_confidence=sum(package.quality.address_confidence for package in packages) / len(packages),
            carriers=sorted(carriers.items(), key=lambda item: (-item[1], item[0])),
            last_sync=stats.last_sync,
            sync_count=stats.sync_count,
        )
