from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from conftest import FakeTransport, package_payload

from pydelivery._push import PayloadHandler, decode_push_payload
from pydelivery.models.events import (
    EventSource,
    PackageAdded,
    PackageRemoved,
    PackageStatusChanged,
    PackageUpdated,
)
from pydelivery.models.package import PackageStatus
from pydelivery.remote_store import RemotePackageStore

MakeRemote = Callable[..., RemotePackageStore]


class _FakePushChannel:
    def __init__(self, *, fail_start: bool = False) -> None:
        self.handler: PayloadHandler | None = None
        self.stopped = 0
        self._fail_start = fail_start

    @property
    def is_connected(self) -> bool:
        return self.handler is not None

    def start(self, on_payload: PayloadHandler) -> None:
        if self._fail_start:
            raise OSError("broker unreachable")
        self.handler = on_payload

    def stop(self) -> None:
        self.stopped += 1
        self.handler = None


async def _warm_cache(store: RemotePackageStore, transport: FakeTransport) -> None:
    transport.add("GET", "/packages", [package_payload("A"), package_payload("B")])
    transport.add("GET", "/packages/A", package_payload("A"))
    transport.add("GET", "/packages/A/history", [])
    await store.list_packages()
    await store.get_package_detail("A")
    await store.get_package_history("A")


def test_decode_push_payload() -> None:
    assert decode_push_payload(b'{"type": "packageDeleted", "packageId": "A"}')["packageId"] == "A"
    with pytest.raises(ValueError):
        decode_push_payload(b"[1, 2]")
    with pytest.raises(ValueError):
        decode_push_payload(b"not json")


@pytest.mark.asyncio
async def test_status_change_push_invalidates_and_reemits(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    await _warm_cache(store, transport)
    events: list[Any] = []
    store.subscribe(events.append)

    store._on_push_payload(  # type: ignore[attr-defined]
        {"type": "statusChange", "packageId": "A", "oldStatus": "PENDING", "newStatus": "ASSIGNED"}
    )

    assert "package_A" not in store.cache
    assert "history_A" not in store.cache
    assert "packages_all" not in store.cache
    assert isinstance(events[0], PackageStatusChanged)
    assert events[0].old_status is PackageStatus.PENDING
    assert events[0].new_status is PackageStatus.ASSIGNED
    assert events[0].source is EventSource.PUSH


@pytest.mark.asyncio
async def test_package_update_push(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    await _warm_cache(store, transport)
    events: list[Any] = []
    store.subscribe(events.append)

    store._on_push_payload({"type": "packageUpdate", "packageId": "A"})  # type: ignore[attr-defined]

    assert "package_A" not in store.cache
    assert isinstance(events[0], PackageUpdated)
    assert events[0].package_id == "A"
    assert events[0].package is None


@pytest.mark.asyncio
async def test_created_push_only_invalidates_lists(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    await _warm_cache(store, transport)
    events: list[Any] = []
    store.subscribe(events.append)

    store._on_push_payload({"type": "packageCreated", "package": package_payload("C")})  # type: ignore[attr-defined]

    assert "packages_all" not in store.cache
    assert "package_A" in store.cache
    assert isinstance(events[0], PackageAdded)
    assert events[0].package.id == "C"


@pytest.mark.asyncio
async def test_deleted_push(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    await _warm_cache(store, transport)
    events: list[Any] = []
    store.subscribe(events.append)

    store._on_push_payload({"type": "packageDeleted", "packageId": "A"})  # type: ignore[attr-defined]

    assert "package_A" not in store.cache
    assert isinstance(events[0], PackageRemoved)


@pytest.mark.asyncio
async def test_unknown_push_envelope_is_ignored(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    await _warm_cache(store, transport)
    events: list[Any] = []
    store.subscribe(events.append)

    store._on_push_payload({"type": "driverLocation", "packageId": "A"})  # type: ignore[attr-defined]

    assert events == []
    assert "package_A" in store.cache


@pytest.mark.asyncio
async def test_start_wires_push_channel_and_close_stops_it(make_remote: MakeRemote, transport: FakeTransport) -> None:
    channel = _FakePushChannel()
    store = make_remote(push_channel=channel, drain_interval=3600.0)
    received: list[Any] = []

    async with store:
        store.subscribe(received.append)
        assert store.status().push_connected
        assert channel.handler is not None
        channel.handler({"type": "packageDeleted", "packageId": "Z"})

    assert channel.stopped == 1
    assert isinstance(received[0], PackageRemoved)
    assert store.status().subscriber_count == 0


@pytest.mark.asyncio
async def test_push_startup_failure_is_not_fatal(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote(push_channel=_FakePushChannel(fail_start=True), drain_interval=3600.0)
    transport.add("GET", "/packages", [package_payload("A")])

    async with store:
        assert [p.id for p in await store.list_packages()] == ["A"]
        assert not store.status().push_connected
