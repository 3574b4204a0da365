from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest
from conftest import FakeMonotonic, FakeTransport, package_payload

from pydelivery._push import MqttPushChannel, NullPushChannel
from pydelivery.config import PushConfig, RemoteStoreConfig
from pydelivery.exceptions import (
    DeliveryConfigError,
    HttpStatusError,
    InvalidResponseError,
    InvalidStatusError,
    NetworkError,
    OfflineQueueExpired,
)
from pydelivery.models.events import EventSource, PackageAdded, PackageRemoved, PackageUpdated
from pydelivery.models.package import PackageStatus, StatusContext
from pydelivery.remote_store import BatchStatusUpdate, RemotePackageStore

MakeRemote = Callable[..., RemotePackageStore]


def _seed_list(transport: FakeTransport, *ids: str) -> None:
    transport.add("GET", "/packages", [package_payload(package_id) for package_id in ids])


# ------------------------------------------------------------------
# Read path
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_fresh_cache_hit_skips_network(
    make_remote: MakeRemote, transport: FakeTransport, monotonic: FakeMonotonic
) -> None:
    store = make_remote(cache_ttl=60.0)
    _seed_list(transport, "A", "B")
    _seed_list(transport, "A", "B", "C")

    first = await store.list_packages()
    monotonic.advance(60.0)
    second = await store.list_packages()
    assert [p.id for p in first] == [p.id for p in second] == ["A", "B"]
    assert transport.count("GET", "/packages") == 1

    monotonic.advance(1.0)
    third = await store.list_packages()
    assert [p.id for p in third] == ["A", "B", "C"]
    assert transport.count("GET", "/packages") == 2


@pytest.mark.asyncio
async def test_filtered_lists_are_cached_separately(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    _seed_list(transport, "A")
    _seed_list(transport, "B")

    await store.list_packages({"status": ["PENDING", "ASSIGNED"], "priority": None})
    await store.list_packages()

    assert transport.calls[0][3] == {"status": "PENDING,ASSIGNED"}
    assert transport.calls[1][3] is None
    assert sorted(store.cache.keys()) == ["packages_all", "packages_all?status=PENDING%2CASSIGNED"]


@pytest.mark.asyncio
async def test_stale_entry_served_when_refresh_fails(
    make_remote: MakeRemote, transport: FakeTransport, monotonic: FakeMonotonic
) -> None:
    store = make_remote(cache_ttl=10.0)
    transport.add("GET", "/packages/A", package_payload("A", "ASSIGNED"))
    await store.get_package_detail("A")
    monotonic.advance(11.0)
    transport.add("GET", "/packages/A", HttpStatusError("HTTP 500", status_code=500))

    package = await store.get_package_detail("A")

    assert package.status is PackageStatus.ASSIGNED
    assert store.is_online


@pytest.mark.asyncio
async def test_failure_without_cached_entry_propagates(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote(retry_attempts=2)
    transport.always("GET", "/packages/A", HttpStatusError("HTTP 503", status_code=503))

    with pytest.raises(HttpStatusError):
        await store.get_package_detail("A")
    assert transport.count("GET", "/packages/A") == 2


@pytest.mark.asyncio
async def test_malformed_payload_is_invalid_response(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    transport.add("GET", "/packages", {"unexpected": True})

    with pytest.raises(InvalidResponseError):
        await store.list_packages()


@pytest.mark.asyncio
async def test_caching_can_be_disabled(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote(enable_caching=False)
    transport.always("GET", "/packages/A", package_payload("A"))

    await store.get_package_detail("A")
    await store.get_package_detail("A")

    assert transport.count("GET", "/packages/A") == 2
    assert len(store.cache) == 0


@pytest.mark.asyncio
async def test_history_and_search(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    transport.add("GET", "/packages/A/history", {"events": [{"status": "PENDING"}]})
    transport.always("GET", "/packages/search", {"packages": [package_payload("A")]})

    assert await store.get_package_history("A") == [{"status": "PENDING"}]
    assert await store.get_package_history("A") == [{"status": "PENDING"}]
    assert transport.count("GET", "/packages/A/history") == 1

    results = await store.search_packages("DLV", {"status": "PENDING"})
    await store.search_packages("DLV")
    assert [p.id for p in results] == ["A"]
    assert transport.count("GET", "/packages/search") == 2
    assert transport.calls[-2][3] == {"q": "DLV", "status": "PENDING"}


# ------------------------------------------------------------------
# Write path
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_online_update_is_visible_to_next_read(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    transport.add("GET", "/packages/A", package_payload("A", "PENDING"))
    _seed_list(transport, "A")
    await store.get_package_detail("A")
    await store.list_packages()
    transport.add("PATCH", "/packages/A/status", package_payload("A", "ASSIGNED"))
    events: list[Any] = []
    store.subscribe(events.append)

    updated = await store.update_status("A", "assigned", StatusContext(notes="picked up"))

    assert updated.status is PackageStatus.ASSIGNED
    assert (await store.get_package_detail("A")).status is PackageStatus.ASSIGNED
    assert transport.count("GET", "/packages/A") == 1
    assert "packages_all" not in store.cache
    body = transport.calls[2][2]
    assert body["status"] == "ASSIGNED"
    assert body["notes"] == "picked up"
    assert isinstance(events[0], PackageUpdated)
    assert events[0].source is EventSource.REMOTE


@pytest.mark.asyncio
async def test_offline_update_is_queued_and_visible(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    _seed_list(transport, "A", "B")
    await store.list_packages()
    store.set_online(False)
    events: list[Any] = []
    store.subscribe(events.append)
    calls_before = len(transport.calls)

    optimistic = await store.update_status("A", PackageStatus.IN_TRANSIT, StatusContext(notes="offline"))

    assert len(transport.calls) == calls_before
    assert optimistic.status is PackageStatus.IN_TRANSIT
    assert optimistic.recipient_name == "Recipient"
    assert optimistic.notes == "offline"
    assert len(store.queue) == 1
    assert (await store.get_package_detail("A")).status is PackageStatus.IN_TRANSIT
    listed = {p.id: p.status for p in await store.list_packages()}
    assert listed == {"A": PackageStatus.IN_TRANSIT, "B": PackageStatus.PENDING}
    assert events[0].source is EventSource.OPTIMISTIC


@pytest.mark.asyncio
async def test_connectivity_failure_switches_to_offline_queue(
    make_remote: MakeRemote, transport: FakeTransport
) -> None:
    store = make_remote()
    transport.add("PATCH", "/packages/A/status", NetworkError("connection refused"))

    result = await store.update_status("A", "DELIVERED")

    assert not store.is_online
    assert result.status is PackageStatus.DELIVERED
    assert len(store.queue) == 1


@pytest.mark.asyncio
async def test_connectivity_failure_raises_without_auto_detect(
    make_remote: MakeRemote, transport: FakeTransport
) -> None:
    store = make_remote(auto_detect_offline=False)
    transport.add("PATCH", "/packages/A/status", NetworkError("connection refused"))

    with pytest.raises(NetworkError):
        await store.update_status("A", "DELIVERED")
    assert store.is_online
    assert len(store.queue) == 0


@pytest.mark.asyncio
async def test_server_rejection_is_not_queued(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    transport.add("PATCH", "/packages/A/status", HttpStatusError("HTTP 409", status_code=409))

    with pytest.raises(HttpStatusError) as excinfo:
        await store.update_status("A", "DELIVERED")
    assert excinfo.value.kind == "HTTP_ERROR_409"
    assert len(store.queue) == 0


@pytest.mark.asyncio
async def test_invalid_status_is_rejected_before_any_request(
    make_remote: MakeRemote, transport: FakeTransport
) -> None:
    store = make_remote()
    with pytest.raises(InvalidStatusError):
        await store.update_status("A", "TELEPORTED")
    assert transport.calls == []


@pytest.mark.asyncio
async def test_batch_update_status(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    transport.add("PATCH", "/packages/batch/status", [package_payload("A", "ASSIGNED"), package_payload("B", "FAILED")])

    packages = await store.batch_update_status([("A", "ASSIGNED"), BatchStatusUpdate("B", PackageStatus.FAILED)])

    assert [p.status for p in packages] == [PackageStatus.ASSIGNED, PackageStatus.FAILED]
    updates = transport.calls[0][2]["updates"]
    assert [u["packageId"] for u in updates] == ["A", "B"]

    with pytest.raises(ValueError):
        await store.batch_update_status([])


@pytest.mark.asyncio
async def test_add_and_remove_online(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    transport.add("POST", "/packages", package_payload("SRV-1"))
    transport.add("DELETE", "/packages/SRV-1", None)
    events: list[Any] = []
    store.subscribe(events.append)

    created = await store.add_package({"id": "TMP", "trackingNumber": "DLV-1"})
    await store.remove_package(created.id)

    assert created.id == "SRV-1"
    assert [type(event) for event in events] == [PackageAdded, PackageRemoved]
    assert "package_SRV-1" not in store.cache


@pytest.mark.asyncio
async def test_offline_add_and_remove_patch_cached_list(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    _seed_list(transport, "A")
    await store.list_packages()
    store.set_online(False)

    await store.add_package({"id": "NEW"})
    await store.remove_package("A")

    assert [p.id for p in await store.list_packages()] == ["NEW"]
    assert [m.kind for m in store.queue.pending()] == ["create", "delete"]


# ------------------------------------------------------------------
# Offline queue replay
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_queue_replays_in_fifo_order(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    store.set_online(False)
    await store.update_status("A", "ASSIGNED")
    await store.add_package({"id": "B"})
    await store.remove_package("C")
    await store.update_status("A", "IN_TRANSIT")
    transport.add("PATCH", "/packages/A/status", package_payload("A", "ASSIGNED"), package_payload("A", "IN_TRANSIT"))
    transport.add("POST", "/packages", package_payload("B"))
    transport.add("DELETE", "/packages/C", None)
    events: list[Any] = []
    store.subscribe(events.append)

    store.set_online(True)
    result = await store.drain_queue()

    assert result.replayed == 4
    assert [(method, path) for method, path, _, _ in transport.calls] == [
        ("PATCH", "/packages/A/status"),
        ("POST", "/packages"),
        ("DELETE", "/packages/C"),
        ("PATCH", "/packages/A/status"),
    ]
    assert [call[2]["status"] for call in transport.calls if call[0] == "PATCH"] == ["ASSIGNED", "IN_TRANSIT"]
    assert all(event.source is EventSource.QUEUE for event in events)
    assert len(store.queue) == 0


@pytest.mark.asyncio
async def test_drain_tick_checks_health_before_replaying(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    store.set_online(False)
    await store.remove_package("A")
    transport.add("GET", "/health", NetworkError("still down"), {"status": "ok"})
    transport.add("DELETE", "/packages/A", None)

    await store._drain_tick()  # type: ignore[attr-defined]
    assert not store.is_online
    assert len(store.queue) == 1

    await store._drain_tick()  # type: ignore[attr-defined]
    assert store.is_online
    assert len(store.queue) == 0


@pytest.mark.asyncio
async def test_queue_expiry_is_reported(make_remote: MakeRemote, transport: FakeTransport) -> None:
    expired: list[OfflineQueueExpired] = []
    store = make_remote(queue_max_attempts=1, on_queue_expired=expired.append)
    store.set_online(False)
    await store.update_status("A", "DELIVERED")
    transport.add("PATCH", "/packages/A/status", HttpStatusError("HTTP 422", status_code=422))
    store.set_online(True)

    result = await store.drain_queue()

    assert result.dropped == 1
    assert expired[0].mutation.target_id == "A"
    assert store.status().queue_dropped == 1


@pytest.mark.asyncio
async def test_drain_tick_discards_aged_mutations_before_replay(
    make_remote: MakeRemote, transport: FakeTransport, monotonic: FakeMonotonic
) -> None:
    expired: list[OfflineQueueExpired] = []
    store = make_remote(queue_max_age=3600.0, on_queue_expired=expired.append)
    store.set_online(False)
    await store.update_status("A", "DELIVERED")
    monotonic.advance(7200.0)
    transport.add("GET", "/health", NetworkError("still down"))

    await store._drain_tick()  # type: ignore[attr-defined]

    assert len(store.queue) == 0
    assert [e.mutation.target_id for e in expired] == ["A"]
    assert transport.count("PATCH", "/packages/A/status") == 0


@pytest.mark.asyncio
async def test_health_check_never_raises(make_remote: MakeRemote, transport: FakeTransport) -> None:
    store = make_remote()
    transport.add("GET", "/health", {"healthy": True}, HttpStatusError("HTTP 502", status_code=502))

    assert (await store.health_check()).healthy
    failed = await store.health_check()
    assert not failed.healthy
    assert failed.error == "HTTP 502"


@pytest.mark.asyncio
async def test_clear_expired_cache(
    make_remote: MakeRemote, transport: FakeTransport, monotonic: FakeMonotonic
) -> None:
    store = make_remote(cache_ttl=10.0, history_cache_ttl=100.0)
    transport.add("GET", "/packages/A", package_payload("A"))
    transport.add("GET", "/packages/A/history", [])
    await store.get_package_detail("A")
    await store.get_package_history("A")
    monotonic.advance(20.0)

    assert store.clear_expired_cache() == 1
    assert list(store.cache.keys()) == ["history_A"]


def test_status_snapshot(make_remote: MakeRemote) -> None:
    store = make_remote()
    store.subscribe(lambda _event: None)

    status = store.status()

    assert status.online
    assert not status.push_connected
    assert status.subscriber_count == 1
    assert status.base_url == "https://api.delivery.com"


# ------------------------------------------------------------------
# Cache snapshots and live configuration
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_exported_cache_restores_into_new_store(make_remote: MakeRemote, transport: FakeTransport) -> None:
    source = make_remote()
    _seed_list(transport, "A", "B")
    transport.add("GET", "/packages/A", package_payload("A", "IN_TRANSIT"))
    transport.add("GET", "/packages/A/history", [{"status": "PENDING"}])
    await source.list_packages()
    await source.get_package_detail("A")
    await source.get_package_history("A")

    snapshot = json.loads(json.dumps(source.export_cache()))
    assert snapshot["totalEntries"] == 3
    assert snapshot["cache"]["package_A"]["data"]["status"] == "IN_TRANSIT"

    target = make_remote()
    assert target.import_cache(snapshot) == 3
    assert (await target.get_package_detail("A")).status is PackageStatus.IN_TRANSIT
    assert [p.id for p in await target.list_packages()] == ["A", "B"]
    assert await target.get_package_history("A") == [{"status": "PENDING"}]
    assert transport.count("GET", "/packages") == 1
    assert transport.count("GET", "/packages/A") == 1


def test_import_cache_skips_expired_and_malformed_entries(make_remote: MakeRemote) -> None:
    store = make_remote()
    imported = store.import_cache(
        {
            "cache": {
                "package_A": {"data": {"id": "A"}, "age": 1.0, "ttl": 300.0},
                "package_B": {"data": {"id": "B"}, "age": 1.0, "ttl": 300.0, "expired": True},
                "package_C": {"data": "not a package", "age": 1.0, "ttl": 300.0},
                "packages_all": {"data": {"id": "A"}, "age": 1.0, "ttl": 300.0},
            }
        }
    )
    assert imported == 1
    assert list(store.cache.keys()) == ["package_A"]

    with pytest.raises(ValueError):
        store.import_cache({"cache": ["nope"]})


@pytest.mark.asyncio
async def test_update_config_applies_new_bounds(
    make_remote: MakeRemote, transport: FakeTransport, monotonic: FakeMonotonic
) -> None:
    store = make_remote(cache_ttl=300.0)
    store.update_config(cache_ttl=5.0, retry_attempts=2, queue_max_size=1)
    _seed_list(transport, "A")
    _seed_list(transport, "B")

    await store.list_packages()
    monotonic.advance(6.0)
    assert [p.id for p in await store.list_packages()] == ["B"]
    assert store.config.retry_attempts == 2

    store.set_online(False)
    await store.remove_package("X")
    await store.remove_package("Y")
    assert [m.target_id for m in store.queue.pending()] == ["Y"]


def test_update_config_disabling_cache_clears_it(make_remote: MakeRemote) -> None:
    store = make_remote()
    store.cache.set("package_A", object())

    store.update_config(enable_caching=False)

    assert len(store.cache) == 0


def test_update_config_rejects_unknown_and_invalid_settings(make_remote: MakeRemote) -> None:
    store = make_remote()
    with pytest.raises(DeliveryConfigError):
        store.update_config(colour="blue")
    with pytest.raises(DeliveryConfigError):
        store.update_config(base_url="")
    assert store.config.base_url == "https://api.delivery.com"


def test_update_config_rebuilds_owned_push_channel() -> None:
    store = RemotePackageStore(RemoteStoreConfig(push=PushConfig(enabled=False)))
    assert isinstance(store._push, NullPushChannel)  # type: ignore[attr-defined]

    store.update_config(push=PushConfig(host="broker.example.test"))

    assert isinstance(store._push, MqttPushChannel)  # type: ignore[attr-defined]
