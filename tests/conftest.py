from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from pydelivery._push import NullPushChannel
from pydelivery.config import LocalStoreConfig, RemoteStoreConfig
from pydelivery.local_store import LocalPackageStore
from pydelivery.remote_store import RemotePackageStore

NOW = datetime(2026, 1, 1, tzinfo=UTC)


def fixed_now() -> datetime:
    return NOW


class FakeTransport:
    """Scripted transport: responses are consumed per ``(method, path)``.

    A response that is an exception instance is raised instead of returned.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, Any, Any]] = []
        self._scripted: dict[tuple[str, str], deque[Any]] = defaultdict(deque)
        self._fallback: dict[tuple[str, str], Any] = {}

    def add(self, method: str, path: str, *responses: Any) -> None:
        self._scripted[(method, path)].extend(responses)

    def always(self, method: str, path: str, response: Any) -> None:
        self._fallback[(method, path)] = response

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call[0] == method and call[1] == path)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Any = None,
    ) -> Any:
        self.calls.append((method, path, json_body, params))
        key = (method, path)
        scripted = self._scripted.get(key)
        if scripted:
            response = scripted.popleft()
        elif key in self._fallback:
            response = self._fallback[key]
        else:
            raise AssertionError(f"unexpected request {method} {path}")
        if isinstance(response, BaseException):
            raise response
        return response


class FakeMonotonic:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def notify(self, title: str, message: str) -> None:
        self.messages.append((title, message))


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_remote(transport: FakeTransport, monotonic: FakeMonotonic) -> Callable[..., RemotePackageStore]:
    def _make(**overrides: Any) -> RemotePackageStore:
        push_channel = overrides.pop("push_channel", None) or NullPushChannel()
        on_queue_expired = overrides.pop("on_queue_expired", None)
        config = RemoteStoreConfig(**{"retry_attempts": 1, "retry_delay": 0.0, **overrides})
        return RemotePackageStore(
            config,
            transport=transport,
            push_channel=push_channel,
            clock=fixed_now,
            monotonic=monotonic,
            sleep=_no_sleep,
            on_queue_expired=on_queue_expired,
        )

    return _make


@pytest.fixture
def make_local() -> Callable[..., LocalPackageStore]:
    def _make(**overrides: Any) -> LocalPackageStore:
        storage = overrides.pop("storage", None)
        rng = overrides.pop("rng", None)
        config = LocalStoreConfig(**{"enable_simulation": False, **overrides})
        return LocalPackageStore(config, storage=storage, clock=fixed_now, rng=rng)

    return _make


def package_payload(package_id: str, status: str = "PENDING", **extra: Any) -> dict[str, Any]:
    return {
        "id": package_id,
        "trackingNumber": f"TRK-{package_id}",
        "recipientName": "Recipient",
        "status": status,
        "createdAt": "2025-12-31T00:00:00Z",
        **extra,
    }
