"""Package repository contract shared by the local and remote stores."""

from __future__ import annotations

import abc
import itertools
import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydelivery.models.events import RepositoryEvent
from pydelivery.models.package import Package, PackageStatus, StatusContext

_logger = logging.getLogger(__name__)

Filters = Mapping[str, Any]
Subscriber = Callable[[RepositoryEvent], None]
Unsubscribe = Callable[[], None]


class SubscriberSet:
    """Callbacks registered on one store instance.

    Each :meth:`add` yields an independent subscription, so the same
    callable subscribed twice receives each event twice. A subscriber that
    raises is logged and skipped; delivery to the others continues.
    """

    def __init__(self, owner: str) -> None:
        self._owner = owner
        self._subscribers: dict[int, Subscriber] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._subscribers)

    def add(self, callback: Subscriber) -> Unsubscribe:
        if not callable(callback):
            raise TypeError("Subscriber callback must be callable")
        token = next(self._ids)
        self._subscribers[token] = callback
        _logger.debug("%s: subscriber %d added", self._owner, token)

        def _unsubscribe() -> None:
            if self._subscribers.pop(token, None) is not None:
                _logger.debug("%s: subscriber %d removed", self._owner, token)

        return _unsubscribe

    def notify(self, event: RepositoryEvent) -> None:
        # Snapshot: callbacks may unsubscribe while we iterate.
        for token, callback in list(self._subscribers.items()):
            try:
                callback(event)
            except Exception:
                _logger.warning(
                    "%s: subscriber %d failed handling %s",
                    self._owner,
                    token,
                    event.type,
                    exc_info=True,
                )

    def clear(self) -> None:
        self._subscribers.clear()


class PackageRepository(abc.ABC):
    """Capability interface every package store satisfies.

    Implementations are async context managers::

        async with LocalPackageStore(config) as store:
            packages = await store.list_packages({"status": "PENDING"})
    """

    @abc.abstractmethod
    async def list_packages(self, filters: Filters | None = None) -> list[Package]:
        """List packages; unsupported filter keys are ignored, never rejected."""

    @abc.abstractmethod
    async def get_package_detail(self, package_id: str) -> Package:
        """Fetch one package."""

    @abc.abstractmethod
    async def update_status(
        self,
        package_id: str,
        status: PackageStatus | str,
        context: StatusContext | None = None,
    ) -> Package:
        """Move a package to *status* and return the committed record."""

    @abc.abstractmethod
    async def add_package(self, package: Package) -> Package:
        """Insert (or create remotely) a package."""

    @abc.abstractmethod
    async def remove_package(self, package_id: str) -> None:
        """Delete a package."""

    @abc.abstractmethod
    def subscribe(self, callback: Subscriber) -> Unsubscribe:
        """Register *callback* for change events; returns the unsubscribe function."""

    async def start(self) -> None:
        """Start background work (timers, push channel). Idempotent."""

    async def aclose(self) -> None:
        """Stop background work and drop subscribers. Idempotent."""

    async def __aenter__(self) -> PackageRepository:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()
