"""FIFO queue of mutations issued while the remote store is offline."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pydelivery.exceptions import CONNECTIVITY_ERRORS, OfflineQueueExpired
from pydelivery.models.mutations import QueuedMutation

_logger = logging.getLogger(__name__)

ExpiredCallback = Callable[[OfflineQueueExpired], None]


@dataclass(frozen=True)
class DrainResult:
    replayed: int = 0
    requeued: int = 0
    dropped: int = 0


class OfflineQueue:
    """Strictly FIFO mutation queue with age, attempt and size bounds.

    A mutation that fails replay goes back ahead of anything enqueued while
    the drain was running, so queue order never changes. Dropped mutations
    are counted and reported through *on_expired*.
    """

    def __init__(
        self,
        *,
        max_age: float = 3600.0,
        max_attempts: int = 3,
        max_size: int = 100,
        clock: Callable[[], float] = time.monotonic,
        on_expired: ExpiredCallback | None = None,
    ) -> None:
        self._max_age = max_age
        self._max_attempts = max_attempts
        self._max_size = max_size
        self._clock = clock
        self._on_expired = on_expired
        self._items: list[QueuedMutation] = []
        self._draining = False
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def now(self) -> float:
        return self._clock()

    def pending(self) -> list[QueuedMutation]:
        return list(self._items)

    def enqueue(self, mutation: QueuedMutation) -> None:
        self._items.append(mutation)
        _logger.debug(
            "Queued %s for %s (%d pending)",
            mutation.kind,
            mutation.target_id or "<new>",
            len(self._items),
        )
        while len(self._items) > self._max_size:
            self._drop(self._items.pop(0), "offline queue full")

    def clear(self) -> None:
        self._items.clear()

    def reconfigure(self, *, max_age: float, max_attempts: int, max_size: int) -> None:
        self._max_age = max_age
        self._max_attempts = max_attempts
        self._max_size = max_size
        while len(self._items) > self._max_size:
            self._drop(self._items.pop(0), "offline queue full")

    def _is_aged(self, mutation: QueuedMutation) -> bool:
        return self._clock() - mutation.enqueued_at >= self._max_age

    def purge_expired(self) -> int:
        """Drop every mutation older than ``max_age``, replayed or not."""
        if self._draining:
            return 0
        aged = [mutation for mutation in self._items if self._is_aged(mutation)]
        if not aged:
            return 0
        self._items = [mutation for mutation in self._items if not self._is_aged(mutation)]
        for mutation in aged:
            self._drop(mutation, f"older than {self._max_age:.0f}s")
        return len(aged)

    def _expiry_reason(self, mutation: QueuedMutation) -> str | None:
        if self._is_aged(mutation):
            return f"older than {self._max_age:.0f}s"
        if mutation.attempt_count >= self._max_attempts:
            return f"{mutation.attempt_count} failed replays"
        return None

    def _drop(self, mutation: QueuedMutation, reason: str) -> None:
        self.dropped += 1
        error = OfflineQueueExpired(mutation, reason=reason)
        _logger.warning("%s", error.message)
        if self._on_expired is None:
            return
        try:
            self._on_expired(error)
        except Exception:
            _logger.warning("Offline queue expiry callback failed", exc_info=True)

    async def drain(self, execute: Callable[[QueuedMutation], Awaitable[None]]) -> DrainResult:
        """Replay queued mutations in order through *execute*.

        Mutations past ``max_age`` are dropped first and never replayed. A
        connectivity failure stops the drain; the failed mutation and
        everything behind it stay queued in order.
        """
        if self._draining:
            return DrainResult()
        purged = self.purge_expired()
        if not self._items:
            return DrainResult(dropped=purged)

        self._draining = True
        batch, self._items = self._items, []
        kept: list[QueuedMutation] = []
        replayed = 0
        dropped = purged
        position = 0
        try:
            while position < len(batch):
                mutation = batch[position]
                try:
                    await execute(mutation)
                except Exception as exc:
                    position += 1
                    retry = mutation.next_attempt()
                    reason = self._expiry_reason(retry)
                    if reason is None:
                        kept.append(retry)
                        _logger.debug(
                            "Replay of %s for %s failed (%s), attempt %d kept",
                            mutation.kind,
                            mutation.target_id or "<new>",
                            exc,
                            retry.attempt_count,
                        )
                    else:
                        dropped += 1
                        self._drop(retry, f"{reason}; last error: {exc}")
                    if isinstance(exc, CONNECTIVITY_ERRORS):
                        break
                else:
                    position += 1
                    replayed += 1
        finally:
            kept.extend(batch[position:])
            self._items = kept + self._items
            self._draining = False

        result = DrainResult(replayed=replayed, requeued=len(kept), dropped=dropped)
        _logger.debug(
            "Offline queue drain: %d replayed, %d kept, %d dropped",
            result.replayed,
            result.requeued,
            result.dropped,
        )
        return result
