"""Time-boxed response cache for the remote package store."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """One cached response; fresh while ``now - stored_at <= ttl``."""

    data: Any
    stored_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at <= self.ttl


class TtlCache:
    """Per-key cache that keeps expired entries around as stale fallbacks.

    Expired entries are only removed by :meth:`purge_expired`, which runs
    automatically once the cache grows past ``max_entries``.
    """

    def __init__(
        self,
        *,
        default_ttl: float,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> Iterator[str]:
        return iter(list(self._entries))

    def entry(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def get(self, key: str, *, allow_stale: bool = False) -> Any | None:
        """Return cached data for *key*; stale data only when *allow_stale*."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if allow_stale or entry.is_fresh(self._clock()):
            return entry.data
        return None

    def set(self, key: str, data: Any, ttl: float | None = None) -> None:
        self._entries[key] = CacheEntry(
            data=data,
            stored_at=self._clock(),
            ttl=self._default_ttl if ttl is None else ttl,
        )
        if len(self._entries) > self._max_entries:
            self.purge_expired()

    def replace(self, key: str, data: Any) -> None:
        """Swap the data of an existing entry, keeping its timestamp and ttl."""
        entry = self._entries.get(key)
        if entry is not None:
            self._entries[key] = CacheEntry(data=data, stored_at=entry.stored_at, ttl=entry.ttl)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def reconfigure(self, *, default_ttl: float, max_entries: int) -> None:
        """Apply new bounds to future writes; stored entries keep their ttl."""
        self._default_ttl = default_ttl
        self._max_entries = max_entries

    def export_entries(self) -> dict[str, dict[str, Any]]:
        """Snapshot every entry as ``{data, age, ttl, expired}`` keyed by cache key.

        Ages are relative so a snapshot survives a restart of the clock.
        """
        now = self._clock()
        return {
            key: {
                "data": entry.data,
                "age": now - entry.stored_at,
                "ttl": entry.ttl,
                "expired": not entry.is_fresh(now),
            }
            for key, entry in self._entries.items()
        }

    def import_entries(self, entries: Mapping[str, Any]) -> int:
        """Load still-fresh entries from an :meth:`export_entries` snapshot."""
        now = self._clock()
        imported = 0
        for key, raw in entries.items():
            if not isinstance(raw, Mapping) or raw.get("expired"):
                continue
            try:
                age = float(raw["age"])
                ttl = float(raw["ttl"])
            except (KeyError, TypeError, ValueError):
                _logger.debug("Skipping malformed cache snapshot entry %s", key)
                continue
            if age < 0 or age >= ttl:
                continue
            self._entries[str(key)] = CacheEntry(data=raw.get("data"), stored_at=now - age, ttl=ttl)
            imported += 1
        if len(self._entries) > self._max_entries:
            self.purge_expired()
        _logger.debug("Imported %d cache entries", imported)
        return imported

    def purge_expired(self) -> int:
        now = self._clock()
        doomed = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
        for key in doomed:
            del self._entries[key]
        if doomed:
            _logger.debug("Purged %d expired cache entries", len(doomed))
        return len(doomed)
