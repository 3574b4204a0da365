"""Durable key-value store collaborators used by the local package store."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Protocol

from pydelivery.exceptions import DeliveryError

_logger = logging.getLogger(__name__)


class StorageError(DeliveryError):
    """Reading or writing the durable store failed."""

    kind = "STORAGE_ERROR"


class KeyValueStore(Protocol):
    """Structural interface of a durable string key-value store."""

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class MemoryKeyValueStore:
    """Non-durable store; the default when persistence is disabled."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """All keys in one JSON object file, replaced atomically on every write.

    File I/O runs in the default executor so the event loop never blocks.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Corrupt storage file {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Storage file {self._path} does not hold an object")
        return {str(k): str(v) for k, v in data.items()}

    def _write_all(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, separators=(",", ":")), encoding="utf-8")
        os.replace(tmp, self._path)

    async def _run(self, fn, *args):  # type: ignore[no-untyped-def]
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn, *args)
        except OSError as exc:
            raise StorageError(f"Storage I/O failed for {self._path}: {exc}") from exc

    async def get(self, key: str) -> str | None:
        async with self._lock:
            data = await self._run(self._read_all)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await self._run(self._read_all)
            data[key] = value
            await self._run(self._write_all, data)
        _logger.debug("Stored %d bytes under %s in %s", len(value), key, self._path)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await self._run(self._read_all)
            if data.pop(key, None) is not None:
                await self._run(self._write_all, data)
