"""Construct package repositories by kind."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydelivery.config import LocalStoreConfig, RemoteStoreConfig
from pydelivery.exceptions import DeliveryConfigError
from pydelivery.local_store import LocalPackageStore
from pydelivery.remote_store import RemotePackageStore
from pydelivery.repository import PackageRepository

_logger = logging.getLogger(__name__)


class StoreKind(StrEnum):
    REMOTE = "remote"
    LOCAL = "local"
    MOCK = "mock"


_ALIASES: dict[str, StoreKind] = {"api": StoreKind.REMOTE}

_MOCK_DEFAULTS: dict[str, Any] = {
    "storage_key": "delivery_packages_mock",
    "enable_persistence": False,
    "simulation_interval": 60.0,
}


def _resolve_kind(kind: StoreKind | str) -> StoreKind:
    text = str(kind).strip().lower()
    try:
        return _ALIASES.get(text) or StoreKind(text)
    except ValueError as exc:
        raise DeliveryConfigError(f"Unknown store kind: {kind!r}") from exc


def create_repository(
    kind: StoreKind | str,
    config: RemoteStoreConfig | LocalStoreConfig | Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> PackageRepository:
    """Build a store of *kind*.

    *config* is either a ready config object of the matching type or a
    mapping of overrides applied on top of the environment. Remaining
    keyword arguments go to the store constructor (``session``,
    ``storage``, ``transport`` ...).
    """
    resolved = _resolve_kind(kind)

    if resolved is StoreKind.REMOTE:
        if config is None or isinstance(config, Mapping):
            config = RemoteStoreConfig.from_env(**dict(config or {}))
        if not isinstance(config, RemoteStoreConfig):
            raise DeliveryConfigError(f"Remote store needs RemoteStoreConfig, got {type(config).__name__}")
        _logger.debug("Creating remote store for %s", config.base_url)
        return RemotePackageStore(config, **kwargs)

    if config is None or isinstance(config, Mapping):
        overrides = dict(config or {})
        if resolved is StoreKind.MOCK:
            overrides = {**_MOCK_DEFAULTS, **overrides}
        config = LocalStoreConfig.from_env(**overrides)
    if not isinstance(config, LocalStoreConfig):
        raise DeliveryConfigError(f"{resolved.value} store needs LocalStoreConfig, got {type(config).__name__}")
    _logger.debug(
        "Creating %s store persistence=%s simulation=%s",
        resolved.value,
        config.enable_persistence,
        config.enable_simulation,
    )
    return LocalPackageStore(config, **kwargs)


def create_repository_from_env(**kwargs: Any) -> PackageRepository:
    """Build the store named by ``PYDELIVERY_STORE`` (default ``local``)."""
    return create_repository(os.environ.get("PYDELIVERY_STORE", StoreKind.LOCAL.value), **kwargs)
