from __future__ import annotations

from pathlib import Path

import pytest

from pydelivery.config import LocalStoreConfig, RemoteStoreConfig
from pydelivery.exceptions import DeliveryConfigError
from pydelivery.factory import StoreKind, create_repository, create_repository_from_env
from pydelivery.local_store import LocalPackageStore
from pydelivery.remote_store import RemotePackageStore
from pydelivery.storage import JsonFileKeyValueStore


@pytest.mark.parametrize("kind", ["remote", "api", "API", StoreKind.REMOTE])
def test_remote_kinds(kind: str) -> None:
    store = create_repository(kind, {"base_url": "https://example.test"})
    assert isinstance(store, RemotePackageStore)
    assert store.config.base_url == "https://example.test"


def test_local_store_from_config_object() -> None:
    config = LocalStoreConfig(enable_simulation=False)
    store = create_repository("local", config)
    assert isinstance(store, LocalPackageStore)
    assert store.config is config


def test_mock_store_is_non_persistent() -> None:
    store = create_repository(StoreKind.MOCK)
    assert isinstance(store, LocalPackageStore)
    assert store.config.storage_key == "delivery_packages_mock"
    assert store.config.enable_persistence is False
    assert store.config.simulation_interval == 60.0


def test_mock_overrides_win() -> None:
    store = create_repository("mock", {"simulation_interval": 5.0, "enable_simulation": False})
    assert isinstance(store, LocalPackageStore)
    assert store.config.simulation_interval == 5.0
    assert store.config.storage_key == "delivery_packages_mock"


def test_unknown_kind_rejected() -> None:
    with pytest.raises(DeliveryConfigError, match="Unknown store kind"):
        create_repository("carrier-pigeon")


def test_mismatched_config_rejected() -> None:
    with pytest.raises(DeliveryConfigError):
        create_repository("local", RemoteStoreConfig())
    with pytest.raises(DeliveryConfigError):
        create_repository("remote", LocalStoreConfig())


def test_remote_validation_errors_surface() -> None:
    with pytest.raises(DeliveryConfigError):
        create_repository("remote", {"base_url": ""})


def test_create_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYDELIVERY_STORE", "mock")
    store = create_repository_from_env()
    assert isinstance(store, LocalPackageStore)
    assert store.config.storage_key == "delivery_packages_mock"


def test_local_store_uses_storage_path_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PYDELIVERY_STORAGE_PATH", str(tmp_path / "packages.json"))
    store = create_repository("local", {"enable_simulation": False})
    assert isinstance(store, LocalPackageStore)
    assert isinstance(store.storage, JsonFileKeyValueStore)
    assert store.storage.path == tmp_path / "packages.json"
