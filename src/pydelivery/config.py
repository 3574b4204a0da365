"""Store and sync configuration for pydelivery."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable, Mapping
from typing import Any

from pydelivery._constants import BASE_URL, DEFAULT_ENDPOINTS, FALLBACK_LATITUDE, FALLBACK_LONGITUDE, SYNC_ENDPOINT
from pydelivery.exceptions import DeliveryConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _collect_env(
    mapping: Mapping[str, tuple[str, Callable[[str], Any]]],
    overrides: Mapping[str, Any],
) -> dict[str, Any]:
    """Read ``{ENV_VAR: (field, parser)}`` skipping fields given explicitly."""
    env = os.environ
    kwargs: dict[str, Any] = {}
    for env_key, (field_name, parse) in mapping.items():
        if field_name in overrides:
            continue
        raw = env.get(env_key)
        if raw is None:
            continue
        try:
            kwargs[field_name] = parse(raw)
        except ValueError as exc:
            raise DeliveryConfigError(f"Invalid value for {env_key}: {raw!r}") from exc
    return kwargs


def _bool_parser(default: bool) -> Callable[[str], bool]:
    return lambda raw: _env_bool(raw, default)


@dataclasses.dataclass(frozen=True)
class PushConfig:
    """Real-time push channel (MQTT) settings.

    Parameters
    ----------
    enabled : bool
        Start the push channel together with the remote store.
    host : str
        Broker host name. Empty disables the channel.
    port : int
        Broker port.
    topic : str
        Topic carrying package change envelopes.
    username, password : str or None
        Broker credentials.
    use_tls : bool
        Wrap the connection in TLS.
    keepalive : int
        MQTT keepalive in seconds.
    reconnect_delay : float
        Fixed delay before each reconnect attempt, in seconds.
    """

    enabled: bool = True
    host: str = ""
    port: int = 8883
    topic: str = "delivery/packages"
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    keepalive: int = 60
    reconnect_delay: float = 5.0


@dataclasses.dataclass(frozen=True)
class RemoteStoreConfig:
    """Remote package store configuration.

    Parameters
    ----------
    base_url : str
        REST API base URL.
    api_key : str or None
        Sent as ``Authorization: Bearer <key>`` when set.
    timeout : float
        Hard timeout of a single request attempt, in seconds.
    retry_attempts : int
        Attempts per request (first try included).
    retry_delay : float
        Base of the linear backoff (``retry_delay * attempt``).
    enable_caching : bool
        Keep a time-boxed response cache.
    cache_ttl : float
        Freshness window of list/detail entries, in seconds.
    history_cache_ttl : float
        Freshness window of tracking history entries, in seconds.
    max_cache_entries : int
        Expired entries are purged when the cache grows past this size.
    queue_max_age : float
        Queued mutations older than this are dropped, in seconds.
    queue_max_attempts : int
        Queued mutations replayed this many times are dropped.
    queue_max_size : int
        Oldest queued mutations are dropped past this size.
    drain_interval : float
        Period of the offline queue drain tick, in seconds.
    auto_detect_offline : bool
        Mark the store offline on connectivity failures and check the
        health endpoint until it answers again.
    endpoints : dict
        Path templates; ``{id}`` is replaced with the package id.
    push : PushConfig
        Real-time channel settings.
    """

    base_url: str = BASE_URL
    api_key: str | None = None
    timeout: float = 10.0
    retry_attempts: int = 3
    retry_delay: float = 1.0
    enable_caching: bool = True
    cache_ttl: float = 5 * 60
    history_cache_ttl: float = 60.0
    max_cache_entries: int = 1000
    queue_max_age: float = 60 * 60
    queue_max_attempts: int = 3
    queue_max_size: int = 100
    drain_interval: float = 5.0
    auto_detect_offline: bool = True
    endpoints: dict[str, str] = dataclasses.field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    push: PushConfig = dataclasses.field(default_factory=PushConfig)

    def __post_init__(self) -> None:
        if not self.base_url:
            raise DeliveryConfigError("API base URL is required for the remote store")
        if not self.endpoints.get("packages"):
            raise DeliveryConfigError("Packages endpoint is required for the remote store")
        if self.retry_attempts < 1:
            raise DeliveryConfigError("retry_attempts must be >= 1")

    def endpoint(self, name: str, package_id: str | None = None) -> str:
        template = self.endpoints.get(name) or DEFAULT_ENDPOINTS[name]
        if package_id is not None:
            template = template.replace("{id}", package_id).replace(":id", package_id)
        return template

    @classmethod
    def from_env(cls, **overrides: Any) -> RemoteStoreConfig:
        """Create configuration from ``PYDELIVERY_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        push_overrides = overrides.pop("push", None)
        if isinstance(push_overrides, PushConfig):
            push = push_overrides
        else:
            push_kwargs = _collect_env(
                {
                    "PYDELIVERY_PUSH_ENABLED": ("enabled", _bool_parser(True)),
                    "PYDELIVERY_PUSH_HOST": ("host", str),
                    "PYDELIVERY_PUSH_PORT": ("port", int),
                    "PYDELIVERY_PUSH_TOPIC": ("topic", str),
                    "PYDELIVERY_PUSH_USERNAME": ("username", str),
                    "PYDELIVERY_PUSH_PASSWORD": ("password", str),
                    "PYDELIVERY_PUSH_TLS": ("use_tls", _bool_parser(True)),
                    "PYDELIVERY_PUSH_RECONNECT_DELAY": ("reconnect_delay", float),
                },
                push_overrides or {},
            )
            push_kwargs.update(push_overrides or {})
            push = PushConfig(**push_kwargs)

        config_kwargs = _collect_env(
            {
                "PYDELIVERY_API_URL": ("base_url", str),
                "PYDELIVERY_API_KEY": ("api_key", str),
                "PYDELIVERY_TIMEOUT": ("timeout", float),
                "PYDELIVERY_RETRY_ATTEMPTS": ("retry_attempts", int),
                "PYDELIVERY_RETRY_DELAY": ("retry_delay", float),
                "PYDELIVERY_CACHE_ENABLED": ("enable_caching", _bool_parser(True)),
                "PYDELIVERY_CACHE_TTL": ("cache_ttl", float),
                "PYDELIVERY_DRAIN_INTERVAL": ("drain_interval", float),
            },
            overrides,
        )
        config_kwargs["push"] = push
        config_kwargs.update(overrides)
        return cls(**config_kwargs)


@dataclasses.dataclass(frozen=True)
class LocalStoreConfig:
    """Local (offline) package store configuration.

    Parameters
    ----------
    storage_key : str
        Key of the package collection in the key-value store.
    storage_path : str or None
        JSON file backing the collection when no key-value store is
        injected.
    enable_persistence : bool
        Persist through the injected key-value store, or the file at
        ``storage_path``; when ``False`` an in-memory store is used.
    seed_when_empty : bool
        Generate the representative sample set when storage is empty.
    enable_simulation : bool
        Run the background status-progression simulator.
    simulation_interval : float
        Seconds between simulator ticks.
    delivered_ratio : float
        Probability of ``DELIVERED`` (vs ``FAILED``) at the final edge.
    max_storage_size : int
        Oldest packages (by ``created_at``) are evicted past this size.
    auto_cleanup : bool
        Apply eviction on every persist.
    """

    storage_key: str = "delivery_packages"
    storage_path: str | None = None
    enable_persistence: bool = True
    seed_when_empty: bool = True
    enable_simulation: bool = True
    simulation_interval: float = 30.0
    delivered_ratio: float = 0.8
    max_storage_size: int = 50
    auto_cleanup: bool = True

    def __post_init__(self) -> None:
        if self.max_storage_size < 1:
            raise DeliveryConfigError("max_storage_size must be >= 1")
        if not 0.0 <= self.delivered_ratio <= 1.0:
            raise DeliveryConfigError("delivered_ratio must be within [0, 1]")

    @classmethod
    def from_env(cls, **overrides: Any) -> LocalStoreConfig:
        config_kwargs = _collect_env(
            {
                "PYDELIVERY_STORAGE_KEY": ("storage_key", str),
                "PYDELIVERY_STORAGE_PATH": ("storage_path", str),
                "PYDELIVERY_PERSISTENCE": ("enable_persistence", _bool_parser(True)),
                "PYDELIVERY_SEED": ("seed_when_empty", _bool_parser(True)),
                "PYDELIVERY_SIMULATION": ("enable_simulation", _bool_parser(True)),
                "PYDELIVERY_SIMULATION_INTERVAL": ("simulation_interval", float),
                "PYDELIVERY_MAX_STORAGE_SIZE": ("max_storage_size", int),
            },
            overrides,
        )
        config_kwargs.update(overrides)
        return cls(**config_kwargs)


@dataclasses.dataclass(frozen=True)
class BulkSyncConfig:
    """Bulk sync client configuration.

    Parameters
    ----------
    endpoint : str
        Aggregation endpoint URL (POST).
    timeout : float
        Client-side budget of the whole exchange, in seconds.
    limit : int
        Maximum packages per sync.
    lookback_days : int
        Lower bound on record age sent as ``filters.date_from``.
    geocoding_enabled : bool
        Request only geocoding-ready packages and server-side geocoding.
    include_metadata : bool
        Request extended metadata.
    platform : str
        Platform tag embedded in the generated device identifier.
    fallback_latitude, fallback_longitude : float
        Placeholder marker position for packages without coordinates.
    placeholder_jitter : float
        Full width (degrees) of the random jitter around the placeholder.
    """

    endpoint: str = SYNC_ENDPOINT
    timeout: float = 20.0
    limit: int = 100
    lookback_days: int = 7
    geocoding_enabled: bool = True
    include_metadata: bool = True
    platform: str = "python"
    fallback_latitude: float = FALLBACK_LATITUDE
    fallback_longitude: float = FALLBACK_LONGITUDE
    placeholder_jitter: float = 0.1

    def __post_init__(self) -> None:
        if not self.endpoint:
            raise DeliveryConfigError("Sync endpoint is required")
        if self.timeout <= 0:
            raise DeliveryConfigError("Sync timeout must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> BulkSyncConfig:
        config_kwargs = _collect_env(
            {
                "PYDELIVERY_SYNC_ENDPOINT": ("endpoint", str),
                "PYDELIVERY_SYNC_TIMEOUT": ("timeout", float),
                "PYDELIVERY_SYNC_LIMIT": ("limit", int),
                "PYDELIVERY_SYNC_LOOKBACK_DAYS": ("lookback_days", int),
                "PYDELIVERY_SYNC_GEOCODING": ("geocoding_enabled", _bool_parser(True)),
            },
            overrides,
        )
        config_kwargs.update(overrides)
        return cls(**config_kwargs)
