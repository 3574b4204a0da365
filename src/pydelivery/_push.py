"""Server push channels delivering package change envelopes."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Callable
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt

from pydelivery.config import PushConfig

PayloadHandler = Callable[[dict[str, Any]], None]


class PushChannel(Protocol):
    """A one-way server to client channel of decoded JSON envelopes."""

    @property
    def is_connected(self) -> bool:
        ...

    def start(self, on_payload: PayloadHandler) -> None:
        ...

    def stop(self) -> None:
        ...


class NullPushChannel:
    """Channel used when push is disabled; never delivers anything."""

    @property
    def is_connected(self) -> bool:
        return False

    def start(self, on_payload: PayloadHandler) -> None:
        logging.getLogger(__name__).debug("Push channel disabled")

    def stop(self) -> None:
        return None


def decode_push_payload(payload: bytes) -> dict[str, Any]:
    """Decode a raw MQTT payload into a JSON object."""
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("Push payload is not a JSON object")
    return parsed


class MqttPushChannel:
    """Threaded paho-mqtt channel that hands payloads to an asyncio loop.

    At most one client exists per channel. paho's network thread retries
    the initial connect and every reconnect after ``reconnect_delay`` for
    as long as the channel is started.
    """

    def __init__(
        self,
        config: PushConfig,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        client_id: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._client_id = client_id or f"pydelivery-{secrets.token_hex(6)}"
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._connected = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._running and self._connected

    def start(self, on_payload: PayloadHandler) -> None:
        """Connect in the background and subscribe to the configured topic."""
        self.stop()
        config = self._config
        loop = self._loop or asyncio.get_running_loop()
        self._logger.debug(
            "Push channel start requested host=%s port=%s topic=%s client_id=%s",
            config.host,
            config.port,
            config.topic,
            self._client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if config.username:
            client.username_pw_set(config.username, config.password)
        if config.use_tls:
            client.tls_set()
        delay = max(1, round(config.reconnect_delay))
        client.reconnect_delay_set(min_delay=delay, max_delay=delay)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("Push channel connect failed: %s", reason_code)
                return
            self._connected = True
            self._logger.debug("Push channel connected, subscribing topic=%s", config.topic)
            c.subscribe(config.topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                parsed = decode_push_payload(msg.payload)
            except (UnicodeDecodeError, ValueError):
                self._logger.debug("Push payload parse failure on %s", msg.topic, exc_info=True)
                return
            loop.call_soon_threadsafe(on_payload, parsed)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._connected = False
            if self._running:
                self._logger.debug("Push channel disconnected (%s), reconnecting in %ss", reason_code, delay)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect_async(config.host, config.port, keepalive=config.keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("Push channel network loop started")

    def stop(self) -> None:
        """Disconnect and stop the network thread if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._connected = False

        if client is None:
            return
        try:
            if was_running:
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("Push channel network loop stopped")
