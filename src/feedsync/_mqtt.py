"""MQTT push source: paho-mqtt runtime bridged onto the asyncio loop.

The enrichment workflow publishes a small JSON message (for example
``{"event": "UPDATE", "table": "feedback"}``) to a topic after it writes
a row. Any message on the topic counts as "the collection changed".
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from feedsync.channel import Subscription
from feedsync.config import FeedSyncConfig
from feedsync.exceptions import FeedSyncChannelError, FeedSyncConfigError
from feedsync.state.events import InvalidationEvent, InvalidationKind


@dataclass(frozen=True)
class MqttBootstrap:
    """Broker details required to connect."""

    broker_host: str
    broker_port: int
    topic: str
    client_id: str
    username: str | None
    password: str | None
    tls: bool


def build_mqtt_bootstrap(config: FeedSyncConfig) -> MqttBootstrap:
    if not config.mqtt_host:
        raise FeedSyncConfigError("mqtt_host is required for the MQTT channel")
    return MqttBootstrap(
        broker_host=config.mqtt_host,
        broker_port=config.mqtt_port,
        topic=config.mqtt_topic,
        client_id=f"feedsync_{secrets.token_hex(8)}",
        username=config.mqtt_username,
        password=config.mqtt_password,
        tls=config.mqtt_tls,
    )


def decode_mqtt_payload(payload: bytes, *, table: str) -> InvalidationEvent | None:
    """Turn a raw message into an invalidation event for *table*.

    Messages naming a different table are dropped. Messages that are not
    JSON objects still announce an update of the topic's collection.
    """
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return InvalidationEvent(kind=InvalidationKind.UPDATE, scope=table)
    if not isinstance(parsed, dict):
        return InvalidationEvent(kind=InvalidationKind.UPDATE, scope=table)

    named_table = parsed.get("table")
    if isinstance(named_table, str) and named_table and named_table != table:
        return None

    kind_value = str(parsed.get("event") or parsed.get("type") or InvalidationKind.UPDATE.value).upper()
    try:
        kind = InvalidationKind(kind_value)
    except ValueError:
        kind = InvalidationKind.UPDATE
    return InvalidationEvent(kind=kind, scope=table, raw=parsed)


class MqttUpdateRuntime:
    """Threaded paho-mqtt runtime that emits invalidation events onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        table: str,
        on_event: Callable[[InvalidationEvent], None],
        keepalive: int = 120,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._table = table
        self._on_event = on_event
        self._keepalive = keepalive
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._topic: str | None = None
        self._connections = 0

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def _emit(self, event: InvalidationEvent) -> None:
        self._loop.call_soon_threadsafe(self._on_event, event)

    def start(self, bootstrap: MqttBootstrap) -> None:
        """Connect and subscribe with provided broker details."""
        self.stop()
        self._logger.debug(
            "MQTT runtime start requested host=%s port=%s topic=%s client_id=%s",
            bootstrap.broker_host,
            bootstrap.broker_port,
            bootstrap.topic,
            bootstrap.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=bootstrap.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if bootstrap.username:
            client.username_pw_set(bootstrap.username, bootstrap.password)
        if bootstrap.tls:
            client.tls_set()

        self._topic = bootstrap.topic
        self._connections = 0

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._connections += 1
            self._logger.debug("MQTT connected reason=%s connections=%d", reason_code, self._connections)
            if self._topic:
                c.subscribe(self._topic, qos=1)
            # Messages published while we were away are lost; ask for a resync.
            if self._connections > 1:
                self._emit(InvalidationEvent(kind=InvalidationKind.RECONNECTED, scope=self._table))

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                event = decode_mqtt_payload(msg.payload, table=self._table)
            except Exception:
                self._logger.debug("MQTT payload parse failure", exc_info=True)
                return
            if event is None:
                self._logger.debug("MQTT message for another table topic=%s", msg.topic)
                return
            self._logger.debug("MQTT invalidation topic=%s kind=%s", msg.topic, event.kind)
            self._emit(event)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            client.connect(bootstrap.broker_host, bootstrap.broker_port, keepalive=self._keepalive)
        except OSError as exc:
            raise FeedSyncChannelError(
                f"MQTT connect to {bootstrap.broker_host}:{bootstrap.broker_port} failed: {exc}"
            ) from exc
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._topic = None

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")


class MqttChannel:
    """Push channel backed by an MQTT topic."""

    def __init__(self, config: FeedSyncConfig, *, logger: logging.Logger | None = None) -> None:
        self._config = config
        self._logger = logger or logging.getLogger(__name__)

    @property
    def scope(self) -> str:
        return self._config.table

    def subscribe(self) -> Subscription:
        runtime: MqttUpdateRuntime | None = None

        async def _open(subscription: Subscription) -> None:
            nonlocal runtime
            loop = asyncio.get_running_loop()
            runtime = MqttUpdateRuntime(
                loop=loop,
                table=self._config.table,
                on_event=subscription.publish,
                keepalive=self._config.mqtt_keepalive,
                logger=self._logger,
            )
            await loop.run_in_executor(None, runtime.start, build_mqtt_bootstrap(self._config))

        async def _close() -> None:
            if runtime is None:
                return
            await asyncio.get_running_loop().run_in_executor(None, runtime.stop)

        return Subscription(on_open=_open, on_close=_close)
