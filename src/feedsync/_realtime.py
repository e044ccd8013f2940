"""Realtime (Phoenix channel) push source over an aiohttp websocket.

The backend streams ``postgres_changes`` messages for the collection.
Each one is reduced to a payload-free `InvalidationEvent`.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp

from feedsync._constants import REALTIME_PATH
from feedsync._redact import redact_for_log
from feedsync.channel import Subscription
from feedsync.config import FeedSyncConfig
from feedsync.exceptions import FeedSyncChannelError
from feedsync.state.events import InvalidationEvent, InvalidationKind

_logger = logging.getLogger(__name__)

_PHOENIX_TOPIC = "phoenix"
_VSN = "1.0.0"


def build_realtime_url(config: FeedSyncConfig) -> str:
    base = config.base_url
    if base.startswith("https://"):
        base = "wss://" + base[len("https://") :]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://") :]
    return f"{base}{REALTIME_PATH}"


def channel_topic(config: FeedSyncConfig) -> str:
    return f"realtime:{config.realtime_channel_name}"


def build_join_message(config: FeedSyncConfig, access_token: str, ref: str) -> dict[str, Any]:
    """Build the ``phx_join`` frame subscribing to row changes of the table."""
    changes = [
        {"event": event, "schema": config.schema, "table": config.table}
        for event in (config.realtime_events or ("*",))
    ]
    return {
        "topic": channel_topic(config),
        "event": "phx_join",
        "payload": {
            "config": {
                "broadcast": {"ack": False, "self": False},
                "presence": {"key": ""},
                "postgres_changes": changes,
                "private": False,
            },
            "access_token": access_token,
        },
        "ref": ref,
        "join_ref": ref,
    }


def parse_realtime_message(message: Any, *, topic: str, table: str) -> InvalidationEvent | None:
    """Reduce one decoded frame to an invalidation event.

    Returns ``None`` for frames that do not announce a change of *table*
    (replies, heartbeats, presence, other topics).

    Raises
    ------
    FeedSyncChannelError
        When the server reports an error on, or closes, our channel.
    """
    if not isinstance(message, dict) or message.get("topic") != topic:
        return None

    event = message.get("event")
    payload = message.get("payload") if isinstance(message.get("payload"), dict) else {}

    if event in {"phx_error", "phx_close"}:
        raise FeedSyncChannelError(f"Realtime channel {topic} closed by server: {event}")
    if event == "system" and payload.get("status") == "error":
        raise FeedSyncChannelError(f"Realtime channel {topic} error: {payload.get('message', '')}")
    if event != "postgres_changes":
        return None

    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    if data.get("table") not in (None, table):
        return None
    change_type = str(data.get("type") or data.get("eventType") or "").upper()
    try:
        kind = InvalidationKind(change_type)
    except ValueError:
        return None
    return InvalidationEvent(kind=kind, scope=table, raw=message)


class _RealtimeConnection:
    """One websocket, one joined channel, one reader task, one heartbeat task."""

    def __init__(
        self,
        config: FeedSyncConfig,
        http_session: aiohttp.ClientSession,
        access_token: Callable[[], Awaitable[str]],
        logger: logging.Logger,
    ) -> None:
        self._config = config
        self._http = http_session
        self._access_token = access_token
        self._logger = logger
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._ref = 0
        self._closing = False

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    async def open(self, subscription: Subscription) -> None:
        token = await self._access_token()
        url = build_realtime_url(self._config)
        topic = channel_topic(self._config)
        self._logger.debug("Realtime connect url=%s topic=%s", url, topic)
        try:
            ws = await self._http.ws_connect(
                url,
                params={"apikey": self._config.api_key, "vsn": _VSN},
            )
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise FeedSyncChannelError(f"Realtime connect failed: {exc}") from exc
        self._ws = ws

        join_ref = self._next_ref()
        await ws.send_json(build_join_message(self._config, token, join_ref))
        try:
            reply = await asyncio.wait_for(self._await_reply(ws, topic, join_ref), self._config.request_timeout)
        except TimeoutError as exc:
            raise FeedSyncChannelError(f"Realtime join of {topic} timed out") from exc
        status = reply.get("status")
        if status != "ok":
            raise FeedSyncChannelError(f"Realtime join of {topic} rejected: {redact_for_log(reply)}")
        self._logger.debug("Realtime joined topic=%s", topic)

        self._tasks = [
            asyncio.create_task(self._read_loop(ws, subscription, topic)),
            asyncio.create_task(self._heartbeat_loop(ws)),
        ]

    async def _await_reply(self, ws: aiohttp.ClientWebSocketResponse, topic: str, ref: str) -> dict[str, Any]:
        async for msg in ws:
            if msg.type != aiohttp.WSMsgType.TEXT:
                if msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break
                continue
            try:
                frame = json.loads(msg.data)
            except json.JSONDecodeError:
                continue
            if not isinstance(frame, dict) or frame.get("topic") != topic:
                continue
            if frame.get("event") == "phx_reply" and frame.get("ref") == ref:
                payload = frame.get("payload")
                return payload if isinstance(payload, dict) else {}
        raise FeedSyncChannelError(f"Realtime socket closed while joining {topic}")

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse, subscription: Subscription, topic: str) -> None:
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        frame = json.loads(msg.data)
                    except json.JSONDecodeError:
                        self._logger.debug("Realtime frame is not JSON: %s", msg.data[:200])
                        continue
                    event = parse_realtime_message(frame, topic=topic, table=self._config.table)
                    if event is not None:
                        self._logger.debug("Realtime change kind=%s table=%s", event.kind, event.scope)
                        subscription.publish(event)
                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break
        except FeedSyncChannelError as exc:
            subscription.fail(exc)
            return
        if not self._closing:
            subscription.fail(FeedSyncChannelError("Realtime socket closed"))

    async def _heartbeat_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while not ws.closed:
            await asyncio.sleep(self._config.heartbeat_interval)
            try:
                await ws.send_json({"topic": _PHOENIX_TOPIC, "event": "heartbeat", "payload": {}, "ref": self._next_ref()})
            except (aiohttp.ClientError, ConnectionError):
                self._logger.debug("Realtime heartbeat failed", exc_info=True)
                return

    async def close(self) -> None:
        self._closing = True
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        ws, self._ws = self._ws, None
        if ws is None or ws.closed:
            return
        try:
            await ws.send_json(
                {"topic": channel_topic(self._config), "event": "phx_leave", "payload": {}, "ref": self._next_ref()}
            )
        except (aiohttp.ClientError, ConnectionError):
            self._logger.debug("Realtime leave failed", exc_info=True)
        await ws.close()
        self._logger.debug("Realtime socket closed")


class RealtimeChannel:
    """Push channel backed by the realtime websocket."""

    def __init__(
        self,
        config: FeedSyncConfig,
        http_session: aiohttp.ClientSession,
        *,
        access_token: Callable[[], Awaitable[str]],
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._access_token = access_token
        self._logger = logger or _logger

    @property
    def scope(self) -> str:
        return self._config.table

    def subscribe(self) -> Subscription:
        connection = _RealtimeConnection(self._config, self._http, self._access_token, self._logger)
        return Subscription(on_open=connection.open, on_close=connection.close)
