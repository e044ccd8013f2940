from __future__ import annotations

import pytest

from feedsync._realtime import build_join_message, build_realtime_url, channel_topic, parse_realtime_message
from feedsync.config import FeedSyncConfig
from feedsync.exceptions import FeedSyncChannelError
from feedsync.state.events import InvalidationKind

TOPIC = "realtime:feedback-realtime"


@pytest.fixture
def config() -> FeedSyncConfig:
    return FeedSyncConfig(url="https://project.supabase.co/", api_key="anon-key")


def _change(change_type: str, *, table: str = "feedback", topic: str = TOPIC) -> dict:
    return {
        "topic": topic,
        "event": "postgres_changes",
        "payload": {
            "ids": [1],
            "data": {
                "schema": "public",
                "table": table,
                "type": change_type,
                "commit_timestamp": "2026-03-01T10:00:00Z",
                "record": {"id": 7, "status": "Open"},
            },
        },
        "ref": None,
    }


def test_realtime_url_uses_websocket_scheme(config: FeedSyncConfig) -> None:
    assert build_realtime_url(config) == "wss://project.supabase.co/realtime/v1/websocket"
    local = FeedSyncConfig(url="http://localhost:54321", api_key="k")
    assert build_realtime_url(local) == "ws://localhost:54321/realtime/v1/websocket"


def test_join_message_subscribes_to_configured_events(config: FeedSyncConfig) -> None:
    message = build_join_message(config, "jwt-token", "1")

    assert message["topic"] == channel_topic(config) == TOPIC
    assert message["event"] == "phx_join"
    assert message["ref"] == "1"
    assert message["payload"]["access_token"] == "jwt-token"
    assert message["payload"]["config"]["postgres_changes"] == [
        {"event": "UPDATE", "schema": "public", "table": "feedback"}
    ]


def test_join_message_without_events_subscribes_to_everything() -> None:
    config = FeedSyncConfig(url="https://x", api_key="k", realtime_events=())
    changes = build_join_message(config, "t", "1")["payload"]["config"]["postgres_changes"]
    assert changes == [{"event": "*", "schema": "public", "table": "feedback"}]


@pytest.mark.parametrize("change_type", ["INSERT", "UPDATE", "DELETE"])
def test_row_change_becomes_invalidation(change_type: str) -> None:
    event = parse_realtime_message(_change(change_type), topic=TOPIC, table="feedback")

    assert event is not None
    assert event.kind is InvalidationKind(change_type)
    assert event.scope == "feedback"


def test_changes_of_other_tables_or_topics_are_ignored() -> None:
    assert parse_realtime_message(_change("UPDATE", table="users"), topic=TOPIC, table="feedback") is None
    assert parse_realtime_message(_change("UPDATE", topic="realtime:other"), topic=TOPIC, table="feedback") is None


@pytest.mark.parametrize(
    "message",
    [
        {"topic": TOPIC, "event": "phx_reply", "payload": {"status": "ok", "response": {}}, "ref": "1"},
        {"topic": TOPIC, "event": "presence_state", "payload": {}},
        {"topic": "phoenix", "event": "phx_reply", "payload": {"status": "ok"}},
        {"topic": TOPIC, "event": "system", "payload": {"status": "ok", "message": "subscribed"}},
        "not-a-frame",
    ],
)
def test_non_change_frames_are_ignored(message: object) -> None:
    assert parse_realtime_message(message, topic=TOPIC, table="feedback") is None


@pytest.mark.parametrize(
    "message",
    [
        {"topic": TOPIC, "event": "phx_error", "payload": {}},
        {"topic": TOPIC, "event": "phx_close", "payload": {}},
        {"topic": TOPIC, "event": "system", "payload": {"status": "error", "message": "token expired"}},
    ],
)
def test_channel_errors_raise(message: dict) -> None:
    with pytest.raises(FeedSyncChannelError):
        parse_realtime_message(message, topic=TOPIC, table="feedback")
