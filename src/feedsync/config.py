"""Client configuration for feedsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from feedsync._constants import DEFAULT_SCHEMA, DEFAULT_TABLE
from feedsync.exceptions import FeedSyncConfigError

CHANNEL_KINDS: frozenset[str] = frozenset({"realtime", "mqtt", "none"})


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_tuple(value: str) -> tuple[str, ...]:
    return tuple(part.strip().upper() for part in value.split(",") if part.strip())


@dataclasses.dataclass(frozen=True)
class FeedSyncConfig:
    """Client configuration.

    Parameters
    ----------
    url : str
        Backend project URL (e.g. ``https://xyz.supabase.co``).
    api_key : str
        Public (anon) API key sent as ``apikey`` with every request.
    email : str or None
        Account email used for password login.
    password : str or None
        Account password used for password login.
    access_token : str or None
        Pre-issued access token.  When set, login is skipped and the user
        is resolved from the token instead.
    table : str
        Name of the record collection.
    schema : str
        Database schema of the collection.
    enrichment_attempts : int
        How many times a just-inserted record is polled before giving up.
    enrichment_interval : float
        Seconds between two enrichment polls.
    resync_attempts : int
        How many times a full refetch is tried before it is abandoned.
    request_timeout : float
        Total timeout of a single HTTP request in seconds.
    session_ttl : float
        Fallback token lifetime in seconds when the backend does not
        report ``expires_in``.
    channel : str
        Push channel used for invalidation: ``"realtime"`` (websocket),
        ``"mqtt"`` or ``"none"``.
    realtime_channel_name : str
        Topic suffix of the realtime channel.
    realtime_events : tuple of str
        Row change events that trigger a resync (``UPDATE``, ``INSERT``,
        ``DELETE`` or ``*``).
    heartbeat_interval : float
        Seconds between realtime heartbeats.
    mqtt_host, mqtt_port, mqtt_topic, mqtt_username, mqtt_password
        Broker details for the MQTT channel.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_tls : bool
        Connect to the broker over TLS.
    resubscribe_initial_delay : float
        First backoff delay after a push channel failure.
    resubscribe_max_delay : float
        Upper bound of the resubscription backoff.
    api_trace_enabled : bool
        Log redacted request/response bodies at DEBUG level.
    """

    url: str
    api_key: str
    email: str | None = None
    password: str | None = None
    access_token: str | None = None
    table: str = DEFAULT_TABLE
    schema: str = DEFAULT_SCHEMA
    enrichment_attempts: int = 3
    enrichment_interval: float = 0.5
    resync_attempts: int = 2
    request_timeout: float = 10.0
    session_ttl: float = 3600.0
    channel: str = "realtime"
    realtime_channel_name: str = "feedback-realtime"
    realtime_events: tuple[str, ...] = ("UPDATE",)
    heartbeat_interval: float = 30.0
    mqtt_host: str | None = None
    mqtt_port: int = 8883
    mqtt_topic: str = "feedback/updates"
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_keepalive: int = 120
    mqtt_tls: bool = True
    resubscribe_initial_delay: float = 1.0
    resubscribe_max_delay: float = 30.0
    api_trace_enabled: bool = False

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")

    @property
    def has_credentials(self) -> bool:
        return bool(self.email and self.password)

    def validate(self) -> None:
        """Raise :class:`FeedSyncConfigError` for unusable settings."""
        if not self.url.strip():
            raise FeedSyncConfigError("url must be set")
        if not self.api_key.strip():
            raise FeedSyncConfigError("api_key must be set")
        if not self.table.strip():
            raise FeedSyncConfigError("table must be set")
        if self.enrichment_attempts < 1:
            raise FeedSyncConfigError("enrichment_attempts must be at least 1")
        if self.enrichment_interval < 0:
            raise FeedSyncConfigError("enrichment_interval must not be negative")
        if self.resync_attempts < 1:
            raise FeedSyncConfigError("resync_attempts must be at least 1")
        if self.channel not in CHANNEL_KINDS:
            raise FeedSyncConfigError(f"channel must be one of {sorted(CHANNEL_KINDS)}, got {self.channel!r}")
        if self.channel == "mqtt" and not self.mqtt_host:
            raise FeedSyncConfigError("mqtt_host is required when channel='mqtt'")
        if self.resubscribe_initial_delay < 0 or self.resubscribe_max_delay < self.resubscribe_initial_delay:
            raise FeedSyncConfigError("resubscribe delays must satisfy 0 <= initial <= max")

    @classmethod
    def from_env(cls, **overrides: Any) -> FeedSyncConfig:
        """Create configuration from environment variables.

        Reads ``FEEDSYNC_URL`` / ``FEEDSYNC_API_KEY`` (falling back to
        ``SUPABASE_URL`` / ``SUPABASE_ANON_KEY``) and optional
        ``FEEDSYNC_*`` variables. Explicit keyword arguments override
        environment values.
        """
        env = os.environ

        config_kwargs: dict[str, Any] = {
            "url": env.get("FEEDSYNC_URL") or env.get("SUPABASE_URL") or "",
            "api_key": env.get("FEEDSYNC_API_KEY") or env.get("SUPABASE_ANON_KEY") or "",
        }

        _ENV_STR_MAP = {
            "FEEDSYNC_EMAIL": "email",
            "FEEDSYNC_PASSWORD": "password",
            "FEEDSYNC_ACCESS_TOKEN": "access_token",
            "FEEDSYNC_TABLE": "table",
            "FEEDSYNC_SCHEMA": "schema",
            "FEEDSYNC_CHANNEL": "channel",
            "FEEDSYNC_REALTIME_CHANNEL_NAME": "realtime_channel_name",
            "FEEDSYNC_MQTT_HOST": "mqtt_host",
            "FEEDSYNC_MQTT_TOPIC": "mqtt_topic",
            "FEEDSYNC_MQTT_USERNAME": "mqtt_username",
            "FEEDSYNC_MQTT_PASSWORD": "mqtt_password",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_INT_MAP = {
            "FEEDSYNC_ENRICHMENT_ATTEMPTS": "enrichment_attempts",
            "FEEDSYNC_RESYNC_ATTEMPTS": "resync_attempts",
            "FEEDSYNC_MQTT_PORT": "mqtt_port",
            "FEEDSYNC_MQTT_KEEPALIVE": "mqtt_keepalive",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = int(val)

        _ENV_FLOAT_MAP = {
            "FEEDSYNC_ENRICHMENT_INTERVAL": "enrichment_interval",
            "FEEDSYNC_REQUEST_TIMEOUT": "request_timeout",
            "FEEDSYNC_SESSION_TTL": "session_ttl",
            "FEEDSYNC_HEARTBEAT_INTERVAL": "heartbeat_interval",
            "FEEDSYNC_RESUBSCRIBE_INITIAL_DELAY": "resubscribe_initial_delay",
            "FEEDSYNC_RESUBSCRIBE_MAX_DELAY": "resubscribe_max_delay",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)

        events_env = env.get("FEEDSYNC_REALTIME_EVENTS")
        if events_env is not None and "realtime_events" not in overrides:
            config_kwargs["realtime_events"] = _env_tuple(events_env)

        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("FEEDSYNC_MQTT_TLS"), True)

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(
                env.get("FEEDSYNC_API_TRACE_ENABLED"),
                False,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
