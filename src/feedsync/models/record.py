"""Feedback record model."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from feedsync._constants import PENDING_STATUS


class EnrichmentState(StrEnum):
    """Whether the enrichment workflow has processed a record yet."""

    PENDING = "Pending"
    ENRICHED = "Enriched"


class Record(BaseModel):
    """A user-submitted feedback row.

    Fields map one-to-one onto the columns of the feedback table.
    ``category``, ``priority`` and ``status`` are written by the
    enrichment workflow after the row was inserted.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    id: str
    """Server-assigned identity (uuid or bigint, kept as string)."""
    title: str = ""
    description: str = ""
    category: str | None = None
    """Classification set by the enrichment workflow."""
    priority: str | None = None
    """Priority set by the enrichment workflow."""
    status: str = PENDING_STATUS
    """Raw status string; ``"Pending"`` until enriched."""
    user_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    raw: dict[str, Any] = Field(default_factory=dict)
    """Row as returned by the backend."""

    @model_validator(mode="before")
    @classmethod
    def _ensure_raw(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        merged.setdefault("raw", values)
        # Nullable text columns come back as None; fall back to defaults.
        for key in ("title", "description", "status"):
            if merged.get(key) is None:
                merged.pop(key, None)
        return merged

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _coerce_identity(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("id")
    @classmethod
    def _require_id(cls, value: str) -> str:
        identity = value.strip()
        if not identity:
            raise ValueError("id must be non-empty")
        return identity

    @field_validator("created_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def enrichment_state(self) -> EnrichmentState:
        status = self.status.strip()
        if not status or status == PENDING_STATUS:
            return EnrichmentState.PENDING
        return EnrichmentState.ENRICHED

    @property
    def is_enriched(self) -> bool:
        return self.enrichment_state is EnrichmentState.ENRICHED
