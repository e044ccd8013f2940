"""Events flowing into and out of the record store.

Push channels convert whatever they receive into `InvalidationEvent`s.
The store hands `StoreChange` snapshots to its observers.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from feedsync.models.record import Record


class InvalidationKind(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RECONNECTED = "RECONNECTED"


class ChangeReason(StrEnum):
    UPSERT = "upsert"
    REPLACE = "replace"


class InvalidationEvent(BaseModel):
    """A "something changed" notification for a record collection.

    No record payload is trusted; consumers refetch instead.
    """

    model_config = ConfigDict(frozen=True)

    kind: InvalidationKind
    scope: str = Field(..., description="Collection (table) the event belongs to")
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    raw: dict[str, Any] = Field(default_factory=dict, description="Original message (as received)")

    @field_validator("scope")
    @classmethod
    def _normalize_scope(cls, value: str) -> str:
        scope = value.strip()
        if not scope:
            raise ValueError("scope must be non-empty")
        return scope


class StoreChange(BaseModel):
    """Read-only snapshot delivered to store observers after each mutation."""

    model_config = ConfigDict(frozen=True)

    records: tuple[Record, ...]
    reason: ChangeReason
    revision: int
