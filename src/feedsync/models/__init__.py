"""Typed models for feedback rows and auth tokens."""

from feedsync.models.record import EnrichmentState, Record
from feedsync.models.token import AuthToken

__all__ = [
    "AuthToken",
    "EnrichmentState",
    "Record",
]
