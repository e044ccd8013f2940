"""Deterministic record merge policy.

This module contains *no* fetching or ordering logic. It only decides
which of two payloads for the same identity the store keeps.
"""

from __future__ import annotations

from feedsync.models.record import EnrichmentState, Record


def state_rank(state: EnrichmentState) -> int:
    """Higher is more advanced; enrichment never moves backwards."""
    ranks: dict[EnrichmentState, int] = {
        EnrichmentState.PENDING: 0,
        EnrichmentState.ENRICHED: 10,
    }
    return ranks.get(state, 0)


def is_regression(existing: Record, incoming: Record) -> bool:
    """Whether applying *incoming* over *existing* would move the state back."""
    return state_rank(incoming.enrichment_state) < state_rank(existing.enrichment_state)


def merge_records(existing: Record | None, incoming: Record) -> Record:
    """Return the record to keep for one identity.

    Policy:
    - Nothing stored yet: the incoming payload.
    - Incoming is less advanced (a late ``Pending`` read after an
      ``Enriched`` one): keep what is stored.
    - Otherwise the incoming payload is at least as fresh and wins.
    """
    if existing is None:
        return incoming
    if existing.id != incoming.id:
        raise ValueError(f"cannot merge records with different ids: {existing.id!r} != {incoming.id!r}")
    if is_regression(existing, incoming):
        return existing
    return incoming
