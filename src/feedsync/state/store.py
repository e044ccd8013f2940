"""Deterministic in-memory record store.

This is the only component allowed to mutate the client-held view of the
collection. Every mutation goes through `RecordStore.replace_all` or
`RecordStore.upsert_one`; neither awaits, so observers never see a
partially applied update.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator

from feedsync.models.record import Record
from feedsync.state.events import ChangeReason, StoreChange
from feedsync.state.policy import merge_records

_logger = logging.getLogger(__name__)

StoreObserver = Callable[[StoreChange], None]


class RecordStore:
    """Ordered, de-duplicated view of the record collection.

    Records are kept newest first. Identities are unique. A record that
    reached ``Enriched`` is never replaced by a ``Pending`` payload for the
    same identity, whichever path (poll or refetch) delivers it last.

    The store keeps a monotonic ``revision``. Callers that start a full
    refetch take a ticket with ``mark()`` first and pass it as ``as_of``
    to `replace_all`. Tickets are strictly increasing, so the store can
    tell which of two overlapping refetches started later.
    """

    def __init__(self) -> None:
        self._order: list[str] = []
        self._records: dict[str, Record] = {}
        # identity -> revision of its last upsert
        self._touched: dict[str, int] = {}
        self._revision = 0
        self._tickets = 0
        # ticket -> revision at the time it was issued
        self._ticket_revisions: dict[int, int] = {}
        self._applied_ticket = 0
        self._observers: list[StoreObserver] = []
        self._snapshot: tuple[Record, ...] = ()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def revision(self) -> int:
        return self._revision

    def mark(self) -> int:
        """Issue a ticket to pass as ``as_of`` once a refetch started now completes."""
        self._tickets += 1
        self._ticket_revisions[self._tickets] = self._revision
        return self._tickets

    def snapshot(self) -> tuple[Record, ...]:
        """Current ordered records (newest first)."""
        return self._snapshot

    def get(self, identity: str) -> Record | None:
        return self._records.get(identity)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, identity: object) -> bool:
        return identity in self._records

    def __iter__(self) -> Iterator[Record]:
        return iter(self._snapshot)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: StoreObserver) -> Callable[[], None]:
        """Register *observer*; returns a callable that unregisters it."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def _notify(self, reason: ChangeReason) -> None:
        change = StoreChange(records=self._snapshot, reason=reason, revision=self._revision)
        for observer in list(self._observers):
            try:
                observer(change)
            except Exception:
                _logger.debug("Store observer failed", exc_info=True)

    def _commit(self, reason: ChangeReason) -> None:
        self._snapshot = tuple(self._records[identity] for identity in self._order)
        self._notify(reason)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _slot_for(self, record: Record) -> int:
        """Index where a new *record* keeps the view newest first (ahead of ties)."""
        for index, identity in enumerate(self._order):
            if self._records[identity].created_at <= record.created_at:
                return index
        return len(self._order)

    def upsert_one(self, record: Record) -> Record:
        """Insert or merge a single record and return what the store now holds.

        A new identity is placed by ``created_at``, ahead of records with
        the same timestamp, so a freshly created record lands at the head.
        A known identity is merged in place and keeps its slot.
        """
        existing = self._records.get(record.id)
        merged = merge_records(existing, record)
        if existing is not None and merged is existing:
            _logger.debug("Ignoring stale payload for id=%s state=%s", record.id, record.enrichment_state)
            return existing

        self._revision += 1
        if existing is None:
            self._order.insert(self._slot_for(record), record.id)
        self._records[record.id] = merged
        self._touched[record.id] = self._revision
        _logger.debug(
            "Upserted id=%s state=%s new=%s revision=%d",
            record.id,
            merged.enrichment_state,
            existing is None,
            self._revision,
        )
        self._commit(ChangeReason.UPSERT)
        return merged

    def replace_all(self, records: Iterable[Record], *, as_of: int | None = None) -> bool:
        """Replace the whole view with a freshly fetched snapshot.

        Parameters
        ----------
        records
            The fetched collection. It is re-sorted newest first.
        as_of
            Ticket from ``mark()`` taken when the fetch started. A snapshot
            whose fetch started before the last applied one is rejected.
            Records upserted after the ticket was issued that the snapshot
            does not contain yet are kept. Without a ticket the snapshot is
            authoritative and every refetch still in flight becomes stale.

        Returns
        -------
        bool
            ``False`` when the snapshot was rejected as stale.
        """
        if as_of is not None and as_of < self._applied_ticket:
            _logger.debug("Rejecting stale snapshot as_of=%d applied=%d", as_of, self._applied_ticket)
            self._ticket_revisions.pop(as_of, None)
            return False

        issued_at: int | None = None
        if as_of is None:
            self._tickets += 1
            ticket = self._tickets
        else:
            ticket = as_of
            # Unknown tickets keep every locally touched record.
            issued_at = self._ticket_revisions.pop(as_of, -1)

        incoming: dict[str, Record] = {}
        incoming_order: list[str] = []
        for record in records:
            previous = incoming.get(record.id)
            if previous is None:
                incoming_order.append(record.id)
                previous = self._records.get(record.id)
            incoming[record.id] = merge_records(previous, record)

        retained: list[str] = []
        if issued_at is not None:
            for identity in self._order:
                if identity not in incoming and self._touched.get(identity, -1) > issued_at:
                    retained.append(identity)

        merged: dict[str, Record] = {identity: self._records[identity] for identity in retained}
        merged.update(incoming)
        ordered = sorted(
            (merged[identity] for identity in [*retained, *incoming_order]),
            key=lambda record: record.created_at,
            reverse=True,
        )

        self._applied_ticket = ticket
        self._ticket_revisions = {t: rev for t, rev in self._ticket_revisions.items() if t > ticket}
        self._revision += 1
        self._records = merged
        self._order = [record.id for record in ordered]
        self._touched = {identity: rev for identity, rev in self._touched.items() if identity in merged}
        _logger.debug(
            "Replaced collection records=%d retained=%d ticket=%d revision=%d",
            len(self._order),
            len(retained),
            ticket,
            self._revision,
        )
        self._commit(ChangeReason.REPLACE)
        return True
