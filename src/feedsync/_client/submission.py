"""Submit a record, wait for its enrichment, merge or fall back."""

from __future__ import annotations

import logging
from collections.abc import Callable

from feedsync._api.records import RemoteStore
from feedsync._client.enrichment import EnrichmentWaiter
from feedsync._client.resync import resync
from feedsync._constants import PENDING_STATUS
from feedsync.exceptions import FeedSyncAuthenticationError, FeedSyncError
from feedsync.models.record import Record
from feedsync.state.store import RecordStore

_logger = logging.getLogger(__name__)


class SubmissionCoordinator:
    """Own the create → wait → merge-or-resync flow of a single submission.

    Parameters
    ----------
    remote
        Remote store used for the insert and the fallback refetch.
    store
        The record store the outcome is merged into.
    waiter
        Bounded enrichment poller.
    current_user
        Returns the signed-in user's id, or ``None`` when nobody is
        signed in.
    on_submitted
        Called right after the insert was attempted, whatever its outcome
        (the presentation layer clears its input fields here).
    resync_attempts
        Attempts of the fallback refetch.
    """

    def __init__(
        self,
        *,
        remote: RemoteStore,
        store: RecordStore,
        waiter: EnrichmentWaiter,
        current_user: Callable[[], str | None],
        on_submitted: Callable[[], None] | None = None,
        resync_attempts: int = 2,
        logger: logging.Logger | None = None,
    ) -> None:
        self._remote = remote
        self._store = store
        self._waiter = waiter
        self._current_user = current_user
        self._on_submitted = on_submitted
        self._resync_attempts = resync_attempts
        self._logger = logger or _logger
        self._in_flight = 0

    @property
    def busy(self) -> bool:
        """Whether at least one submission is still running."""
        return self._in_flight > 0

    def _submitted(self) -> None:
        if self._on_submitted is None:
            return
        try:
            self._on_submitted()
        except Exception:
            self._logger.debug("on_submitted callback failed", exc_info=True)

    async def submit(self, title: str, description: str) -> Record | None:
        """Create a record and bring it into the store.

        Returns the record as the store holds it afterwards: enriched when
        the workflow finished in time, otherwise whatever the fallback
        refetch produced. Returns ``None`` when the insert failed.

        Raises
        ------
        ValueError
            If *title* or *description* is blank. Non-blank values are
            stored exactly as given.
        FeedSyncAuthenticationError
            If no user is signed in.
        """
        if not title.strip() or not description.strip():
            raise ValueError("title and description are required")

        user_id = self._current_user()
        if not user_id:
            raise FeedSyncAuthenticationError("Submitting requires a signed-in user")

        self._in_flight += 1
        try:
            try:
                identity = await self._remote.insert_record(
                    {
                        "title": title,
                        "description": description,
                        "user_id": user_id,
                        "status": PENDING_STATUS,
                    }
                )
            except FeedSyncError:
                identity = None
                self._logger.warning("Insert of new record failed; nothing to wait for", exc_info=True)
            finally:
                self._submitted()

            if not identity:
                return None

            enriched = await self._waiter.await_enrichment(identity)
            if enriched is not None:
                return self._store.upsert_one(enriched)

            self._logger.debug("Enrichment of id=%s not seen in time; falling back to resync", identity)
            await resync(self._remote, self._store, attempts=self._resync_attempts, logger=self._logger)
            return self._store.get(identity)
        finally:
            self._in_flight -= 1
