"""Bounded wait for a freshly inserted record to be enriched."""

from __future__ import annotations

import asyncio
import logging

from feedsync._api.records import RemoteStore
from feedsync.exceptions import FeedSyncError
from feedsync.models.record import Record

_logger = logging.getLogger(__name__)


class EnrichmentWaiter:
    """Poll one record until the enrichment workflow has processed it.

    The worst-case wait is ``attempts * (attempt_timeout + interval)``;
    with the defaults (3 attempts, 0.5 s apart) the interval part is 1 s
    because nothing sleeps after the last attempt.
    """

    def __init__(
        self,
        remote: RemoteStore,
        *,
        attempts: int = 3,
        interval: float = 0.5,
        attempt_timeout: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self._remote = remote
        self._attempts = attempts
        self._interval = interval
        self._attempt_timeout = attempt_timeout
        self._logger = logger or _logger

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def interval(self) -> float:
        return self._interval

    async def _fetch(self, identity: str) -> Record | None:
        if self._attempt_timeout is None:
            return await self._remote.fetch_record(identity)
        return await asyncio.wait_for(self._remote.fetch_record(identity), self._attempt_timeout)

    async def await_enrichment(self, identity: str) -> Record | None:
        """Return the enriched record, or ``None`` once the budget is spent.

        Fetch errors, timeouts and a not-yet-visible row all count as
        "not enriched yet".
        """
        for attempt in range(1, self._attempts + 1):
            try:
                record = await self._fetch(identity)
            except (FeedSyncError, TimeoutError):
                self._logger.debug("Enrichment poll attempt=%d id=%s failed", attempt, identity, exc_info=True)
                record = None

            if record is not None and record.is_enriched:
                self._logger.debug("Enrichment done id=%s attempt=%d status=%s", identity, attempt, record.status)
                return record

            if attempt < self._attempts and self._interval > 0:
                await asyncio.sleep(self._interval)

        self._logger.debug("Enrichment not observed id=%s after %d attempts", identity, self._attempts)
        return None
