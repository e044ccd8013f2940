"""Full refetch of the collection into the record store.

Both the submission fallback and the invalidation listener go through
`resync`; concurrent calls are allowed and the store keeps the freshest
snapshot.
"""

from __future__ import annotations

import asyncio
import logging

from feedsync._api.records import RemoteStore
from feedsync.exceptions import FeedSyncError
from feedsync.state.store import RecordStore

_logger = logging.getLogger(__name__)


async def resync(
    remote: RemoteStore,
    store: RecordStore,
    *,
    attempts: int = 2,
    interval: float = 0.0,
    logger: logging.Logger | None = None,
) -> bool:
    """Refetch every record and replace the store's view.

    Transient fetch errors are retried up to *attempts* times. Returns
    ``False`` (and logs) when every attempt failed; never raises for
    backend errors.
    """
    log = logger or _logger
    for attempt in range(1, max(1, attempts) + 1):
        as_of = store.mark()
        try:
            records = await remote.fetch_all_records()
        except (FeedSyncError, TimeoutError):
            log.debug("Resync attempt=%d failed", attempt, exc_info=True)
            if attempt < attempts and interval > 0:
                await asyncio.sleep(interval)
            continue
        applied = store.replace_all(records, as_of=as_of)
        log.debug("Resync attempt=%d fetched=%d applied=%s", attempt, len(records), applied)
        return True
    log.warning("Resync gave up after %d attempts; view may be stale until the next update", attempts)
    return False
