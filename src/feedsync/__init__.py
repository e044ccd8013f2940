"""feedsync - Async client keeping a live view of asynchronously enriched feedback."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("feedsync")
except PackageNotFoundError:
    __version__ = "0+local"
from feedsync._client.enrichment import EnrichmentWaiter
from feedsync._client.invalidation import InvalidationListener
from feedsync._client.resync import resync
from feedsync._client.submission import SubmissionCoordinator
from feedsync.channel import Subscription, UpdateChannel
from feedsync.client import FeedSyncClient
from feedsync.config import FeedSyncConfig
from feedsync.exceptions import (
    FeedSyncApiError,
    FeedSyncAuthenticationError,
    FeedSyncChannelError,
    FeedSyncConfigError,
    FeedSyncError,
    FeedSyncSessionExpiredError,
    FeedSyncTransportError,
)
from feedsync.models import AuthToken, EnrichmentState, Record
from feedsync.state.events import ChangeReason, InvalidationEvent, InvalidationKind, StoreChange
from feedsync.state.store import RecordStore

__all__ = [
    "__version__",
    "AuthToken",
    "ChangeReason",
    "EnrichmentState",
    "EnrichmentWaiter",
    "FeedSyncApiError",
    "FeedSyncAuthenticationError",
    "FeedSyncChannelError",
    "FeedSyncClient",
    "FeedSyncConfig",
    "FeedSyncConfigError",
    "FeedSyncError",
    "FeedSyncSessionExpiredError",
    "FeedSyncTransportError",
    "InvalidationEvent",
    "InvalidationKind",
    "InvalidationListener",
    "Record",
    "RecordStore",
    "StoreChange",
    "Subscription",
    "SubmissionCoordinator",
    "UpdateChannel",
    "resync",
]
