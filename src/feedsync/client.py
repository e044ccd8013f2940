"""High-level async client for a live, enriched feedback collection."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiohttp

from feedsync._api import auth as _auth_api
from feedsync._client.enrichment import EnrichmentWaiter
from feedsync._client.invalidation import InvalidationListener
from feedsync._client.remote import ClientRemoteStore
from feedsync._client.resync import resync
from feedsync._client.submission import SubmissionCoordinator
from feedsync._mqtt import MqttChannel
from feedsync._realtime import RealtimeChannel
from feedsync._transport import RestTransport, Transport
from feedsync.channel import UpdateChannel
from feedsync.config import FeedSyncConfig
from feedsync.exceptions import FeedSyncConfigError, FeedSyncError, FeedSyncSessionExpiredError
from feedsync.models.record import Record
from feedsync.models.token import AuthToken
from feedsync.session import Session
from feedsync.state.store import RecordStore, StoreObserver

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class FeedSyncClient:
    """Async client that keeps a live, ordered view of the feedback collection.

    Usage::

        async with FeedSyncClient(config) as client:
            await client.login()
            await client.refresh()
            async with client.listen():
                await client.submit("Bug", "The export button does nothing")
                print(client.records)
    """

    def __init__(
        self,
        config: FeedSyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        store: RecordStore | None = None,
        channel: UpdateChannel | None = None,
        on_submitted: Callable[[], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = None
        self._session: Session | None = None
        self._store = store if store is not None else RecordStore()
        self._channel = channel
        self._remote = ClientRemoteStore(self)
        self._waiter = EnrichmentWaiter(
            self._remote,
            attempts=config.enrichment_attempts,
            interval=config.enrichment_interval,
            attempt_timeout=config.request_timeout,
            logger=_logger,
        )
        self._coordinator = SubmissionCoordinator(
            remote=self._remote,
            store=self._store,
            waiter=self._waiter,
            current_user=self.current_user_id,
            on_submitted=on_submitted,
            resync_attempts=config.resync_attempts,
            logger=_logger,
        )
        self._listener: InvalidationListener | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FeedSyncClient:
        self._config.validate()
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = RestTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop_listening()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def login(self) -> Session:
        """Authenticate and store the session.

        Uses the configured access token when there is one, otherwise a
        password login with the configured email and password.
        """
        transport = self._require_transport()
        token: AuthToken
        if self._config.access_token and not self._config.has_credentials:
            token = await _auth_api.fetch_user(self._config, transport, self._config.access_token)
        else:
            token = await _auth_api.login(self._config, transport)

        ttl = token.expires_in if token.expires_in else self._config.session_ttl
        self._session = Session(
            user_id=token.user_id,
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            email=token.email,
            ttl=ttl if ttl > 0 else float("inf"),
        )
        _logger.debug("Signed in user_id=%s", token.user_id)
        return self._session

    async def ensure_session(self) -> Session:
        """Return an active session, re-authenticating if expired."""
        if self._session is not None and not self._session.is_expired:
            return self._session
        return await self.login()

    def invalidate_session(self) -> None:
        """Force session invalidation (next call will re-authenticate)."""
        self._session = None

    def current_user_id(self) -> str | None:
        """Identity of the signed-in user, ``None`` before login."""
        if self._session is None:
            return None
        return self._session.user_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise FeedSyncError("Client not initialized. Use 'async with FeedSyncClient(...) as client:'")
        return self._transport

    async def _call_with_reauth(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run an API call, retrying once on session expiry."""
        try:
            return await fn()
        except FeedSyncSessionExpiredError:
            if not self._config.has_credentials:
                raise
            self.invalidate_session()
            await self.ensure_session()
            return await fn()

    async def _access_token(self) -> str:
        session = await self.ensure_session()
        return session.access_token

    def _build_channel(self) -> UpdateChannel:
        if self._channel is not None:
            return self._channel
        if self._config.channel == "realtime":
            if self._http_session is None:
                raise FeedSyncError("Client not initialized. Use 'async with FeedSyncClient(...) as client:'")
            return RealtimeChannel(self._config, self._http_session, access_token=self._access_token, logger=_logger)
        if self._config.channel == "mqtt":
            return MqttChannel(self._config, logger=_logger)
        raise FeedSyncConfigError("No push channel configured (channel='none')")

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def records(self) -> tuple[Record, ...]:
        """Current records, newest first (read-only snapshot)."""
        return self._store.snapshot()

    @property
    def busy(self) -> bool:
        """Whether a submission is in flight."""
        return self._coordinator.busy

    def on_change(self, observer: StoreObserver) -> Callable[[], None]:
        """Call *observer* after every store mutation; returns an unsubscribe callable."""
        return self._store.subscribe(observer)

    async def refresh(self) -> bool:
        """Refetch the whole collection into the view."""
        return await resync(self._remote, self._store, attempts=self._config.resync_attempts, logger=_logger)

    async def submit(self, title: str, description: str) -> Record | None:
        """Create a record and reconcile it into the view.

        See :meth:`feedsync._client.submission.SubmissionCoordinator.submit`.
        """
        return await self._coordinator.submit(title, description)

    # ------------------------------------------------------------------
    # Push invalidation
    # ------------------------------------------------------------------

    def listen(self) -> InvalidationListener:
        """Return the invalidation listener for this session.

        Use it as ``async with client.listen():``. The listener is also
        stopped when the client itself is closed.
        """
        if self._listener is None:
            self._listener = InvalidationListener(
                channel=self._build_channel(),
                remote=self._remote,
                store=self._store,
                resync_attempts=self._config.resync_attempts,
                initial_delay=self._config.resubscribe_initial_delay,
                max_delay=self._config.resubscribe_max_delay,
                logger=_logger,
            )
        return self._listener

    async def stop_listening(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            await listener.stop()
