"""High-level async client for the ParkSafe backend."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

import aiohttp

from parksafe._api import auth as _auth_api
from parksafe._api.profiles import ensure_profile
from parksafe._query import Query
from parksafe._realtime import PushChannel, RealtimeRuntime
from parksafe._transport import RestTransport, Transport
from parksafe.config import ParkSafeConfig
from parksafe.exceptions import ParkSafeAuthenticationError, ParkSafeError, ParkSafeSessionExpiredError
from parksafe.models.alert import Alert
from parksafe.models.message import Message
from parksafe.models.user import AuthUser
from parksafe.session import Session
from parksafe.state.events import ChangeKind
from parksafe.state.location import LocationStore
from parksafe.state.messages import MessageStore
from parksafe.state.session import SessionStore
from parksafe.sync._base import Synchronizer
from parksafe.sync.alerts import AlertBanner, AlertDashboard, broadcast_emergency, send_panic_alert
from parksafe.sync.dashboard import Dashboard
from parksafe.sync.groups import GroupManager
from parksafe.sync.location import GeolocationProvider, LocationProducer
from parksafe.sync.map import InMemoryMapSurface, MapSurface
from parksafe.sync.messages import MessageComposer, MessageSynchronizer
from parksafe.sync.notify import Notifier, ToastQueue
from parksafe.sync.presence import PresenceSynchronizer

_logger = logging.getLogger(__name__)

T = TypeVar("T")
S = TypeVar("S", bound=Synchronizer)


class _ReauthTransport:
    """Transport handed to synchronizers: refreshes the session once on expiry."""

    def __init__(self, client: ParkSafeClient, inner: Transport) -> None:
        self._client = client
        self._inner = inner

    def set_access_token(self, token: str | None) -> None:
        self._inner.set_access_token(token)

    async def select(self, query: Query) -> list[dict[str, Any]]:
        return await self._client._call_with_reauth(lambda: self._inner.select(query))  # noqa: SLF001

    async def insert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        returning: Query | None = None,
    ) -> list[dict[str, Any]]:
        return await self._client._call_with_reauth(  # noqa: SLF001
            lambda: self._inner.insert(table, rows, returning=returning)
        )

    async def update(self, query: Query, values: Mapping[str, Any]) -> list[dict[str, Any]]:
        return await self._client._call_with_reauth(lambda: self._inner.update(query, values))  # noqa: SLF001

    async def delete(self, query: Query) -> list[dict[str, Any]]:
        return await self._client._call_with_reauth(lambda: self._inner.delete(query))  # noqa: SLF001

    async def auth(
        self,
        method: str,
        endpoint: str,
        *,
        payload: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        return await self._client._call_with_reauth(  # noqa: SLF001
            lambda: self._inner.auth(method, endpoint, payload=payload, params=params)
        )


class ParkSafeClient:
    """Async client for the ParkSafe backend.

    Owns the HTTP session, the push channel and the three stores, and
    builds the synchronizers that keep them current. Every synchronizer
    built here is stopped on :meth:`sign_out` and on context exit.

    Usage::

        async with ParkSafeClient(config) as client:
            await client.sign_in(email, password)
            async with client.messages() as messages:
                ...
    """

    def __init__(
        self,
        config: ParkSafeConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        push: PushChannel | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._raw_transport: Transport | None = transport
        self._transport: _ReauthTransport | None = None
        self._push = push
        self._realtime: RealtimeRuntime | None = None
        self._notifier: Notifier = notifier or ToastQueue()
        self._sessions = SessionStore(path=config.session_path)
        self._location = LocationStore()
        self._messages = MessageStore()
        self._synchronizers: list[Synchronizer] = []
        self._refresh_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ParkSafeClient:
        if self._raw_transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._raw_transport = RestTransport(self._config, self._http_session)
        if self._push is None and self._config.realtime_enabled and self._http_session is not None:
            self._realtime = RealtimeRuntime(self._config, self._http_session, logger=_logger)
            self._push = self._realtime
        self._transport = _ReauthTransport(self, self._raw_transport)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self._stop_synchronizers()
        await self._stop_realtime()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    @property
    def config(self) -> ParkSafeConfig:
        return self._config

    @property
    def session_store(self) -> SessionStore:
        return self._sessions

    @property
    def location_store(self) -> LocationStore:
        return self._location

    @property
    def message_store(self) -> MessageStore:
        return self._messages

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def user(self) -> AuthUser | None:
        return self._sessions.user

    @property
    def is_admin(self) -> bool:
        return self._sessions.is_admin

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> AuthUser:
        """Sign in with email and password.

        Raises
        ------
        ValueError
            When the credentials fail client-side validation.
        ParkSafeAuthenticationError
            When the backend rejects them.
        """
        session = await _auth_api.sign_in(self._require_raw_transport(), email, password)
        await self._activate(session)
        await self._ensure_profile(session.user)
        return session.user

    async def sign_up(
        self,
        email: str,
        password: str,
        *,
        is_admin: bool = False,
        full_name: str = "",
    ) -> _auth_api.SignUpResult:
        """Create an account; signs in when the backend returns a session right away."""
        result = await _auth_api.sign_up(
            self._require_raw_transport(),
            email,
            password,
            is_admin=is_admin,
            full_name=full_name,
        )
        if result.session is not None:
            await self._activate(result.session)
            await self._ensure_profile(result.user)
        return result

    async def restore_session(self) -> bool:
        """Reactivate the persisted session, refreshing its tokens first.

        A session that cannot be refreshed is discarded.
        """
        saved = self._sessions.load()
        if saved is None:
            return False
        try:
            session = await _auth_api.refresh_session(self._require_raw_transport(), saved.refresh_token)
        except ParkSafeError as exc:
            _logger.warning("Stored session could not be restored: %s", exc)
            self._sessions.clear()
            return False
        await self._activate(session)
        return True

    async def refresh_session(self) -> Session:
        """Exchange the refresh token for a new session."""
        current = self._sessions.session
        if current is None or not current.refresh_token:
            raise ParkSafeAuthenticationError("Not authenticated", code="no_session")
        async with self._refresh_lock:
            latest = self._sessions.session
            if latest is not None and latest.access_token != current.access_token:
                # Another caller refreshed while we waited.
                return latest
            session = await _auth_api.refresh_session(self._require_raw_transport(), current.refresh_token)
            await self._activate(session)
            return session

    async def sign_out(self) -> None:
        """End the session: stop every synchronizer and the push channel, clear state."""
        await self._stop_synchronizers()
        await self._stop_realtime()
        transport = self._require_raw_transport()
        if self._sessions.session is not None:
            try:
                await _auth_api.sign_out(transport)
            except ParkSafeError:
                _logger.debug("Remote sign-out failed", exc_info=True)
        transport.set_access_token(None)
        self._sessions.clear()
        self._location.reset()
        self._messages.clear()

    async def update_profile(
        self,
        *,
        full_name: str | None = None,
        avatar_url: str | None = None,
        bio: str | None = None,
        emergency_contact: str | None = None,
    ) -> AuthUser:
        """Update the signed-in user's profile metadata."""
        self._sessions.require_user()
        fields = {
            "full_name": full_name,
            "avatar_url": avatar_url,
            "bio": bio,
            "emergency_contact": emergency_contact,
        }
        metadata = {key: value for key, value in fields.items() if value is not None}
        user = await self._call_with_reauth(
            lambda: _auth_api.update_user_metadata(self._require_raw_transport(), metadata)
        )
        self._sessions.update_user(user)
        return user

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def send_panic_alert(self, message: str = "") -> Alert:
        """Raise a panic alert at the current fix."""
        return await send_panic_alert(self._require_transport(), self._sessions, self._location, message=message)

    async def broadcast(self, text: str) -> tuple[Message, Alert]:
        """Administrator emergency broadcast (message plus alert)."""
        return await broadcast_emergency(self._require_transport(), self._sessions, text)

    # ------------------------------------------------------------------
    # Synchronizer factories
    # ------------------------------------------------------------------

    def presence(
        self,
        surface: MapSurface | None = None,
        *,
        push_kinds: Iterable[ChangeKind] = (ChangeKind.UPDATE,),
        exclude_self: bool = False,
    ) -> PresenceSynchronizer:
        return self._track(
            PresenceSynchronizer(
                self._require_transport(),
                self._sessions,
                surface if surface is not None else InMemoryMapSurface(),
                push=self._push,
                poll_interval=self._config.presence_poll_interval,
                freshness=self._config.presence_freshness,
                push_kinds=push_kinds,
                exclude_self=exclude_self,
            )
        )

    def location_producer(self, provider: GeolocationProvider) -> LocationProducer:
        return self._track(
            LocationProducer(
                self._require_transport(),
                self._sessions,
                self._location,
                provider,
                push_interval=self._config.location_push_interval,
            )
        )

    def messages(self) -> MessageSynchronizer:
        return self._track(
            MessageSynchronizer(
                self._require_transport(),
                self._sessions,
                self._messages,
                push=self._push,
                fetch_limit=self._config.message_fetch_limit,
            )
        )

    def composer(
        self,
        messages: MessageSynchronizer,
        *,
        recipient_id: str | None = None,
        group_id: str | None = None,
    ) -> MessageComposer:
        return MessageComposer(messages, self._notifier, recipient_id=recipient_id, group_id=group_id)

    def alert_banner(self) -> AlertBanner:
        return self._track(
            AlertBanner(
                self._require_transport(),
                self._notifier,
                push=self._push,
                limit=self._config.alert_banner_limit,
                refresh_interval=self._config.alert_refresh_interval,
                toast_duration=self._config.toast_duration,
            )
        )

    def alert_dashboard(self, *, soft_delete: bool = True) -> AlertDashboard:
        return self._track(
            AlertDashboard(
                self._require_transport(),
                self._sessions,
                self._notifier,
                push=self._push,
                refresh_interval=self._config.alert_refresh_interval,
                soft_delete=soft_delete,
            )
        )

    def admin_dashboard(self, surface: MapSurface | None = None) -> Dashboard:
        """All active users (any profile change re-polls) and soft-deleting alerts."""
        return self._track(
            Dashboard(
                self.presence(surface, push_kinds=(ChangeKind.ANY,)),
                self.alert_dashboard(soft_delete=True),
            )
        )

    def monitor_dashboard(self, surface: MapSurface | None = None) -> Dashboard:
        """Everyone but the viewer (profile updates re-poll) and hard-deleting alerts."""
        return self._track(
            Dashboard(
                self.presence(surface, push_kinds=(ChangeKind.UPDATE,), exclude_self=True),
                self.alert_dashboard(soft_delete=False),
            )
        )

    def groups(self) -> GroupManager:
        return GroupManager(self._require_transport(), self._sessions)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_raw_transport(self) -> Transport:
        if self._raw_transport is None:
            raise ParkSafeError("Client not initialized. Use 'async with ParkSafeClient(...) as client:'")
        return self._raw_transport

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise ParkSafeError("Client not initialized. Use 'async with ParkSafeClient(...) as client:'")
        return self._transport

    def _track(self, synchronizer: S) -> S:
        """Keep *synchronizer* in the stop list only while it is running."""
        synchronizer.add_lifecycle_listener(self._on_synchronizer_lifecycle)
        return synchronizer

    def _on_synchronizer_lifecycle(self, synchronizer: Synchronizer, running: bool) -> None:
        if running:
            if synchronizer not in self._synchronizers:
                self._synchronizers.append(synchronizer)
        elif synchronizer in self._synchronizers:
            self._synchronizers.remove(synchronizer)

    async def _call_with_reauth(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run an API call, retrying once on session expiry."""
        try:
            return await fn()
        except ParkSafeSessionExpiredError:
            if self._sessions.session is None:
                raise
            _logger.debug("Access token expired; refreshing session")
            await self.refresh_session()
            return await fn()

    async def _activate(self, session: Session) -> None:
        self._require_raw_transport().set_access_token(session.access_token)
        self._sessions.set(session)
        await self._ensure_realtime_started(session)

    async def _ensure_profile(self, user: AuthUser) -> None:
        try:
            await ensure_profile(self._require_transport(), user)
        except ParkSafeError:
            _logger.warning("Could not ensure profile row for user_id=%s", user.id, exc_info=True)

    async def _ensure_realtime_started(self, session: Session) -> None:
        """Best-effort push-channel startup (failures must not break REST flow)."""
        runtime = self._realtime
        if runtime is None:
            return
        try:
            await runtime.set_access_token(session.access_token)
            runtime.start()
        except Exception:
            _logger.debug("Realtime startup failed", exc_info=True)

    async def _stop_realtime(self) -> None:
        runtime = self._realtime
        if runtime is not None and runtime.is_running:
            await runtime.stop()

    async def _stop_synchronizers(self) -> None:
        synchronizers, self._synchronizers = self._synchronizers, []
        for synchronizer in synchronizers:
            try:
                await synchronizer.stop()
            except Exception:
                _logger.debug("Stopping %s failed", type(synchronizer).__name__, exc_info=True)
