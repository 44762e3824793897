"""Location fix producer: geolocation provider to Location Store to backend."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from typing import Protocol

from parksafe._api._common import utcnow
from parksafe._api.profiles import update_location
from parksafe._transport import Transport
from parksafe.exceptions import LocationUnavailableError, ParkSafeError
from parksafe.models.location import LocationFix
from parksafe.state.location import LocationStore
from parksafe.state.session import SessionReader
from parksafe.sync._base import Synchronizer

_logger = logging.getLogger(__name__)


class GeolocationProvider(Protocol):
    """Device geolocation capability.

    Both methods raise :class:`LocationUnavailableError` when the capability
    is denied or unsupported.
    """

    async def current_position(self, *, high_accuracy: bool = True) -> LocationFix: ...

    def watch_position(self, *, high_accuracy: bool = True) -> AsyncIterator[LocationFix]: ...


class LocationProducer(Synchronizer):
    """Produces this device's fixes while a non-admin user is signed in.

    One fix is taken immediately, then a watch stream and a fallback loop
    (every *push_interval* seconds) keep the stored fix and
    ``profiles.location`` current. :class:`LocationUnavailableError` from the
    provider is terminal: the store reports it and every loop stops.
    """

    def __init__(
        self,
        transport: Transport,
        session: SessionReader,
        store: LocationStore,
        provider: GeolocationProvider,
        *,
        push_interval: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(logger=_logger)
        self._transport = transport
        self._session = session
        self._store = store
        self._provider = provider
        self._push_interval = push_interval
        self._clock = clock

    async def _on_start(self) -> None:
        user = self._session.require_user()
        if user.is_admin:
            self._logger.debug("Location sharing skipped for admin user_id=%s", user.id)
            self._store.set_exempt()
            return
        if not await self.produce_once():
            return
        self._spawn(self._watch(), name="location-watch")
        self._every(self._push_interval, self.produce_once, name="location-fallback")

    async def produce_once(self) -> bool:
        """Take one fix from the provider and publish it."""
        try:
            fix = await self._provider.current_position(high_accuracy=True)
        except LocationUnavailableError as exc:
            await self._fail(exc)
            return False
        await self.publish(fix)
        return True

    async def _watch(self) -> None:
        try:
            async for fix in self._provider.watch_position(high_accuracy=True):
                await self.publish(fix)
        except LocationUnavailableError as exc:
            await self._fail(exc)

    async def publish(self, fix: LocationFix) -> None:
        """Store *fix* locally, then upsert it for the signed-in user.

        Upsert failures are logged only; the next fix retries.
        """
        self._store.update(fix)
        user = self._session.user
        if user is None:
            return
        try:
            await update_location(self._transport, user.id, fix, now=self._clock())
        except ParkSafeError as exc:
            self._logger.warning("Location upsert failed for user_id=%s: %s", user.id, exc)

    async def _fail(self, exc: LocationUnavailableError) -> None:
        self._logger.warning("Geolocation unavailable (%s): %s", exc.reason, exc)
        self._store.set_unavailable(str(exc))
        await self.stop()
