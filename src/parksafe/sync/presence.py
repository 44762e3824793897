"""Presence synchronizer: active-user markers driven by poll and push."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from pydantic import ValidationError

from parksafe._api._common import utcnow
from parksafe._api.profiles import fetch_active_profiles
from parksafe._constants import TABLE_PROFILES
from parksafe._realtime import PushChannel
from parksafe._transport import Transport
from parksafe.exceptions import ParkSafeError
from parksafe.models.user import ActiveUser
from parksafe.state._observable import Observable
from parksafe.state.events import ChangeEvent, ChangeKind
from parksafe.state.reconcile import PresencePlan, plan_presence, presence_snapshot
from parksafe.state.session import SessionReader
from parksafe.sync._base import Synchronizer
from parksafe.sync.map import MapSurface, MarkerHandle, popup_text

_logger = logging.getLogger(__name__)


class PresenceSynchronizer(Synchronizer):
    """Keeps one marker per user whose ``last_active`` is inside the freshness window.

    Two independent triggers request a full snapshot: a periodic poll and a
    push subscription on ``profiles``. Both go through :meth:`refresh`, and a
    snapshot older than the last one applied is dropped, so overlapping
    triggers converge on the newest server state.

    Parameters
    ----------
    transport : Transport
        REST transport.
    session : SessionReader
        Source of the viewer's identity (for ``exclude_self``).
    surface : MapSurface
        Map collaborator owning the marker handles.
    push : PushChannel or None
        Push channel; ``None`` means poll only.
    poll_interval : float
        Seconds between polls.
    freshness : float
        Freshness window in seconds (inclusive).
    push_kinds : iterable of ChangeKind
        Change kinds on ``profiles`` that trigger a re-poll.
    exclude_self : bool
        Leave the viewer out of the snapshot.
    clock : callable
        Returns the current UTC time.
    """

    def __init__(
        self,
        transport: Transport,
        session: SessionReader,
        surface: MapSurface,
        *,
        push: PushChannel | None = None,
        poll_interval: float = 10.0,
        freshness: float = 3600.0,
        push_kinds: Iterable[ChangeKind] = (ChangeKind.UPDATE,),
        exclude_self: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(push=push, logger=_logger)
        self._transport = transport
        self._session = session
        self._surface = surface
        self._poll_interval = poll_interval
        self._window = timedelta(seconds=freshness)
        self._push_kinds = tuple(push_kinds)
        self._exclude_self = exclude_self
        self._clock = clock
        self._markers: dict[str, MarkerHandle] = {}
        self._active: dict[str, ActiveUser] = {}
        self._issued = 0
        self._applied = 0
        self.last_error: str | None = None
        self._changes: Observable[dict[str, ActiveUser]] = Observable()

    @property
    def markers(self) -> dict[str, MarkerHandle]:
        return dict(self._markers)

    @property
    def active_users(self) -> list[ActiveUser]:
        """Current snapshot, most recently active first."""
        return sorted(self._active.values(), key=lambda entry: entry.last_active, reverse=True)

    def subscribe(self, listener: Callable[[dict[str, ActiveUser]], None]) -> Callable[[], None]:
        return self._changes.subscribe(listener)

    async def _on_start(self) -> None:
        await self.refresh()
        await self._subscribe(TABLE_PROFILES, self._push_kinds, self._on_change)
        self._every(self._poll_interval, self.refresh, name="presence-poll")

    async def _on_change(self, event: ChangeEvent) -> None:
        self._logger.debug("Presence push kind=%s id=%s", event.kind, event.row_id)
        await self.refresh()

    async def refresh(self) -> bool:
        """Fetch a full snapshot and reconcile markers to it.

        Returns ``False`` when the fetch failed (markers untouched) or its
        result was superseded by a newer snapshot.
        """
        self._issued += 1
        ticket = self._issued
        now = self._clock()
        exclude_id = None
        if self._exclude_self and self._session.user is not None:
            exclude_id = self._session.user.id

        try:
            profiles = await fetch_active_profiles(self._transport, since=now - self._window, exclude_id=exclude_id)
        except (ParkSafeError, ValidationError) as exc:
            self.last_error = "Failed to fetch user locations"
            self._logger.warning("Presence fetch failed: %s", exc)
            self._logger.debug("Presence fetch failure detail", exc_info=True)
            return False

        if ticket < self._applied:
            self._logger.debug("Dropping superseded presence snapshot ticket=%s applied=%s", ticket, self._applied)
            return False
        self._applied = ticket
        self.last_error = None
        self.apply_snapshot(presence_snapshot(profiles, now=now, window=self._window))
        return True

    def apply_snapshot(self, snapshot: dict[str, ActiveUser]) -> PresencePlan:
        plan = plan_presence(self._markers, snapshot)
        for user_id in plan.remove:
            self._surface.remove_marker(self._markers.pop(user_id))
        for entry in plan.create:
            self._markers[entry.id] = self._surface.create_marker(entry.id, entry.lat, entry.lng, popup_text(entry))
        for entry in plan.update:
            self._markers[entry.id].move(entry.lat, entry.lng, popup_text(entry))
        self._active = dict(snapshot)
        if not plan.is_empty:
            self._logger.debug(
                "Presence applied remove=%d create=%d update=%d",
                len(plan.remove),
                len(plan.create),
                len(plan.update),
            )
        self._changes.notify(dict(self._active))
        return plan

    async def stop(self) -> None:
        await super().stop()
        for handle in self._markers.values():
            self._surface.remove_marker(handle)
        self._markers.clear()
        self._active.clear()
