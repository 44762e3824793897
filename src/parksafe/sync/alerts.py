"""Alert synchronizers (banner and dashboard) and the two alert-raising writes."""

from __future__ import annotations

import logging
import platform
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from parksafe._api._common import utcnow
from parksafe._api.alerts import delete_alert, fetch_active_alerts, insert_alert, set_alert_status
from parksafe._api.messages import insert_message
from parksafe._constants import TABLE_ALERTS
from parksafe._realtime import PushChannel
from parksafe._transport import Transport
from parksafe.exceptions import (
    BroadcastError,
    LocationUnavailableError,
    ParkSafeError,
    ParkSafePermissionError,
)
from parksafe.models._base import isoformat
from parksafe.models.alert import Alert, AlertKind, AlertStatus
from parksafe.models.message import Message, MessageKind
from parksafe.models.ui import Toast, ToastLevel
from parksafe.state._observable import Observable
from parksafe.state.events import ChangeEvent, ChangeKind
from parksafe.state.location import LocationReader
from parksafe.state.pending import PendingMutations
from parksafe.state.reconcile import merge_alerts, without_id
from parksafe.state.session import SessionReader
from parksafe.sync._base import Synchronizer
from parksafe.sync.notify import Notifier

_logger = logging.getLogger(__name__)


def device_info() -> dict[str, str]:
    """Best-effort description of the sending device for panic alerts."""
    return {
        "platform": platform.system() or "unknown",
        "release": platform.release(),
        "python": platform.python_version(),
    }


async def send_panic_alert(
    transport: Transport,
    session: SessionReader,
    location: LocationReader,
    *,
    message: str = "",
    clock: Callable[[], datetime] = utcnow,
) -> Alert:
    """Raise an active ``panic`` alert at the current fix.

    Raises
    ------
    ParkSafeAuthenticationError
        When nobody is signed in.
    LocationUnavailableError
        When there is no current fix.
    """
    user = session.require_user()
    fix = location.fix
    if fix is None:
        raise LocationUnavailableError("Unable to determine your location", reason="no_fix")
    position = fix.to_row()
    metadata: dict[str, Any] = {
        "location": position,
        "timestamp": isoformat(clock()),
        "device_info": device_info(),
    }
    alert = await insert_alert(
        transport,
        user_id=user.id,
        kind=AlertKind.PANIC,
        message=message,
        metadata=metadata,
        location=position,
    )
    _logger.info("Panic alert %s raised by user_id=%s", alert.id, user.id)
    return alert


async def broadcast_emergency(transport: Transport, session: SessionReader, text: str) -> tuple[Message, Alert]:
    """Write an ``emergency`` message, then an active ``broadcast`` alert.

    The two writes are not atomic. When the second one fails the first is
    kept and :class:`BroadcastError` says which half landed.

    Raises
    ------
    ValueError
        When *text* is blank.
    ParkSafePermissionError
        When the signed-in user is not an administrator.
    BroadcastError
        When either write fails.
    """
    content = text.strip()
    if not content:
        raise ValueError("Please enter a message")
    user = session.require_user()
    if not user.is_admin:
        raise ParkSafePermissionError("Only administrators can broadcast", code="not_admin")

    try:
        message = await insert_message(transport, sender_id=user.id, content=content, kind=MessageKind.EMERGENCY)
    except ParkSafeError as exc:
        raise BroadcastError(
            f"Broadcast message failed: {exc}",
            message_written=False,
            alert_written=False,
        ) from exc
    try:
        alert = await insert_alert(transport, user_id=user.id, kind=AlertKind.BROADCAST, message=content)
    except ParkSafeError as exc:
        raise BroadcastError(
            f"Broadcast alert failed after message {message.id} was written: {exc}",
            message_written=True,
            alert_written=False,
        ) from exc
    _logger.info("Emergency broadcast sent message=%s alert=%s", message.id, alert.id)
    return message, alert


class AlertBanner(Synchronizer):
    """The most recent active alerts, refreshed by insert pushes and a periodic fetch.

    While paused there is no subscription, no timer and no list mutation;
    a fetch already in flight when :meth:`pause` is called is discarded.
    :meth:`resume` reconciles with a full fetch and does not replay missed
    events.
    """

    def __init__(
        self,
        transport: Transport,
        notifier: Notifier,
        *,
        push: PushChannel | None = None,
        limit: int = 5,
        refresh_interval: float = 10.0,
        toast_duration: float = 10.0,
    ) -> None:
        super().__init__(push=push, logger=_logger)
        self._transport = transport
        self._notifier = notifier
        self._limit = limit
        self._refresh_interval = refresh_interval
        self._toast_duration = toast_duration
        self._alerts: list[Alert] = []
        self._generation = 0
        self._issued = 0
        self._applied = 0
        # Pushed alerts not yet covered by a fetch that started after them.
        self._push_seq = 0
        self._pushed: list[tuple[int, Alert]] = []
        self.paused = False
        self.visible = True
        self.loading = False
        self.error: str | None = None
        self._changes: Observable[list[Alert]] = Observable()

    @property
    def alerts(self) -> list[Alert]:
        return list(self._alerts)

    @property
    def shown(self) -> bool:
        """Whether the banner renders at all."""
        return self.visible and bool(self._alerts)

    def subscribe(self, listener: Callable[[list[Alert]], None]) -> Callable[[], None]:
        return self._changes.subscribe(listener)

    async def _on_start(self) -> None:
        if not self.paused:
            await self._activate()

    async def _activate(self) -> None:
        self.loading = True
        await self.refresh()
        await self._subscribe(TABLE_ALERTS, (ChangeKind.INSERT,), self._on_insert)
        self._every(self._refresh_interval, self.refresh, name="alert-banner-refresh")

    async def pause(self) -> None:
        if self.paused:
            return
        self.paused = True
        self._generation += 1
        self._pushed = []
        await self._teardown()

    async def resume(self) -> None:
        if not self.paused:
            return
        self.paused = False
        self._generation += 1
        if self.running:
            await self._activate()

    def dismiss(self) -> None:
        self.visible = False

    def _set(self, alerts: list[Alert]) -> None:
        self._alerts = alerts
        self._changes.notify(list(alerts))

    async def refresh(self) -> bool:
        """Replace the list with the authoritative active set.

        Alerts pushed while the fetch was in flight are merged back in, and a
        fetch overtaken by a later one is dropped.
        """
        if self.paused:
            return False
        generation = self._generation
        self._issued += 1
        ticket = self._issued
        started = self._push_seq
        try:
            fetched = await fetch_active_alerts(self._transport, limit=self._limit)
        except (ParkSafeError, ValidationError) as exc:
            if generation == self._generation:
                self.error = "Failed to load emergency alerts"
                self.loading = False
            self._logger.warning("Alert fetch failed: %s", exc)
            return False
        if self.paused or generation != self._generation:
            self._logger.debug("Discarding alert fetch completed while paused")
            return False
        if ticket < self._applied:
            return False
        self._applied = ticket
        self._pushed = [(seq, alert) for seq, alert in self._pushed if seq > started]
        self.error = None
        self.loading = False
        self._set(merge_alerts(fetched, [alert for _, alert in self._pushed], limit=self._limit))
        return True

    async def _on_insert(self, event: ChangeEvent) -> None:
        if self.paused:
            return
        alert = Alert.model_validate(event.record)
        self._push_seq += 1
        self._pushed.append((self._push_seq, alert))
        is_new = all(existing.id != alert.id for existing in self._alerts)
        self._set(merge_alerts(self._alerts, [alert], limit=self._limit))
        if is_new and alert.is_active:
            self._notifier.notify(
                Toast(
                    level=ToastLevel.ALERT,
                    title="Emergency Alert",
                    body=alert.display_text,
                    duration=self._toast_duration,
                )
            )


class AlertDashboard(Synchronizer):
    """Unbounded list of active alerts for the dashboards.

    Refreshed by a periodic poll and by any change on ``emergency_alerts``.
    With ``soft_delete`` (the admin variant) a delete first marks the alert
    inactive and then removes the row; otherwise it only removes the row.
    """

    def __init__(
        self,
        transport: Transport,
        session: SessionReader,
        notifier: Notifier,
        *,
        push: PushChannel | None = None,
        refresh_interval: float = 10.0,
        soft_delete: bool = True,
    ) -> None:
        super().__init__(push=push, logger=_logger)
        self._transport = transport
        self._session = session
        self._notifier = notifier
        self._refresh_interval = refresh_interval
        self._soft_delete = soft_delete
        self._alerts: list[Alert] = []
        self._pending = PendingMutations()
        # Deleted id -> last fetch ticket issued before the delete landed.
        self._deleted: dict[str, int] = {}
        self._issued = 0
        self._applied = 0
        self.error: str | None = None
        self.draft = ""
        self.sending = False
        self._changes: Observable[list[Alert]] = Observable()

    @property
    def alerts(self) -> list[Alert]:
        return list(self._alerts)

    def is_deleting(self, alert_id: str) -> bool:
        return self._pending.is_pending(alert_id)

    def subscribe(self, listener: Callable[[list[Alert]], None]) -> Callable[[], None]:
        return self._changes.subscribe(listener)

    async def _on_start(self) -> None:
        await self.refresh()
        await self._subscribe(TABLE_ALERTS, (ChangeKind.ANY,), self._on_change)
        self._every(self._refresh_interval, self.refresh, name="alert-dashboard-refresh")

    async def _on_change(self, event: ChangeEvent) -> None:
        await self.refresh()

    def _set(self, alerts: list[Alert]) -> None:
        self._alerts = alerts
        self._changes.notify(list(alerts))

    async def refresh(self) -> bool:
        self._issued += 1
        ticket = self._issued
        try:
            fetched = await fetch_active_alerts(self._transport)
        except (ParkSafeError, ValidationError) as exc:
            self.error = "Failed to fetch alerts"
            self._logger.warning("Alert fetch failed: %s", exc)
            return False
        if ticket < self._applied:
            return False
        self._applied = ticket
        self.error = None
        # A fetch that started before a delete completed must not bring the row back.
        stale = {alert_id for alert_id, issued in self._deleted.items() if ticket <= issued}
        self._deleted = {alert_id: issued for alert_id, issued in self._deleted.items() if issued >= ticket}
        alerts = [alert for alert in merge_alerts([], fetched, limit=None) if alert.id not in stale]
        self._set(alerts)
        return True

    async def broadcast(self, text: str | None = None) -> bool:
        """Send the draft (or *text*) as an emergency broadcast.

        Returns ``True`` on success; failures are reported with an error
        toast and leave the draft in place.
        """
        content = self.draft if text is None else text
        if not content.strip():
            self._notifier.notify(Toast(level=ToastLevel.ERROR, title="Please enter a message"))
            return False
        self.sending = True
        try:
            await broadcast_emergency(self._transport, self._session, content)
        except (ParkSafeError, ValueError) as exc:
            self._logger.warning("Broadcast failed: %s", exc)
            self._notifier.notify(Toast(level=ToastLevel.ERROR, title="Failed to send broadcast", body=str(exc)))
            return False
        finally:
            self.sending = False
        self.draft = ""
        self._notifier.notify(Toast(level=ToastLevel.SUCCESS, title="Emergency broadcast sent successfully"))
        await self.refresh()
        return True

    async def delete(self, alert_id: str) -> bool:
        """Delete an alert; the local list changes only once the server agreed."""

        async def _request() -> None:
            if self._soft_delete:
                await set_alert_status(self._transport, alert_id, AlertStatus.INACTIVE)
            await delete_alert(self._transport, alert_id)

        def _apply(_: None) -> None:
            self._deleted[alert_id] = self._issued
            self._set(without_id(self._alerts, alert_id))

        try:
            await self._pending.commit(alert_id, _request, _apply)
        except ParkSafeError as exc:
            self._logger.warning("Alert delete failed id=%s: %s", alert_id, exc)
            self._notifier.notify(Toast(level=ToastLevel.ERROR, title="Failed to delete alert", body=str(exc)))
            return False
        self._notifier.notify(Toast(level=ToastLevel.SUCCESS, title="Alert deleted successfully"))
        return True


def alert_location(alert: Alert) -> Mapping[str, Any] | None:
    """Where an alert was raised, from its metadata or raw ``location`` column."""
    if alert.metadata.location:
        return alert.metadata.location
    raw_location = alert.raw.get("location")
    return raw_location if isinstance(raw_location, Mapping) else None
