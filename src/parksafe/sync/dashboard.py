"""Dashboards: a presence map and the alert list started and stopped together."""

from __future__ import annotations

import logging

from parksafe.sync._base import Synchronizer
from parksafe.sync.alerts import AlertDashboard
from parksafe.sync.presence import PresenceSynchronizer

_logger = logging.getLogger(__name__)


class Dashboard(Synchronizer):
    """Administrator (or monitor) view over active users and active alerts."""

    def __init__(self, presence: PresenceSynchronizer, alerts: AlertDashboard) -> None:
        super().__init__(logger=_logger)
        self.presence = presence
        self.alerts = alerts

    @property
    def active_user_count(self) -> int:
        return len(self.presence.active_users)

    async def _on_start(self) -> None:
        await self.presence.start()
        await self.alerts.start()

    async def stop(self) -> None:
        await super().stop()
        await self.alerts.stop()
        await self.presence.stop()

    async def refresh(self) -> bool:
        """Fetch both snapshots now; ``True`` only when both succeeded."""
        presence_ok = await self.presence.refresh()
        alerts_ok = await self.alerts.refresh()
        return presence_ok and alerts_ok
