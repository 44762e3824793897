"""Toast delivery at the view boundary."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol

from parksafe.models.ui import Toast, ToastLevel

_logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, toast: Toast) -> None: ...


class ToastQueue:
    """Default notifier: keeps toasts until their duration elapses.

    Every toast is also logged, at warning level for errors and alerts.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: list[tuple[float, Toast]] = []

    def notify(self, toast: Toast) -> None:
        level = logging.WARNING if toast.level in (ToastLevel.ERROR, ToastLevel.ALERT) else logging.INFO
        _logger.log(level, "%s: %s", toast.title, toast.body)
        self._entries.append((self._clock() + toast.duration, toast))

    @property
    def active(self) -> list[Toast]:
        """Toasts not yet dismissed, oldest first."""
        now = self._clock()
        self._entries = [(expires, toast) for expires, toast in self._entries if expires > now]
        return [toast for _, toast in self._entries]

    def dismiss_all(self) -> None:
        self._entries.clear()
