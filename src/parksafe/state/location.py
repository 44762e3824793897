"""Location store: the device's last-known fix and capability status."""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Protocol

from parksafe.models.location import LocationFix
from parksafe.models.ui import MapView
from parksafe.state._observable import Observable


class LocationStatus(StrEnum):
    LOADING = "loading"
    """No fix yet."""
    READY = "ready"
    UNAVAILABLE = "unavailable"
    """Capability denied or unsupported; terminal."""
    EXEMPT = "exempt"
    """Administrators do not report their location."""


class LocationReader(Protocol):
    @property
    def fix(self) -> LocationFix | None: ...

    @property
    def status(self) -> LocationStatus: ...

    @property
    def error(self) -> str | None: ...


class LocationStore:
    """Holds exactly one current fix for this device."""

    def __init__(self) -> None:
        self._fix: LocationFix | None = None
        self._status = LocationStatus.LOADING
        self._error: str | None = None
        self._changes: Observable[LocationStore] = Observable()

    @property
    def fix(self) -> LocationFix | None:
        return self._fix

    @property
    def status(self) -> LocationStatus:
        return self._status

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def map_view(self) -> MapView:
        return MapView.for_fix(self._fix)

    def subscribe(self, listener: Callable[[LocationStore], None]) -> Callable[[], None]:
        return self._changes.subscribe(listener)

    def update(self, fix: LocationFix) -> None:
        if self._status == LocationStatus.UNAVAILABLE:
            return
        self._fix = fix
        self._status = LocationStatus.READY
        self._error = None
        self._changes.notify(self)

    def set_unavailable(self, message: str) -> None:
        self._status = LocationStatus.UNAVAILABLE
        self._error = message
        self._changes.notify(self)

    def set_exempt(self) -> None:
        self._status = LocationStatus.EXEMPT
        self._error = None
        self._changes.notify(self)

    def reset(self) -> None:
        self._fix = None
        self._status = LocationStatus.LOADING
        self._error = None
        self._changes.notify(self)
