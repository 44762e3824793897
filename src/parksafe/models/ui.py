"""View-boundary models: toasts and map view state."""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict

from parksafe._constants import DEFAULT_MAP_CENTER, DEFAULT_MAP_ZOOM, FOCUSED_MAP_ZOOM
from parksafe.models.location import LocationFix


class ToastLevel(enum.StrEnum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"
    ALERT = "alert"


class Toast(BaseModel):
    """A transient notification handed to the UI."""

    model_config = ConfigDict(frozen=True)

    level: ToastLevel
    title: str
    body: str = ""
    duration: float = 4.0
    """Seconds before the toast dismisses itself."""


class MapView(BaseModel):
    """Center and zoom handed to the map rendering collaborator."""

    model_config = ConfigDict(frozen=True)

    center: tuple[float, float] = DEFAULT_MAP_CENTER
    zoom: int = DEFAULT_MAP_ZOOM

    @classmethod
    def for_fix(cls, fix: LocationFix | None) -> MapView:
        """Default overview until the first fix, then focus on it."""
        if fix is None:
            return cls()
        return cls(center=(fix.lat, fix.lng), zoom=FOCUSED_MAP_ZOOM)
