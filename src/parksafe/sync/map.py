"""Map surface contract and an in-memory implementation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from parksafe.models.user import ActiveUser


def popup_text(entry: ActiveUser) -> str:
    return f"{entry.display_name}\nLast active: {entry.last_active:%Y-%m-%d %H:%M:%S} UTC"


class MarkerHandle(Protocol):
    def move(self, lat: float, lng: float, popup: str) -> None: ...


class MapSurface(Protocol):
    """The map rendering collaborator.

    Markers are created once per user and then moved in place.
    """

    def create_marker(self, user_id: str, lat: float, lng: float, popup: str) -> MarkerHandle: ...

    def remove_marker(self, handle: MarkerHandle) -> None: ...


@dataclass(eq=False)
class Marker:
    """Mutable marker handle; identity is stable for as long as the user is present."""

    user_id: str
    lat: float
    lng: float
    popup: str

    def move(self, lat: float, lng: float, popup: str) -> None:
        self.lat = lat
        self.lng = lng
        self.popup = popup


class InMemoryMapSurface:
    """Map surface that only tracks marker handles (headless use and tests)."""

    def __init__(self) -> None:
        self._markers: dict[str, Marker] = {}
        self.created = 0
        self.removed = 0

    @property
    def markers(self) -> dict[str, Marker]:
        return dict(self._markers)

    def create_marker(self, user_id: str, lat: float, lng: float, popup: str) -> Marker:
        marker = Marker(user_id=user_id, lat=lat, lng=lng, popup=popup)
        self._markers[user_id] = marker
        self.created += 1
        return marker

    def remove_marker(self, handle: MarkerHandle) -> None:
        if isinstance(handle, Marker) and self._markers.get(handle.user_id) is handle:
            del self._markers[handle.user_id]
            self.removed += 1
