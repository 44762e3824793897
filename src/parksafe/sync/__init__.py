"""Synchronizers: wire poll timers and push subscriptions to the reconcilers."""

from parksafe.sync.alerts import AlertBanner, AlertDashboard, broadcast_emergency, send_panic_alert
from parksafe.sync.dashboard import Dashboard
from parksafe.sync.groups import GroupManager
from parksafe.sync.location import GeolocationProvider, LocationProducer
from parksafe.sync.map import InMemoryMapSurface, MapSurface, Marker, MarkerHandle
from parksafe.sync.messages import MessageComposer, MessageSynchronizer
from parksafe.sync.notify import Notifier, ToastQueue
from parksafe.sync.presence import PresenceSynchronizer

__all__ = [
    "AlertBanner",
    "AlertDashboard",
    "Dashboard",
    "GeolocationProvider",
    "GroupManager",
    "InMemoryMapSurface",
    "LocationProducer",
    "MapSurface",
    "Marker",
    "MarkerHandle",
    "MessageComposer",
    "MessageSynchronizer",
    "Notifier",
    "PresenceSynchronizer",
    "ToastQueue",
    "broadcast_emergency",
    "send_panic_alert",
]
