"""State layer.

Stores hold client state; reconcilers are the only code allowed to merge
incoming poll snapshots and push deltas into it.
"""

from parksafe.state.events import ChangeEvent, ChangeKind
from parksafe.state.location import LocationReader, LocationStatus, LocationStore
from parksafe.state.messages import MessageStore
from parksafe.state.pending import PendingMutations
from parksafe.state.session import SessionReader, SessionStore

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "LocationReader",
    "LocationStatus",
    "LocationStore",
    "MessageStore",
    "PendingMutations",
    "SessionReader",
    "SessionStore",
]
