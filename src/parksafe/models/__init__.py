"""Typed models for backend rows and view-boundary values."""

from parksafe.models._base import ParkSafeBaseModel, ParkSafeEnum, parse_timestamp
from parksafe.models.alert import Alert, AlertKind, AlertMetadata, AlertSeverity, AlertStatus
from parksafe.models.group import Group, GroupMember, MemberRole
from parksafe.models.location import LocationFix
from parksafe.models.message import Message, MessageKind
from parksafe.models.ui import MapView, Toast, ToastLevel
from parksafe.models.user import (
    ActiveUser,
    AuthUser,
    Profile,
    ProfileLocation,
    ProfileSnapshot,
    UserMetadata,
    UserSummary,
)

__all__ = [
    "ActiveUser",
    "Alert",
    "AlertKind",
    "AlertMetadata",
    "AlertSeverity",
    "AlertStatus",
    "AuthUser",
    "Group",
    "GroupMember",
    "LocationFix",
    "MapView",
    "MemberRole",
    "Message",
    "MessageKind",
    "ParkSafeBaseModel",
    "ParkSafeEnum",
    "Profile",
    "ProfileLocation",
    "ProfileSnapshot",
    "Toast",
    "ToastLevel",
    "UserMetadata",
    "UserSummary",
    "parse_timestamp",
]
