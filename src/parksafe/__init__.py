"""parksafe - Async Python client for the ParkSafe location sharing and emergency alert backend."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("parksafe")
except PackageNotFoundError:
    __version__ = "0+local"
from parksafe.client import ParkSafeClient
from parksafe.config import ParkSafeConfig
from parksafe.exceptions import (
    BroadcastError,
    LocationUnavailableError,
    MembershipProtectedError,
    ParkSafeApiError,
    ParkSafeAuthenticationError,
    ParkSafeConfigError,
    ParkSafeDuplicateAccountError,
    ParkSafeError,
    ParkSafeNotFoundError,
    ParkSafePermissionError,
    ParkSafeSessionExpiredError,
    ParkSafeTransportError,
)
from parksafe.models import (
    ActiveUser,
    Alert,
    AlertKind,
    AlertStatus,
    AuthUser,
    Group,
    GroupMember,
    LocationFix,
    MapView,
    MemberRole,
    Message,
    MessageKind,
    Profile,
    Toast,
    ToastLevel,
    UserSummary,
)
from parksafe.session import Session

__all__ = [
    "__version__",
    "ActiveUser",
    "Alert",
    "AlertKind",
    "AlertStatus",
    "AuthUser",
    "BroadcastError",
    "Group",
    "GroupMember",
    "LocationFix",
    "LocationUnavailableError",
    "MapView",
    "MemberRole",
    "MembershipProtectedError",
    "Message",
    "MessageKind",
    "ParkSafeApiError",
    "ParkSafeAuthenticationError",
    "ParkSafeClient",
    "ParkSafeConfig",
    "ParkSafeConfigError",
    "ParkSafeDuplicateAccountError",
    "ParkSafeError",
    "ParkSafeNotFoundError",
    "ParkSafePermissionError",
    "ParkSafeSessionExpiredError",
    "ParkSafeTransportError",
    "Profile",
    "Session",
    "Toast",
    "ToastLevel",
    "UserSummary",
]
