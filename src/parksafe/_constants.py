"""Internal constants shared across the library."""

USER_AGENT = "parksafe-python"

REST_PREFIX = "/rest/v1"
AUTH_PREFIX = "/auth/v1"
REALTIME_PATH = "/realtime/v1/websocket"
REALTIME_VSN = "1.0.0"
REALTIME_SCHEMA = "public"

TABLE_PROFILES = "profiles"
TABLE_MESSAGES = "messages"
TABLE_ALERTS = "emergency_alerts"
TABLE_GROUPS = "groups"
TABLE_GROUP_MEMBERS = "group_members"

#: PostgREST / GoTrue error codes that mean "token no longer valid".
SESSION_EXPIRED_CODES: frozenset[str] = frozenset({"PGRST301", "PGRST303", "bad_jwt", "session_not_found"})

#: Map shown before the first fix arrives (Great Smoky Mountains).
DEFAULT_MAP_CENTER: tuple[float, float] = (35.6532, -83.5070)
DEFAULT_MAP_ZOOM = 11
FOCUSED_MAP_ZOOM = 15

AVATAR_URL_TEMPLATE = "https://api.dicebear.com/7.x/initials/svg?seed={seed}"

MIN_PASSWORD_LENGTH = 6
