"""Client configuration for parksafe."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from parksafe.exceptions import ParkSafeConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class ParkSafeConfig:
    """Client configuration.

    Parameters
    ----------
    url : str
        Backend project URL (e.g. ``"https://abc.supabase.co"``).
    anon_key : str
        Public API key sent as ``apikey`` with every request.
    realtime_enabled : bool
        Open the push channel. When disabled, synchronizers rely on
        polling alone.
    realtime_heartbeat_interval : float
        Seconds between push channel heartbeats.
    realtime_reconnect_delay : float
        Fixed delay in seconds before reconnecting a dropped push channel.
    request_timeout : float
        Total timeout in seconds for a single HTTP request.
    presence_poll_interval : float
        Seconds between active-user snapshot polls.
    presence_freshness : float
        A fix whose ``last_active`` is older than this many seconds is
        not part of the active set.
    location_push_interval : float
        Seconds between fallback re-pushes of the device fix.
    message_fetch_limit : int
        Number of messages fetched on activation.
    alert_banner_limit : int
        Maximum number of alerts shown by the banner.
    alert_refresh_interval : float
        Seconds between full alert fetches (banner and dashboard).
    toast_duration : float
        Display time in seconds of alert toasts.
    session_path : Path or None
        File used to persist the session between runs. ``None`` keeps the
        session in memory only.
    """

    url: str
    anon_key: str
    realtime_enabled: bool = True
    realtime_heartbeat_interval: float = 30.0
    realtime_reconnect_delay: float = 5.0
    request_timeout: float = 10.0
    presence_poll_interval: float = 10.0
    presence_freshness: float = 3600.0
    location_push_interval: float = 30.0
    message_fetch_limit: int = 50
    alert_banner_limit: int = 5
    alert_refresh_interval: float = 10.0
    toast_duration: float = 10.0
    session_path: Path | None = None

    def __post_init__(self) -> None:
        if not self.url.startswith(("http://", "https://")):
            raise ParkSafeConfigError(f"url must be an http(s) URL, got {self.url!r}")
        if not self.anon_key:
            raise ParkSafeConfigError("anon_key is required")
        object.__setattr__(self, "url", self.url.rstrip("/"))

    @property
    def realtime_url(self) -> str:
        """Websocket URL of the push channel."""
        if self.url.startswith("https://"):
            return "wss://" + self.url[len("https://") :]
        return "ws://" + self.url[len("http://") :]

    @classmethod
    def from_env(cls, **overrides: Any) -> ParkSafeConfig:
        """Create configuration from environment variables.

        Reads ``PARKSAFE_URL``, ``PARKSAFE_ANON_KEY`` and optional
        ``PARKSAFE_*`` tuning variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        ParkSafeConfig
            Populated configuration.
        """
        env = os.environ

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in (("PARKSAFE_URL", "url"), ("PARKSAFE_ANON_KEY", "anon_key")):
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "PARKSAFE_REQUEST_TIMEOUT": "request_timeout",
            "PARKSAFE_PRESENCE_POLL_INTERVAL": "presence_poll_interval",
            "PARKSAFE_PRESENCE_FRESHNESS": "presence_freshness",
            "PARKSAFE_LOCATION_PUSH_INTERVAL": "location_push_interval",
            "PARKSAFE_ALERT_REFRESH_INTERVAL": "alert_refresh_interval",
            "PARKSAFE_REALTIME_HEARTBEAT": "realtime_heartbeat_interval",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)

        limit_env = env.get("PARKSAFE_MESSAGE_FETCH_LIMIT")
        if limit_env is not None and "message_fetch_limit" not in overrides:
            config_kwargs["message_fetch_limit"] = int(limit_env)

        if "realtime_enabled" not in overrides:
            config_kwargs["realtime_enabled"] = _env_bool(env.get("PARKSAFE_REALTIME_ENABLED"), True)

        session_env = env.get("PARKSAFE_SESSION_PATH")
        if session_env and "session_path" not in overrides:
            config_kwargs["session_path"] = Path(session_env).expanduser()

        config_kwargs.update(overrides)

        missing = [name for name in ("url", "anon_key") if name not in config_kwargs]
        if missing:
            raise ParkSafeConfigError(f"Missing configuration: {', '.join(missing)}")

        return cls(**config_kwargs)
