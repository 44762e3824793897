"""Session state for authenticated API calls."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from parksafe.models.user import AuthUser

#: Refresh this many seconds before the advertised expiry.
EXPIRY_MARGIN_SECONDS: float = 30.0


class Session(BaseModel):
    """Tokens and identity returned by a successful sign-in.

    Parameters
    ----------
    access_token : str
        Bearer token sent with every REST and realtime request.
    refresh_token : str
        Token used to obtain a new access token.
    expires_at : datetime or None
        Absolute expiry (UTC). Derived from ``expires_in`` when the auth
        response only carries a relative lifetime.
    user : AuthUser
        The authenticated identity.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    access_token: str
    refresh_token: str = ""
    token_type: str = "bearer"
    expires_at: datetime | None = None
    user: AuthUser

    @model_validator(mode="before")
    @classmethod
    def _derive_expiry(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        expires_at = merged.get("expires_at")
        if isinstance(expires_at, (int, float)):
            merged["expires_at"] = datetime.fromtimestamp(expires_at, tz=UTC)
        elif expires_at is None and isinstance(merged.get("expires_in"), (int, float)):
            merged["expires_at"] = datetime.now(UTC) + timedelta(seconds=merged["expires_in"])
        return merged

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.user.is_admin

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the access token is past (or about to pass) its expiry."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(UTC)
        return now >= self.expires_at - timedelta(seconds=EXPIRY_MARGIN_SECONDS)

    def with_user(self, user: AuthUser) -> Session:
        """Copy with refreshed identity (after a profile edit)."""
        return self.model_copy(update={"user": user})
