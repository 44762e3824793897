"""User, profile and search result models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from parksafe.models._base import ParkSafeBaseModel, Timestamp


class UserMetadata(ParkSafeBaseModel):
    """Free-form profile fields stored with the auth user."""

    full_name: str = ""
    avatar_url: str = ""
    bio: str = ""
    emergency_contact: str = ""
    is_admin: bool = False

    @field_validator("is_admin", mode="before")
    @classmethod
    def _coerce_admin_flag(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes"}
        return bool(value)


class AuthUser(ParkSafeBaseModel):
    """The authenticated identity as returned by the auth provider."""

    id: str
    email: str = ""
    user_metadata: UserMetadata = Field(default_factory=UserMetadata)
    identities: list[dict[str, Any]] | None = None
    """``[]`` on sign-up means the email already belongs to an account."""

    @property
    def is_admin(self) -> bool:
        return self.user_metadata.is_admin

    @property
    def display_name(self) -> str:
        return self.user_metadata.full_name or self.email


class ProfileSnapshot(ParkSafeBaseModel):
    """Denormalized profile columns embedded in message and member rows."""

    id: str = ""
    email: str = ""
    full_name: str = ""
    avatar_url: str = ""

    @model_validator(mode="before")
    @classmethod
    def _flatten_metadata(cls, values: Any) -> Any:
        # Rows embedded from the auth schema carry the name inside user_metadata.
        if isinstance(values, dict) and isinstance(values.get("user_metadata"), dict):
            merged = dict(values)
            meta = values["user_metadata"]
            for key in ("full_name", "avatar_url"):
                if merged.get(key) is None and meta.get(key):
                    merged[key] = meta[key]
            return merged
        return values

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


class ProfileLocation(ParkSafeBaseModel):
    """The ``profiles.location`` JSON column."""

    lat: float = Field(validation_alias=AliasChoices("lat", "latitude"))
    lng: float = Field(validation_alias=AliasChoices("lng", "lon", "longitude"))
    timestamp: Timestamp = None


class Profile(ParkSafeBaseModel):
    """A row of the ``profiles`` table."""

    id: str
    email: str = ""
    full_name: str = ""
    avatar_url: str = ""
    location: ProfileLocation | None = None
    last_active: Timestamp = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


class UserSummary(ProfileSnapshot):
    """A user returned by invitation search.

    The privileged lookup and the public-profile fallback return different
    shapes; both are normalised into this model, best-effort.
    """

    created_at: Timestamp = None


class ActiveUser(ParkSafeBaseModel):
    """One entry of an active-users snapshot."""

    id: str
    display_name: str
    lat: float
    lng: float
    last_active: datetime

    @classmethod
    def from_profile(cls, profile: Profile) -> ActiveUser | None:
        """Return ``None`` for profiles without a location or activity stamp."""
        if profile.location is None or profile.last_active is None:
            return None
        return cls(
            id=profile.id,
            display_name=profile.display_name,
            lat=profile.location.lat,
            lng=profile.location.lng,
            last_active=profile.last_active,
            raw=profile.raw,
        )
