"""Group and membership models."""

from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from parksafe.models._base import ParkSafeBaseModel, ParkSafeEnum, Timestamp
from parksafe.models.user import ProfileSnapshot


class MemberRole(ParkSafeEnum):
    ADMIN = "admin"
    MEMBER = "member"
    UNKNOWN = "unknown"


class Group(ParkSafeBaseModel):
    """A row of ``groups`` plus its member count."""

    id: str
    name: str = ""
    created_by: str = ""
    created_at: Timestamp = None
    member_count: int = 0


class GroupMember(ParkSafeBaseModel):
    """A ``group_members`` row joined with the member's profile."""

    group_id: str = ""
    user_id: str
    role: MemberRole = MemberRole.MEMBER
    profile: ProfileSnapshot = Field(default_factory=ProfileSnapshot)

    @model_validator(mode="before")
    @classmethod
    def _default_profile_id(cls, values: Any) -> Any:
        if isinstance(values, dict) and isinstance(values.get("profile"), dict):
            merged = dict(values)
            profile = dict(values["profile"])
            if not profile.get("id"):
                profile["id"] = values.get("user_id")
            merged["profile"] = profile
            return merged
        return values

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN

    @property
    def display_name(self) -> str:
        return self.profile.display_name or self.user_id
