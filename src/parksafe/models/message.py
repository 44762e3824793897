"""Chat message models."""

from __future__ import annotations

from pydantic import AliasChoices, Field

from parksafe.models._base import ParkSafeBaseModel, ParkSafeEnum, Timestamp
from parksafe.models.user import ProfileSnapshot


class MessageKind(ParkSafeEnum):
    NORMAL = "normal"
    EMERGENCY = "emergency"
    SYSTEM = "system"
    UNKNOWN = "unknown"


class Message(ParkSafeBaseModel):
    """A row of ``messages`` with the sender's profile embedded.

    Messages are immutable once created.
    """

    id: str
    sender_id: str = ""
    recipient_id: str | None = None
    group_id: str | None = None
    content: str = ""
    kind: MessageKind = Field(default=MessageKind.NORMAL, validation_alias=AliasChoices("type", "kind"))
    created_at: Timestamp = None
    sender: ProfileSnapshot | None = None

    @property
    def is_emergency(self) -> bool:
        return self.kind == MessageKind.EMERGENCY

    @property
    def sender_name(self) -> str:
        if self.sender is not None and self.sender.display_name:
            return self.sender.display_name
        return self.sender_id
