"""Emergency alert models."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field

from parksafe.models._base import ParkSafeBaseModel, ParkSafeEnum, Timestamp


class AlertKind(ParkSafeEnum):
    PANIC = "panic"
    BROADCAST = "broadcast"
    UNKNOWN = "unknown"


class AlertStatus(ParkSafeEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"


class AlertSeverity(ParkSafeEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    UNKNOWN = "unknown"


class AlertMetadata(ParkSafeBaseModel):
    """Optional ``emergency_alerts.metadata`` JSON."""

    severity: AlertSeverity | None = None
    location: dict[str, Any] | None = None
    timestamp: Timestamp = None
    device_info: dict[str, Any] = Field(default_factory=dict)


class Alert(ParkSafeBaseModel):
    """A row of ``emergency_alerts``."""

    id: str
    user_id: str = ""
    kind: AlertKind = Field(default=AlertKind.UNKNOWN, validation_alias=AliasChoices("type", "kind"))
    message: str = ""
    status: AlertStatus = AlertStatus.ACTIVE
    metadata: AlertMetadata = Field(default_factory=AlertMetadata)
    created_at: Timestamp = None

    @property
    def is_active(self) -> bool:
        return self.status == AlertStatus.ACTIVE

    @property
    def display_text(self) -> str:
        """Banner text: the message, or a label derived from the raw kind."""
        if self.message:
            return self.message
        kind = str(self.raw.get("type") or self.kind.value)
        return f"New {kind.replace('_', ' ')} alert"
