"""Normalized push-channel change events.

The realtime runtime (and test doubles) convert incoming frames into
:class:`ChangeEvent` values; synchronizers only ever see these.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from parksafe.models._base import parse_timestamp


class ChangeKind(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ANY = "*"

    def matches(self, other: ChangeKind) -> bool:
        return self == ChangeKind.ANY or self == other


class ChangeEvent(BaseModel):
    """A row change announced by the backend."""

    model_config = ConfigDict(frozen=True)

    table: str
    kind: ChangeKind
    record: dict[str, Any] = Field(default_factory=dict, description="Row after the change")
    old_record: dict[str, Any] = Field(default_factory=dict, description="Row before the change, if sent")
    commit_timestamp: datetime | None = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("commit_timestamp", mode="before")
    @classmethod
    def _parse_commit_timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @property
    def row_id(self) -> str | None:
        """Primary key of the affected row, from the new or old image."""
        value = self.record.get("id") or self.old_record.get("id")
        return str(value) if value is not None else None
