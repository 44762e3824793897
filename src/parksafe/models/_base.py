"""Base model and enum for backend rows.

Every row model inherits from :class:`ParkSafeBaseModel` which provides:

* frozen instances that ignore unknown columns,
* a ``model_validator(mode="before")`` that drops ``None`` values so the
  field default is used,
* a ``raw`` dict that captures the original row.

Column enums inherit from :class:`ParkSafeEnum` which adds an ``UNKNOWN``
member and a ``_missing_`` hook returning it for unmapped values, so a new
kind added server-side never breaks parsing.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

# Threshold to distinguish epoch seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce an ISO-8601 string or an epoch number (s or ms) to an aware UTC datetime.

    Returns ``None`` for ``None``/empty input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


Timestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces backend timestamps to UTC datetimes."""


def isoformat(value: datetime) -> str:
    """Render *value* the way the backend expects in filters and writes."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


class ParkSafeEnum(enum.StrEnum):
    """Base for column enums.

    Every subclass **must** define ``UNKNOWN = "unknown"``.
    """

    @classmethod
    def _missing_(cls, value: object) -> ParkSafeEnum:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        unknown: ParkSafeEnum = cls["UNKNOWN"]
        return unknown


class ParkSafeBaseModel(BaseModel):
    """Base for backend row models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, repr=False)
    """Original row dict."""

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        cleaned = {key: value for key, value in values.items() if value is not None}
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned
