"""Geolocation fix model."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from parksafe.models._base import ParkSafeBaseModel, Timestamp


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LocationFix(ParkSafeBaseModel):
    """A single geolocation reading.

    Parameters
    ----------
    lat : float
        Latitude in degrees.
    lng : float
        Longitude in degrees.
    accuracy : float or None
        Accuracy radius in metres, when the provider reports one.
    captured_at : datetime
        When the reading was taken (UTC).
    """

    lat: float = Field(validation_alias=AliasChoices("lat", "latitude"))
    lng: float = Field(validation_alias=AliasChoices("lng", "lon", "longitude"))
    accuracy: float | None = None
    captured_at: Timestamp = Field(
        default_factory=_utcnow,
        validation_alias=AliasChoices("captured_at", "timestamp"),
    )

    @field_validator("lat")
    @classmethod
    def _check_lat(cls, value: float) -> float:
        if not -90.0 <= value <= 90.0:
            raise ValueError(f"latitude out of range: {value}")
        return value

    @field_validator("lng")
    @classmethod
    def _check_lng(cls, value: float) -> float:
        if not -180.0 <= value <= 180.0:
            raise ValueError(f"longitude out of range: {value}")
        return value

    def to_row(self) -> dict[str, Any]:
        """Shape stored in ``profiles.location`` and alert metadata."""
        row: dict[str, Any] = {"lat": self.lat, "lng": self.lng}
        if self.accuracy is not None:
            row["accuracy"] = self.accuracy
        if self.captured_at is not None:
            row["timestamp"] = int(self.captured_at.timestamp() * 1000)
        return row
