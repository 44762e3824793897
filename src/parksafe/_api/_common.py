"""Shared helpers for endpoint modules.

It is internal to parksafe and may change at any time.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from parksafe._query import Embed
from parksafe.exceptions import ParkSafeNotFoundError

PROFILE_SNAPSHOT_COLUMNS: tuple[str, ...] = ("id", "email", "full_name", "avatar_url")


def utcnow() -> datetime:
    return datetime.now(UTC)


def profile_embed(alias: str, foreign_key: str) -> Embed:
    """Embed the profile snapshot referenced by *foreign_key*."""
    return Embed(alias=alias, table="profiles", foreign_key=foreign_key, columns=PROFILE_SNAPSHOT_COLUMNS)


def first_row(rows: list[dict[str, Any]], *, endpoint: str, what: str) -> dict[str, Any]:
    """Return the single expected row or raise :class:`ParkSafeNotFoundError`."""
    if not rows:
        raise ParkSafeNotFoundError(f"{what} not found", code="PGRST116", endpoint=endpoint)
    return rows[0]
