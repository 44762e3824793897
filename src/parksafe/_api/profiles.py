"""Profile endpoints: active-user snapshot, location upsert, search."""

from __future__ import annotations

import logging
from datetime import datetime

from parksafe._api._common import utcnow
from parksafe._api.auth import avatar_url_for
from parksafe._constants import TABLE_PROFILES
from parksafe._query import FilterOp, Query
from parksafe._transport import Transport
from parksafe.models._base import isoformat
from parksafe.models.location import LocationFix
from parksafe.models.user import AuthUser, Profile, UserSummary

_logger = logging.getLogger(__name__)

_PRESENCE_COLUMNS = ("id", "email", "full_name", "location", "last_active")


def active_profiles_query(since: datetime, *, exclude_id: str | None = None) -> Query:
    """Profiles with a location and ``last_active >= since`` (inclusive cutoff)."""
    query = (
        Query(TABLE_PROFILES, columns=_PRESENCE_COLUMNS)
        .where("location", FilterOp.NOT_IS, None)
        .where("last_active", FilterOp.GTE, since)
    )
    if exclude_id:
        query = query.where("id", FilterOp.NEQ, exclude_id)
    return query


async def fetch_active_profiles(
    transport: Transport,
    *,
    since: datetime,
    exclude_id: str | None = None,
) -> list[Profile]:
    rows = await transport.select(active_profiles_query(since, exclude_id=exclude_id))
    return [Profile.model_validate(row) for row in rows]


async def update_location(
    transport: Transport,
    user_id: str,
    fix: LocationFix,
    *,
    now: datetime | None = None,
) -> None:
    """Store *fix* as the user's current location (last write wins)."""
    stamp = now or utcnow()
    await transport.update(
        Query(TABLE_PROFILES).eq("id", user_id),
        {"location": fix.to_row(), "last_active": isoformat(stamp)},
    )


async def ensure_profile(transport: Transport, user: AuthUser) -> bool:
    """Create the user's profile row when it does not exist yet.

    Returns ``True`` when a row was inserted.
    """
    rows = await transport.select(Query(TABLE_PROFILES, columns=("id",)).eq("id", user.id).take(1))
    if rows:
        return False
    await transport.insert(
        TABLE_PROFILES,
        [
            {
                "id": user.id,
                "email": user.email,
                "avatar_url": user.user_metadata.avatar_url or avatar_url_for(user.email),
                "full_name": user.user_metadata.full_name or None,
            }
        ],
    )
    _logger.debug("Created profile for user_id=%s", user.id)
    return True


async def search_profiles(transport: Transport, text: str, *, limit: int = 5) -> list[UserSummary]:
    query = (
        Query(TABLE_PROFILES, columns=("id", "email", "full_name", "avatar_url"))
        .where("email", FilterOp.ILIKE, f"%{text}%")
        .take(limit)
    )
    return [UserSummary.model_validate(row) for row in await transport.select(query)]
