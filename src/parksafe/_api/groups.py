"""Group and membership endpoints."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from parksafe._api._common import first_row, profile_embed
from parksafe._constants import TABLE_GROUP_MEMBERS, TABLE_GROUPS
from parksafe._query import Query
from parksafe._transport import Transport
from parksafe.models.group import Group, GroupMember, MemberRole

_MEMBER_QUERY = Query(
    TABLE_GROUP_MEMBERS,
    columns=("group_id", "user_id", "role"),
    embeds=(profile_embed("profile", "user_id"),),
)


async def fetch_membership_group_ids(transport: Transport, user_id: str) -> list[str]:
    rows = await transport.select(Query(TABLE_GROUP_MEMBERS, columns=("group_id",)).eq("user_id", user_id))
    return [str(row["group_id"]) for row in rows if row.get("group_id")]


async def fetch_groups(transport: Transport, group_ids: Sequence[str]) -> list[Group]:
    """Groups by id with their member counts."""
    if not group_ids:
        return []
    rows = await transport.select(Query(TABLE_GROUPS).in_("id", group_ids))
    member_rows = await transport.select(
        Query(TABLE_GROUP_MEMBERS, columns=("group_id",)).in_("group_id", group_ids)
    )
    counts = Counter(str(row.get("group_id")) for row in member_rows)
    return [Group.model_validate({**row, "member_count": counts.get(str(row.get("id")), 0)}) for row in rows]


async def insert_group(transport: Transport, *, name: str, created_by: str) -> Group:
    rows = await transport.insert(
        TABLE_GROUPS,
        [{"name": name, "created_by": created_by}],
        returning=Query(TABLE_GROUPS),
    )
    return Group.model_validate(first_row(rows, endpoint=TABLE_GROUPS, what="inserted group"))


async def insert_membership(transport: Transport, *, group_id: str, user_id: str, role: MemberRole) -> None:
    await transport.insert(
        TABLE_GROUP_MEMBERS,
        [{"group_id": group_id, "user_id": user_id, "role": role.value}],
    )


async def fetch_members(transport: Transport, group_id: str) -> list[GroupMember]:
    rows = await transport.select(_MEMBER_QUERY.eq("group_id", group_id))
    return [GroupMember.model_validate(row) for row in rows]


async def delete_membership(transport: Transport, *, group_id: str, user_id: str) -> None:
    await transport.delete(Query(TABLE_GROUP_MEMBERS).eq("group_id", group_id).eq("user_id", user_id))
