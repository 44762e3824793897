"""Group management: listing, membership changes and invitation search."""

from __future__ import annotations

import logging

from parksafe._api.auth import list_users_privileged
from parksafe._api.groups import (
    delete_membership,
    fetch_groups,
    fetch_members,
    fetch_membership_group_ids,
    insert_group,
    insert_membership,
)
from parksafe._api.profiles import search_profiles
from parksafe._transport import Transport
from parksafe.exceptions import MembershipProtectedError, ParkSafeError
from parksafe.models.group import Group, GroupMember, MemberRole
from parksafe.models.user import UserSummary
from parksafe.state.session import SessionReader

_logger = logging.getLogger(__name__)


class GroupManager:
    """Groups of the signed-in user and the members of the selected one.

    Writes raise on failure and leave local state unchanged.
    """

    def __init__(self, transport: Transport, session: SessionReader, *, search_limit: int = 5) -> None:
        self._transport = transport
        self._session = session
        self._search_limit = search_limit
        self.groups: list[Group] = []
        self.selected: Group | None = None
        self.members: list[GroupMember] = []

    async def refresh(self) -> list[Group]:
        user = self._session.require_user()
        group_ids = await fetch_membership_group_ids(self._transport, user.id)
        self.groups = await fetch_groups(self._transport, group_ids)
        if self.selected is not None and all(group.id != self.selected.id for group in self.groups):
            self.selected = None
            self.members = []
        return list(self.groups)

    async def select(self, group_id: str) -> list[GroupMember]:
        group = next((group for group in self.groups if group.id == group_id), None)
        if group is None:
            raise ParkSafeError(f"Unknown group {group_id}")
        members = await fetch_members(self._transport, group_id)
        self.selected = group
        self.members = members
        return list(members)

    async def create_group(self, name: str) -> Group:
        """Create a group with the signed-in user as its ``admin``."""
        name = name.strip()
        if not name:
            raise ValueError("Please enter a group name")
        user = self._session.require_user()
        group = await insert_group(self._transport, name=name, created_by=user.id)
        await insert_membership(self._transport, group_id=group.id, user_id=user.id, role=MemberRole.ADMIN)
        group = group.model_copy(update={"member_count": 1})
        self.groups = [*self.groups, group]
        return group

    def _require_selected(self) -> Group:
        if self.selected is None:
            raise ParkSafeError("No group selected")
        return self.selected

    async def add_member(self, user_id: str) -> list[GroupMember]:
        group = self._require_selected()
        await insert_membership(self._transport, group_id=group.id, user_id=user_id, role=MemberRole.MEMBER)
        return await self.select(group.id)

    def can_remove(self, member: GroupMember) -> bool:
        """Admins are never offered for removal; they can only leave."""
        return not member.is_admin

    async def remove_member(self, user_id: str) -> list[GroupMember]:
        """Remove another member of the selected group, or leave it when *user_id* is the viewer.

        The target's role is read from the server, not from :attr:`members`.

        Raises
        ------
        MembershipProtectedError
            When the target is an admin of the group.
        ParkSafeError
            When the target is not a member of the group.
        """
        group = self._require_selected()
        user = self._session.require_user()
        if user_id == user.id:
            await self.leave(group.id)
            return []
        current = await fetch_members(self._transport, group.id)
        member = next((member for member in current if member.user_id == user_id), None)
        if member is None:
            raise ParkSafeError(f"User {user_id} is not a member of {group.name}")
        if not self.can_remove(member):
            raise MembershipProtectedError(f"{member.display_name} is an admin of {group.name} and can only leave")
        await delete_membership(self._transport, group_id=group.id, user_id=user_id)
        return await self.select(group.id)

    async def leave(self, group_id: str) -> None:
        user = self._session.require_user()
        await delete_membership(self._transport, group_id=group_id, user_id=user.id)
        self.groups = [group for group in self.groups if group.id != group_id]
        if self.selected is not None and self.selected.id == group_id:
            self.selected = None
            self.members = []

    async def search_users(self, text: str) -> list[UserSummary]:
        """Candidates to invite, excluding the viewer and current members.

        Tries the privileged user listing first; on any failure falls back
        to a best-effort match on public profiles.
        """
        text = text.strip()
        if not text:
            return []
        user = self._session.require_user()
        try:
            found = await list_users_privileged(self._transport, f"email.ilike.%{text}%")
        except ParkSafeError:
            _logger.debug("Privileged user search unavailable; using public profiles", exc_info=True)
            found = await search_profiles(self._transport, text, limit=self._search_limit)
        excluded = {user.id, *(member.user_id for member in self.members)}
        return [candidate for candidate in found if candidate.id not in excluded][: self._search_limit]
