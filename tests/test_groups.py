from __future__ import annotations

import pytest
from conftest import FakeBackend, signed_in

from parksafe.exceptions import MembershipProtectedError, ParkSafeError
from parksafe.models.group import MemberRole
from parksafe.sync.groups import GroupManager


def _manager(backend: FakeBackend, user: dict) -> GroupManager:
    return GroupManager(backend, signed_in(backend, user), search_limit=5)


@pytest.mark.asyncio
async def test_create_group_makes_creator_admin(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com", full_name="Alice")
    groups = _manager(backend, alice)

    group = await groups.create_group("  Trail crew ")

    assert group.name == "Trail crew"
    assert group.member_count == 1
    assert [g.id for g in groups.groups] == [group.id]
    [membership] = backend.tables["group_members"]
    assert membership == {
        "id": membership["id"],
        "created_at": membership["created_at"],
        "group_id": group.id,
        "user_id": alice["id"],
        "role": "admin",
    }


@pytest.mark.asyncio
async def test_create_group_rejects_blank_name(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com")
    groups = _manager(backend, alice)

    with pytest.raises(ValueError, match="Please enter a group name"):
        await groups.create_group("   ")
    assert backend.tables["groups"] == []


@pytest.mark.asyncio
async def test_refresh_lists_only_own_groups_with_counts(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com")
    bob = backend.add_user("bob@example.com")
    mine = backend.seed("groups", name="Rangers", created_by=alice["id"])
    other = backend.seed("groups", name="Hikers", created_by=bob["id"])
    backend.seed("group_members", group_id=mine["id"], user_id=alice["id"], role="admin")
    backend.seed("group_members", group_id=mine["id"], user_id=bob["id"], role="member")
    backend.seed("group_members", group_id=other["id"], user_id=bob["id"], role="admin")

    listed = await _manager(backend, alice).refresh()

    assert [(g.name, g.member_count) for g in listed] == [("Rangers", 2)]


@pytest.mark.asyncio
async def test_add_member_reloads_selected_group(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com", full_name="Alice")
    bob = backend.add_user("bob@example.com", full_name="Bob")
    groups = _manager(backend, alice)
    group = await groups.create_group("Trail crew")
    await groups.select(group.id)

    members = await groups.add_member(bob["id"])

    assert {(m.display_name, m.role) for m in members} == {
        ("Alice", MemberRole.ADMIN),
        ("Bob", MemberRole.MEMBER),
    }
    assert groups.selected is not None and groups.selected.id == group.id


@pytest.mark.asyncio
async def test_select_unknown_group_raises(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com")
    with pytest.raises(ParkSafeError):
        await _manager(backend, alice).select("group-missing")


@pytest.mark.asyncio
async def test_admin_cannot_be_removed_but_can_leave(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com", full_name="Alice")
    bob = backend.add_user("bob@example.com", full_name="Bob")
    alice_groups = _manager(backend, alice)
    group = await alice_groups.create_group("Trail crew")
    await alice_groups.select(group.id)
    await alice_groups.add_member(bob["id"])

    bob_groups = _manager(backend, bob)
    await bob_groups.refresh()
    await bob_groups.select(group.id)
    admin = next(m for m in bob_groups.members if m.user_id == alice["id"])
    assert bob_groups.can_remove(admin) is False

    with pytest.raises(MembershipProtectedError):
        await bob_groups.remove_member(alice["id"])
    assert len(backend.tables["group_members"]) == 2

    await alice_groups.remove_member(alice["id"])

    assert alice_groups.groups == []
    assert alice_groups.selected is None
    assert [row["user_id"] for row in backend.tables["group_members"]] == [bob["id"]]


@pytest.mark.asyncio
async def test_admin_promoted_after_select_is_still_protected(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com", full_name="Alice")
    bob = backend.add_user("bob@example.com", full_name="Bob")
    carol = backend.add_user("carol@example.com", full_name="Carol")
    alice_groups = _manager(backend, alice)
    group = await alice_groups.create_group("Trail crew")
    await alice_groups.select(group.id)
    await alice_groups.add_member(bob["id"])

    bob_groups = _manager(backend, bob)
    await bob_groups.refresh()
    await bob_groups.select(group.id)
    backend.seed("group_members", group_id=group.id, user_id=carol["id"], role=MemberRole.ADMIN.value)

    with pytest.raises(MembershipProtectedError, match="Carol"):
        await bob_groups.remove_member(carol["id"])

    assert sorted(row["user_id"] for row in backend.tables["group_members"]) == sorted(
        [alice["id"], bob["id"], carol["id"]]
    )
    assert backend.count("delete", "group_members") == 0


@pytest.mark.asyncio
async def test_removing_a_non_member_fails_without_deleting(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com")
    stranger = backend.add_user("stranger@example.com")
    groups = _manager(backend, alice)
    group = await groups.create_group("Trail crew")
    await groups.select(group.id)

    with pytest.raises(ParkSafeError, match="not a member"):
        await groups.remove_member(stranger["id"])

    assert backend.count("delete", "group_members") == 0


@pytest.mark.asyncio
async def test_admin_removes_regular_member(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com")
    bob = backend.add_user("bob@example.com")
    groups = _manager(backend, alice)
    group = await groups.create_group("Trail crew")
    await groups.select(group.id)
    await groups.add_member(bob["id"])

    members = await groups.remove_member(bob["id"])

    assert [m.user_id for m in members] == [alice["id"]]


@pytest.mark.asyncio
async def test_search_falls_back_to_public_profiles(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@park.example")
    bob = backend.add_user("bob@park.example")
    carol = backend.add_user("carol@park.example")
    backend.add_user("dave@elsewhere.example")
    groups = _manager(backend, alice)
    group = await groups.create_group("Trail crew")
    await groups.select(group.id)
    await groups.add_member(bob["id"])

    found = await groups.search_users("park.example")

    assert [user.id for user in found] == [carol["id"]]
    assert backend.count("select", "profiles") >= 1


@pytest.mark.asyncio
async def test_search_uses_privileged_listing_when_allowed(backend: FakeBackend) -> None:
    backend.admin_listing_allowed = True
    alice = backend.add_user("alice@park.example", is_admin=True)
    backend.add_user("bob@park.example", full_name="Bob")
    groups = _manager(backend, alice)

    found = await groups.search_users("BOB")

    assert [(user.email, user.display_name) for user in found] == [("bob@park.example", "Bob")]
    assert backend.count("select", "profiles") == 0


@pytest.mark.asyncio
async def test_blank_search_returns_nothing(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com")
    assert await _manager(backend, alice).search_users("  ") == []
    assert backend.calls == []
