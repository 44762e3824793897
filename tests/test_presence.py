from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from conftest import NOW, FakeBackend, FakePushChannel, settle, signed_in

from parksafe.state.events import ChangeKind
from parksafe.sync.map import InMemoryMapSurface
from parksafe.sync.presence import PresenceSynchronizer


def _presence(
    backend: FakeBackend,
    surface: InMemoryMapSurface,
    *,
    push: FakePushChannel | None = None,
    viewer: dict | None = None,
    **kwargs: object,
) -> PresenceSynchronizer:
    viewer = viewer or backend.add_user("viewer@example.com")
    return PresenceSynchronizer(
        backend,
        signed_in(backend, viewer),
        surface,
        push=push,
        poll_interval=3600,
        clock=lambda: NOW,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_freshness_boundary_59_59_included_60_01_excluded(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com", full_name="Alice")
    bob = backend.add_user("bob@example.com")
    backend.place(alice, 35.60, -83.50, age=timedelta(minutes=59, seconds=59))
    backend.place(bob, 35.61, -83.51, age=timedelta(minutes=60, seconds=1))
    surface = InMemoryMapSurface()

    assert await _presence(backend, surface).refresh() is True

    assert set(surface.markers) == {alice["id"]}
    assert surface.markers[alice["id"]].popup.startswith("Alice\nLast active:")


@pytest.mark.asyncio
async def test_markers_are_moved_in_place_between_snapshots(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com")
    backend.place(alice, 35.60, -83.50, age=timedelta(minutes=5))
    surface = InMemoryMapSurface()
    presence = _presence(backend, surface)

    await presence.refresh()
    handle = presence.markers[alice["id"]]
    backend.place(alice, 35.70, -83.40, age=timedelta(seconds=10))
    await presence.refresh()

    assert presence.markers[alice["id"]] is handle
    assert (handle.lat, handle.lng) == (35.70, -83.40)
    assert surface.created == 1
    assert surface.removed == 0


@pytest.mark.asyncio
async def test_user_missing_from_latest_snapshot_loses_marker(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com")
    bob = backend.add_user("bob@example.com")
    backend.place(alice, 35.60, -83.50, age=timedelta(minutes=5))
    backend.place(bob, 35.61, -83.51, age=timedelta(minutes=5))
    surface = InMemoryMapSurface()
    presence = _presence(backend, surface)

    await presence.refresh()
    backend.place(bob, 35.61, -83.51, age=timedelta(hours=2))
    await presence.refresh()

    assert set(presence.markers) == {alice["id"]}
    assert set(surface.markers) == {alice["id"]}
    assert surface.removed == 1
    assert [entry.id for entry in presence.active_users] == [alice["id"]]


@pytest.mark.asyncio
async def test_failed_fetch_leaves_markers_untouched(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com")
    backend.place(alice, 35.60, -83.50, age=timedelta(minutes=5))
    surface = InMemoryMapSurface()
    presence = _presence(backend, surface)
    await presence.refresh()

    backend.place(alice, 1.0, 1.0, age=timedelta(hours=3))
    backend.fail_next("select", "profiles")
    assert await presence.refresh() is False

    assert set(surface.markers) == {alice["id"]}
    assert presence.last_error == "Failed to fetch user locations"

    assert await presence.refresh() is True
    assert surface.markers == {}
    assert presence.last_error is None


@pytest.mark.asyncio
async def test_profile_update_push_triggers_full_refresh(backend: FakeBackend, push: FakePushChannel) -> None:
    surface = InMemoryMapSurface()
    presence = _presence(backend, surface, push=push)
    await presence.start()
    assert surface.markers == {}

    carol = backend.add_user("carol@example.com")
    backend.place(carol, 35.65, -83.52, age=timedelta(seconds=1))
    await push.emit("profiles", ChangeKind.INSERT, {"id": carol["id"]})
    assert surface.markers == {}

    await push.emit("profiles", ChangeKind.UPDATE, {"id": carol["id"]})
    assert set(surface.markers) == {carol["id"]}
    await presence.stop()


@pytest.mark.asyncio
async def test_any_kind_subscription_refreshes_on_insert(backend: FakeBackend, push: FakePushChannel) -> None:
    surface = InMemoryMapSurface()
    presence = _presence(backend, surface, push=push, push_kinds=(ChangeKind.ANY,))
    await presence.start()

    carol = backend.add_user("carol@example.com")
    backend.place(carol, 35.65, -83.52, age=timedelta(seconds=1))
    await push.emit("profiles", ChangeKind.INSERT, {"id": carol["id"]})

    assert set(surface.markers) == {carol["id"]}
    await presence.stop()


@pytest.mark.asyncio
async def test_exclude_self_omits_the_viewer(backend: FakeBackend) -> None:
    viewer = backend.add_user("viewer@example.com")
    other = backend.add_user("other@example.com")
    backend.place(viewer, 35.60, -83.50, age=timedelta(minutes=1))
    backend.place(other, 35.61, -83.51, age=timedelta(minutes=1))
    surface = InMemoryMapSurface()

    await _presence(backend, surface, viewer=viewer, exclude_self=True).refresh()

    assert set(surface.markers) == {other["id"]}


@pytest.mark.asyncio
async def test_superseded_snapshot_is_not_applied(backend: FakeBackend) -> None:
    alice = backend.add_user("alice@example.com")
    bob = backend.add_user("bob@example.com")
    backend.place(alice, 35.60, -83.50, age=timedelta(minutes=1))
    surface = InMemoryMapSurface()
    presence = _presence(backend, surface)

    gate = backend.hold_next_select("profiles")
    slow = asyncio.create_task(presence.refresh())
    await settle()

    backend.place(alice, 35.60, -83.50, age=timedelta(hours=2))
    backend.place(bob, 35.61, -83.51, age=timedelta(minutes=1))
    assert await presence.refresh() is True
    gate.set()

    assert await slow is False
    assert set(surface.markers) == {bob["id"]}


@pytest.mark.asyncio
async def test_stop_tears_down_subscription_timer_and_markers(backend: FakeBackend, push: FakePushChannel) -> None:
    alice = backend.add_user("alice@example.com")
    backend.place(alice, 35.60, -83.50, age=timedelta(minutes=1))
    surface = InMemoryMapSurface()

    async with _presence(backend, surface, push=push) as presence:
        assert presence.running
        assert len(push.active("profiles")) == 1
        assert set(surface.markers) == {alice["id"]}

    assert push.active() == []
    assert surface.markers == {}
    assert presence.running is False


@pytest.mark.asyncio
async def test_poll_timer_refreshes_periodically(backend: FakeBackend) -> None:
    surface = InMemoryMapSurface()
    presence = PresenceSynchronizer(
        backend,
        signed_in(backend, backend.add_user("viewer@example.com")),
        surface,
        poll_interval=0.01,
        clock=lambda: NOW,
    )
    await presence.start()
    alice = backend.add_user("alice@example.com")
    backend.place(alice, 35.60, -83.50, age=timedelta(minutes=1))
    await asyncio.sleep(0.05)
    seen = set(surface.markers)
    await presence.stop()

    assert seen == {alice["id"]}
    assert backend.count("select", "profiles") >= 2
