from __future__ import annotations

import pytest
from conftest import FakeBackend, FakePushChannel, RecordingNotifier, signed_in

from parksafe.models.message import MessageKind
from parksafe.state.events import ChangeKind
from parksafe.state.messages import MessageStore
from parksafe.sync.messages import MessageComposer, MessageSynchronizer


def _setup(backend: FakeBackend, push: FakePushChannel | None = None) -> tuple[MessageSynchronizer, dict]:
    alice = backend.add_user("alice@example.com", full_name="Alice")
    sync = MessageSynchronizer(backend, signed_in(backend, alice), MessageStore(), push=push, fetch_limit=50)
    return sync, alice


@pytest.mark.asyncio
async def test_activation_fetches_latest_page_and_exposes_it_ascending(backend: FakeBackend) -> None:
    sync, alice = _setup(backend)
    seeded = [backend.seed("messages", sender_id=alice["id"], content=f"msg {i}") for i in range(60)]

    assert await sync.load() is True

    ids = [message.id for message in sync.store.messages]
    assert ids == [row["id"] for row in seeded[10:]]
    assert sync.store.newest_first[0].id == seeded[-1]["id"]
    assert sync.store.messages[0].sender_name == "Alice"


@pytest.mark.asyncio
async def test_insert_seen_by_send_and_push_is_listed_once(backend: FakeBackend, push: FakePushChannel) -> None:
    sync, _ = _setup(backend, push)
    await sync.start()

    sent = await sync.send("hello")
    await push.emit("messages", ChangeKind.INSERT, {"id": sent.id})
    await push.emit("messages", ChangeKind.INSERT, {"id": sent.id})
    await push.rejoin()

    assert [message.id for message in sync.store.messages].count(sent.id) == 1
    assert len(sync.store) == 1
    await sync.stop()


@pytest.mark.asyncio
async def test_pushed_insert_is_fetched_with_sender_snapshot(backend: FakeBackend, push: FakePushChannel) -> None:
    sync, _ = _setup(backend, push)
    bob = backend.add_user("bob@example.com", full_name="Bob")
    await sync.start()

    row = backend.seed("messages", sender_id=bob["id"], content="on my way", type="normal")
    await push.emit("messages", ChangeKind.INSERT, {"id": row["id"], "content": "on my way"})

    latest = sync.store.messages[-1]
    assert latest.id == row["id"]
    assert latest.sender_name == "Bob"
    assert backend.count("select", "messages") == 2
    await sync.stop()


@pytest.mark.asyncio
async def test_rejoin_merges_messages_missed_while_disconnected(backend: FakeBackend, push: FakePushChannel) -> None:
    sync, alice = _setup(backend, push)
    first = backend.seed("messages", sender_id=alice["id"], content="before")
    await sync.start()

    missed = backend.seed("messages", sender_id=alice["id"], content="while offline")
    await push.rejoin()

    assert [m.id for m in sync.store.messages] == [first["id"], missed["id"]]
    await sync.stop()


@pytest.mark.asyncio
async def test_list_grows_past_the_initial_page(backend: FakeBackend, push: FakePushChannel) -> None:
    alice = backend.add_user("alice@example.com")
    sync = MessageSynchronizer(backend, signed_in(backend, alice), MessageStore(), push=push, fetch_limit=3)
    for i in range(3):
        backend.seed("messages", sender_id=alice["id"], content=f"old {i}")
    await sync.start()

    for i in range(2):
        row = backend.seed("messages", sender_id=alice["id"], content=f"new {i}")
        await push.emit("messages", ChangeKind.INSERT, {"id": row["id"]})

    assert len(sync.store) == 5
    await sync.stop()


@pytest.mark.asyncio
async def test_failed_initial_fetch_records_error(backend: FakeBackend) -> None:
    sync, _ = _setup(backend)
    backend.fail_next("select", "messages")

    assert await sync.load() is False
    assert sync.store.error == "Failed to load messages"
    assert sync.store.loading is False
    assert len(sync.store) == 0


@pytest.mark.asyncio
async def test_composer_clears_draft_only_after_acknowledgement(
    backend: FakeBackend, notifier: RecordingNotifier
) -> None:
    sync, _ = _setup(backend)
    composer = MessageComposer(sync, notifier)
    composer.text = "  meet at the trailhead  "

    assert await composer.submit() is True

    assert composer.text == ""
    assert sync.store.messages[-1].content == "meet at the trailhead"
    assert sync.store.messages[-1].kind == MessageKind.NORMAL
    assert notifier.toasts == []


@pytest.mark.asyncio
async def test_composer_keeps_draft_and_list_on_send_failure(
    backend: FakeBackend, notifier: RecordingNotifier
) -> None:
    sync, alice = _setup(backend)
    backend.seed("messages", sender_id=alice["id"], content="earlier")
    await sync.load()
    before = sync.store.messages
    composer = MessageComposer(sync, notifier)
    composer.text = "hello?"
    backend.fail_next("insert", "messages")

    assert await composer.submit() is False

    assert composer.text == "hello?"
    assert composer.error == "Failed to send message"
    assert sync.store.messages == before
    assert notifier.titles == ["Failed to send message"]


@pytest.mark.asyncio
async def test_composer_ignores_blank_draft(backend: FakeBackend, notifier: RecordingNotifier) -> None:
    sync, _ = _setup(backend)
    composer = MessageComposer(sync, notifier)
    composer.text = "   "

    assert await composer.submit() is False
    assert backend.count("insert", "messages") == 0


@pytest.mark.asyncio
async def test_stop_unsubscribes_from_message_inserts(backend: FakeBackend, push: FakePushChannel) -> None:
    sync, _ = _setup(backend, push)
    await sync.start()
    assert len(push.active("messages")) == 1

    await sync.stop()

    assert push.active("messages") == []
