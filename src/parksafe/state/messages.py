"""Message store: recent messages plus fetch status."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from parksafe.models.message import Message
from parksafe.state._observable import Observable
from parksafe.state.reconcile import merge_messages


class MessageStore:
    """Messages kept newest first; :attr:`messages` is the ascending display order.

    The list is not capped after the initial page.
    """

    def __init__(self) -> None:
        self._newest_first: list[Message] = []
        self.loading = False
        self.error: str | None = None
        self._changes: Observable[MessageStore] = Observable()

    @property
    def messages(self) -> list[Message]:
        return list(reversed(self._newest_first))

    @property
    def newest_first(self) -> list[Message]:
        return list(self._newest_first)

    def __len__(self) -> int:
        return len(self._newest_first)

    def __contains__(self, message_id: object) -> bool:
        return any(message.id == message_id for message in self._newest_first)

    def subscribe(self, listener: Callable[[MessageStore], None]) -> Callable[[], None]:
        return self._changes.subscribe(listener)

    def replace(self, page: Iterable[Message]) -> None:
        self._newest_first = merge_messages([], page)
        self.error = None
        self._changes.notify(self)

    def merge(self, incoming: Iterable[Message]) -> None:
        self._newest_first = merge_messages(self._newest_first, incoming)
        self._changes.notify(self)

    def clear(self) -> None:
        self._newest_first = []
        self.error = None
        self._changes.notify(self)
