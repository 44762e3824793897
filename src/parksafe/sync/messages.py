"""Message synchronizer and composer."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from parksafe._api.messages import fetch_message, fetch_recent_messages, insert_message
from parksafe._constants import TABLE_MESSAGES
from parksafe._realtime import PushChannel
from parksafe._transport import Transport
from parksafe.exceptions import ParkSafeError
from parksafe.models.message import Message, MessageKind
from parksafe.models.ui import Toast, ToastLevel
from parksafe.state.events import ChangeEvent, ChangeKind
from parksafe.state.messages import MessageStore
from parksafe.state.session import SessionReader
from parksafe.sync._base import Synchronizer
from parksafe.sync.notify import Notifier

_logger = logging.getLogger(__name__)


class MessageSynchronizer(Synchronizer):
    """Feeds the Message Store from the initial page, insert pushes and sends.

    All three paths merge by id, so the same message arriving from more than
    one of them appears once.
    """

    def __init__(
        self,
        transport: Transport,
        session: SessionReader,
        store: MessageStore,
        *,
        push: PushChannel | None = None,
        fetch_limit: int = 50,
    ) -> None:
        super().__init__(push=push, logger=_logger)
        self._transport = transport
        self._session = session
        self._store = store
        self._fetch_limit = fetch_limit

    @property
    def store(self) -> MessageStore:
        return self._store

    async def _on_start(self) -> None:
        await self.load()
        await self._subscribe(
            TABLE_MESSAGES,
            (ChangeKind.INSERT,),
            self._on_insert,
            on_rejoin=self._on_rejoin,
        )

    async def load(self) -> bool:
        """Replace the store contents with the latest page."""
        self._store.loading = True
        try:
            page = await fetch_recent_messages(self._transport, limit=self._fetch_limit)
        except (ParkSafeError, ValidationError) as exc:
            self._store.error = "Failed to load messages"
            self._logger.warning("Message fetch failed: %s", exc)
            return False
        finally:
            self._store.loading = False
        self._store.replace(page)
        return True

    async def _on_rejoin(self) -> None:
        # Inserts announced while disconnected are not replayed.
        page = await fetch_recent_messages(self._transport, limit=self._fetch_limit)
        self._store.merge(page)

    async def _on_insert(self, event: ChangeEvent) -> None:
        message_id = event.row_id
        if message_id is None or message_id in self._store:
            return
        try:
            message = await fetch_message(self._transport, message_id)
        except (ParkSafeError, ValidationError):
            self._logger.debug("Could not load pushed message id=%s", message_id, exc_info=True)
            return
        self._store.merge([message])

    async def send(
        self,
        content: str,
        *,
        kind: MessageKind = MessageKind.NORMAL,
        recipient_id: str | None = None,
        group_id: str | None = None,
    ) -> Message:
        """Insert a message and merge the acknowledged row into the store.

        Raises
        ------
        ValueError
            When *content* is blank.
        ParkSafeError
            When the insert fails; the store is left unchanged.
        """
        text = content.strip()
        if not text:
            raise ValueError("Message cannot be empty")
        user = self._session.require_user()
        message = await insert_message(
            self._transport,
            sender_id=user.id,
            content=text,
            kind=kind,
            recipient_id=recipient_id,
            group_id=group_id,
        )
        self._store.merge([message])
        return message


class MessageComposer:
    """Draft state for the send box.

    The draft is cleared only after the backend acknowledged the insert.
    """

    def __init__(
        self,
        messages: MessageSynchronizer,
        notifier: Notifier,
        *,
        recipient_id: str | None = None,
        group_id: str | None = None,
    ) -> None:
        self._messages = messages
        self._notifier = notifier
        self._recipient_id = recipient_id
        self._group_id = group_id
        self.text = ""
        self.error: str | None = None
        self.sending = False

    async def submit(self) -> bool:
        if not self.text.strip() or self.sending:
            return False
        self.sending = True
        self.error = None
        try:
            await self._messages.send(self.text, recipient_id=self._recipient_id, group_id=self._group_id)
        except (ParkSafeError, ValueError) as exc:
            self.error = "Failed to send message"
            _logger.warning("Message send failed: %s", exc)
            self._notifier.notify(Toast(level=ToastLevel.ERROR, title="Failed to send message", body=str(exc)))
            return False
        finally:
            self.sending = False
        self.text = ""
        return True
