"""Message endpoints."""

from __future__ import annotations

from parksafe._api._common import first_row, profile_embed
from parksafe._constants import TABLE_MESSAGES
from parksafe._query import Query
from parksafe._transport import Transport
from parksafe.models.message import Message, MessageKind

_MESSAGE_QUERY = Query(
    TABLE_MESSAGES,
    columns=("id", "sender_id", "recipient_id", "group_id", "content", "type", "created_at"),
    embeds=(profile_embed("sender", "sender_id"),),
)


async def fetch_recent_messages(transport: Transport, *, limit: int) -> list[Message]:
    """Most recent messages, newest first."""
    query = _MESSAGE_QUERY.order_by("created_at", descending=True).take(limit)
    return [Message.model_validate(row) for row in await transport.select(query)]


async def fetch_message(transport: Transport, message_id: str) -> Message:
    rows = await transport.select(_MESSAGE_QUERY.eq("id", message_id).take(1))
    return Message.model_validate(first_row(rows, endpoint=TABLE_MESSAGES, what=f"message {message_id}"))


async def insert_message(
    transport: Transport,
    *,
    sender_id: str,
    content: str,
    kind: MessageKind = MessageKind.NORMAL,
    recipient_id: str | None = None,
    group_id: str | None = None,
) -> Message:
    row: dict[str, str] = {"sender_id": sender_id, "content": content, "type": kind.value}
    if recipient_id:
        row["recipient_id"] = recipient_id
    if group_id:
        row["group_id"] = group_id
    rows = await transport.insert(TABLE_MESSAGES, [row], returning=_MESSAGE_QUERY)
    return Message.model_validate(first_row(rows, endpoint=TABLE_MESSAGES, what="inserted message"))
