"""Internal push-channel runtime: websocket transport, frame parsing, dispatch."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp

from parksafe._constants import REALTIME_PATH, REALTIME_SCHEMA, REALTIME_VSN
from parksafe.config import ParkSafeConfig
from parksafe.state.events import ChangeEvent, ChangeKind

ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]
RejoinHandler = Callable[[], Awaitable[None]]


class Subscription(Protocol):
    async def unsubscribe(self) -> None: ...


class PushChannel(Protocol):
    """Structural interface of the push channel consumed by synchronizers."""

    async def subscribe(
        self,
        table: str,
        kinds: Iterable[ChangeKind],
        handler: ChangeHandler,
        *,
        on_rejoin: RejoinHandler | None = None,
    ) -> Subscription: ...


def parse_change_frame(frame: dict[str, Any]) -> ChangeEvent | None:
    """Convert a ``postgres_changes`` frame into a :class:`ChangeEvent`.

    Returns ``None`` for every other frame type and for malformed payloads.
    """
    if frame.get("event") != "postgres_changes":
        return None
    payload = frame.get("payload")
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        return None
    kind_value = str(data.get("type") or data.get("eventType") or "").upper()
    try:
        kind = ChangeKind(kind_value)
    except ValueError:
        return None
    table = data.get("table")
    if not isinstance(table, str) or not table:
        return None
    record = data.get("record")
    old_record = data.get("old_record")
    return ChangeEvent(
        table=table,
        kind=kind,
        record=record if isinstance(record, dict) else {},
        old_record=old_record if isinstance(old_record, dict) else {},
        commit_timestamp=data.get("commit_timestamp"),
    )


@dataclass
class _Channel:
    topic: str
    table: str
    kinds: tuple[ChangeKind, ...]
    handler: ChangeHandler
    on_rejoin: RejoinHandler | None = None
    joined: bool = False

    def join_payload(self, access_token: str | None) -> dict[str, Any]:
        changes = [{"event": kind.value, "schema": REALTIME_SCHEMA, "table": self.table} for kind in self.kinds]
        payload: dict[str, Any] = {"config": {"postgres_changes": changes}}
        if access_token:
            payload["access_token"] = access_token
        return payload

    def accepts(self, event: ChangeEvent) -> bool:
        return event.table == self.table and any(kind.matches(event.kind) for kind in self.kinds)


@dataclass
class _RuntimeSubscription:
    runtime: RealtimeRuntime
    topic: str
    _closed: bool = field(default=False, init=False)

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.runtime._leave(self.topic)  # noqa: SLF001


class RealtimeRuntime:
    """Websocket push-channel client that dispatches change events on the event loop.

    Channels registered before :meth:`start` (or while disconnected) are
    joined on connect. A dropped connection is re-established after a fixed
    delay and every channel is re-joined; ``on_rejoin`` hooks then let
    delta-driven consumers catch up on what they missed.
    """

    def __init__(
        self,
        config: ParkSafeConfig,
        http_session: aiohttp.ClientSession,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._logger = logger or logging.getLogger(__name__)
        self._access_token: str | None = None
        self._channels: dict[str, _Channel] = {}
        self._refs = itertools.count(1)
        self._topic_ids = itertools.count(1)
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    @property
    def url(self) -> str:
        return f"{self._config.realtime_url}{REALTIME_PATH}?apikey={self._config.anon_key}&vsn={REALTIME_VSN}"

    async def set_access_token(self, token: str | None) -> None:
        """Remember *token* for future joins and push it to joined channels."""
        self._access_token = token
        if token is None or not self.is_connected:
            return
        for channel in self._channels.values():
            if channel.joined:
                await self._send(channel.topic, "access_token", {"access_token": token})

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run(), name="parksafe-realtime")
        self._logger.debug("Realtime runtime started")

    async def stop(self) -> None:
        self._running = False
        task = self._task
        self._task = None
        ws = self._ws
        if ws is not None and not ws.closed:
            await ws.close()
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._channels.clear()
        self._logger.debug("Realtime runtime stopped")

    async def subscribe(
        self,
        table: str,
        kinds: Iterable[ChangeKind],
        handler: ChangeHandler,
        *,
        on_rejoin: RejoinHandler | None = None,
    ) -> Subscription:
        topic = f"realtime:parksafe-{table}-{next(self._topic_ids)}"
        channel = _Channel(
            topic=topic,
            table=table,
            kinds=tuple(kinds) or (ChangeKind.ANY,),
            handler=handler,
            on_rejoin=on_rejoin,
        )
        self._channels[topic] = channel
        if self.is_connected:
            await self._join(channel)
        return _RuntimeSubscription(self, topic)

    async def _leave(self, topic: str) -> None:
        channel = self._channels.pop(topic, None)
        if channel is not None and channel.joined and self.is_connected:
            await self._send(topic, "phx_leave", {})

    async def _send(self, topic: str, event: str, payload: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            return
        frame = {"topic": topic, "event": event, "payload": payload, "ref": str(next(self._refs))}
        try:
            await ws.send_str(json.dumps(frame))
        except (aiohttp.ClientError, ConnectionResetError):
            self._logger.debug("Realtime send failed topic=%s event=%s", topic, event, exc_info=True)

    async def _join(self, channel: _Channel) -> None:
        await self._send(channel.topic, "phx_join", channel.join_payload(self._access_token))
        channel.joined = True
        self._logger.debug("Realtime joined topic=%s table=%s kinds=%s", channel.topic, channel.table, channel.kinds)

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self._config.realtime_heartbeat_interval)
            await self._send("phoenix", "heartbeat", {})

    async def _run(self) -> None:
        connected_before = False
        while self._running:
            try:
                async with self._http.ws_connect(self.url) as ws:
                    self._ws = ws
                    for channel in list(self._channels.values()):
                        channel.joined = False
                        await self._join(channel)
                    if connected_before:
                        await self._notify_rejoin()
                    connected_before = True
                    heartbeat = asyncio.create_task(self._heartbeat())
                    try:
                        async for msg in ws:
                            if msg.type == aiohttp.WSMsgType.TEXT:
                                await self._handle_text(msg.data)
                            elif msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED):
                                break
                    finally:
                        heartbeat.cancel()
                        with contextlib.suppress(asyncio.CancelledError):
                            await heartbeat
                        self._ws = None
            except (aiohttp.ClientError, OSError):
                self._logger.debug("Realtime connection failed", exc_info=True)
            if self._running:
                self._logger.debug("Realtime reconnecting in %.1fs", self._config.realtime_reconnect_delay)
                await asyncio.sleep(self._config.realtime_reconnect_delay)

    async def _notify_rejoin(self) -> None:
        for channel in list(self._channels.values()):
            if channel.on_rejoin is None:
                continue
            try:
                await channel.on_rejoin()
            except Exception:
                self._logger.debug("Realtime rejoin hook failed topic=%s", channel.topic, exc_info=True)

    async def _handle_text(self, text: str) -> None:
        try:
            frame = json.loads(text)
        except json.JSONDecodeError:
            self._logger.debug("Realtime frame is not JSON: %s", text[:128])
            return
        if not isinstance(frame, dict):
            return

        if frame.get("event") == "phx_reply":
            payload = frame.get("payload")
            if isinstance(payload, dict) and payload.get("status") == "error":
                self._logger.warning("Realtime join rejected topic=%s response=%s", frame.get("topic"), payload)
            return

        event = parse_change_frame(frame)
        if event is None:
            return
        channel = self._channels.get(str(frame.get("topic")))
        if channel is None or not channel.accepts(event):
            return
        try:
            await channel.handler(event)
        except Exception:
            self._logger.debug("Realtime handler failed topic=%s", channel.topic, exc_info=True)
