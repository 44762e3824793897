"""Lifecycle shared by every synchronizer.

Owns:
- periodic loops (poll ticks, fallback re-pushes)
- push-channel subscriptions
- teardown of both on :meth:`Synchronizer.stop`
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Coroutine, Iterable
from types import TracebackType
from typing import Any

from parksafe._realtime import ChangeHandler, PushChannel, RejoinHandler, Subscription
from parksafe.state.events import ChangeKind

_logger = logging.getLogger(__name__)

LifecycleListener = Callable[["Synchronizer", bool], None]


class Synchronizer:
    """Base class: ``start()`` wires triggers, ``stop()`` tears all of them down."""

    def __init__(self, *, push: PushChannel | None = None, logger: logging.Logger | None = None) -> None:
        self._push = push
        self._logger = logger or _logger
        self._tasks: list[asyncio.Task[None]] = []
        self._subscriptions: list[Subscription] = []
        self._running = False
        self._lifecycle_listeners: list[LifecycleListener] = []

    @property
    def running(self) -> bool:
        return self._running

    def add_lifecycle_listener(self, listener: LifecycleListener) -> None:
        """Call *listener* with ``True`` on every start and ``False`` on every stop."""
        self._lifecycle_listeners.append(listener)

    def _emit_lifecycle(self, running: bool) -> None:
        for listener in list(self._lifecycle_listeners):
            try:
                listener(self, running)
            except Exception:
                self._logger.debug("Lifecycle listener failed", exc_info=True)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._emit_lifecycle(True)
        try:
            await self._on_start()
        except BaseException:
            await self.stop()
            raise

    async def stop(self) -> None:
        self._running = False
        await self._teardown()
        self._emit_lifecycle(False)

    async def __aenter__(self) -> Synchronizer:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def _on_start(self) -> None:
        raise NotImplementedError

    def _every(self, interval: float, tick: Callable[[], Awaitable[object]], *, name: str) -> None:
        """Run *tick* every *interval* seconds until teardown.

        The first run happens one interval after the call. A failing tick is
        logged and the loop carries on.
        """

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval)
                try:
                    await tick()
                except Exception:
                    self._logger.debug("Periodic task %s failed", name, exc_info=True)

        self._spawn(_loop(), name=name)

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro, name=f"parksafe-{name}")
        self._tasks.append(task)
        return task

    async def _subscribe(
        self,
        table: str,
        kinds: Iterable[ChangeKind],
        handler: ChangeHandler,
        *,
        on_rejoin: RejoinHandler | None = None,
    ) -> None:
        if self._push is None:
            return
        subscription = await self._push.subscribe(table, kinds, handler, on_rejoin=on_rejoin)
        self._subscriptions.append(subscription)

    async def _teardown(self) -> None:
        """Unsubscribe and cancel loops; the calling task itself is never awaited."""
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                await subscription.unsubscribe()
            except Exception:
                self._logger.debug("Unsubscribe failed", exc_info=True)

        tasks, self._tasks = self._tasks, []
        current = asyncio.current_task()
        for task in tasks:
            task.cancel()
        for task in tasks:
            if task is current:
                continue
            with contextlib.suppress(asyncio.CancelledError):
                await task
