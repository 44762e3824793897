"""Pending-then-apply helper for writes with a local effect.

A local mutation is applied only after its server request has resolved
successfully; a failed request leaves local state exactly as it was.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

from parksafe.exceptions import ParkSafeError

T = TypeVar("T")


class PendingMutations:
    """Tracks in-flight writes by key (usually the row id)."""

    def __init__(self) -> None:
        self._pending: set[str] = set()

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    async def commit(
        self,
        key: str,
        request: Callable[[], Awaitable[T]],
        apply: Callable[[T], None],
    ) -> T:
        """Run *request*; on success call *apply* with its result.

        Exceptions from *request* propagate and *apply* is not called.
        """
        if key in self._pending:
            raise ParkSafeError(f"A write for {key} is already in flight")
        self._pending.add(key)
        try:
            result = await request()
        finally:
            self._pending.discard(key)
        apply(result)
        return result
