"""Pure reconciliation functions.

Every synchronizer reduces its inputs (poll snapshots and push deltas) with
these functions. They hold no state and perform no I/O, so any interleaving
of poll and push results converges on the same output for the same inputs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from parksafe.models.alert import Alert
from parksafe.models.message import Message
from parksafe.models.user import ActiveUser, Profile

_T = TypeVar("_T", Alert, Message)

_EPOCH = datetime.min.replace(tzinfo=UTC)
_FAR_FUTURE = datetime.max.replace(tzinfo=UTC)


def is_fresh(last_active: datetime, *, now: datetime, window: timedelta) -> bool:
    """Inclusive cutoff: a fix exactly *window* old is still fresh."""
    return last_active >= now - window


def presence_snapshot(
    profiles: Iterable[Profile],
    *,
    now: datetime,
    window: timedelta,
) -> dict[str, ActiveUser]:
    """Active users keyed by id, dropping profiles without a usable fresh fix."""
    snapshot: dict[str, ActiveUser] = {}
    for profile in profiles:
        entry = ActiveUser.from_profile(profile)
        if entry is None or not is_fresh(entry.last_active, now=now, window=window):
            continue
        snapshot[entry.id] = entry
    return snapshot


@dataclass(frozen=True)
class PresencePlan:
    """Marker operations turning the current key set into a snapshot."""

    remove: tuple[str, ...] = ()
    create: tuple[ActiveUser, ...] = ()
    update: tuple[ActiveUser, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.remove or self.create or self.update)


def plan_presence(current: Iterable[str], snapshot: Mapping[str, ActiveUser]) -> PresencePlan:
    current_keys = set(current)
    remove = tuple(sorted(current_keys - snapshot.keys()))
    create = tuple(entry for key, entry in snapshot.items() if key not in current_keys)
    update = tuple(entry for key, entry in snapshot.items() if key in current_keys)
    return PresencePlan(remove=remove, create=create, update=update)


def _dedup_newest_first(items: Iterable[_T], *, missing_ts: datetime) -> list[_T]:
    # Later occurrences of an id replace earlier ones.
    by_id: dict[str, _T] = {}
    for item in items:
        by_id[item.id] = item
    return sorted(
        by_id.values(),
        key=lambda item: item.created_at or missing_ts,
        reverse=True,
    )


def merge_messages(existing: Sequence[Message], incoming: Iterable[Message]) -> list[Message]:
    """Merge a delta or page into a newest-first message list, unique by id.

    A message without a timestamp sorts as newest, matching a prepend.
    """
    return _dedup_newest_first([*existing, *incoming], missing_ts=_FAR_FUTURE)


def merge_alerts(existing: Sequence[Alert], incoming: Iterable[Alert], *, limit: int | None) -> list[Alert]:
    """Merge alerts newest first, unique by id, active only, capped at *limit*."""
    merged = [alert for alert in _dedup_newest_first([*existing, *incoming], missing_ts=_EPOCH) if alert.is_active]
    if limit is not None:
        del merged[limit:]
    return merged


def without_id(items: Sequence[_T], item_id: str) -> list[_T]:
    return [item for item in items if item.id != item_id]
