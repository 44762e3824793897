from __future__ import annotations

import asyncio
import copy
import itertools
import re
from collections import defaultdict
from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from parksafe._constants import AUTH_PREFIX, REST_PREFIX
from parksafe._query import Filter, FilterOp, Query
from parksafe._realtime import ChangeHandler, RejoinHandler
from parksafe._transport import map_error
from parksafe.config import ParkSafeConfig
from parksafe.exceptions import ParkSafeError
from parksafe.models._base import isoformat, parse_timestamp
from parksafe.models.location import LocationFix
from parksafe.models.ui import Toast
from parksafe.session import Session
from parksafe.state.events import ChangeEvent, ChangeKind
from parksafe.state.session import SessionStore

NOW = datetime(2026, 5, 1, 12, 0, 0, tzinfo=UTC)


def _sort_key(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return parse_timestamp(value)
        except ValueError:
            return value
    return value


def _same(left: Any, right: Any) -> bool:
    return left == right or (left is not None and right is not None and str(left) == str(right))


def _matches(row: Mapping[str, Any], flt: Filter) -> bool:
    value = row.get(flt.column)
    if flt.op == FilterOp.EQ:
        return _same(value, flt.value)
    if flt.op == FilterOp.NEQ:
        return not _same(value, flt.value)
    if flt.op == FilterOp.IN:
        return any(_same(value, candidate) for candidate in flt.value)
    if flt.op == FilterOp.IS:
        return value is None
    if flt.op == FilterOp.NOT_IS:
        return value is not None
    if flt.op in (FilterOp.GTE, FilterOp.LT):
        if value is None:
            return False
        left, right = _sort_key(value), flt.value
        if isinstance(right, datetime):
            left = parse_timestamp(value)
        return left >= right if flt.op == FilterOp.GTE else left < right
    if flt.op == FilterOp.ILIKE:
        pattern = ".*".join(re.escape(part) for part in str(flt.value).split("%"))
        return value is not None and re.fullmatch(pattern, str(value), flags=re.IGNORECASE) is not None
    raise AssertionError(f"Unsupported filter in fake backend: {flt}")


@dataclass
class FakeBackend:
    """In-memory stand-in for the REST and auth endpoints (implements ``Transport``)."""

    tables: dict[str, list[dict[str, Any]]] = field(default_factory=lambda: defaultdict(list))
    auth_users: dict[str, dict[str, Any]] = field(default_factory=dict)
    passwords: dict[str, str] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    failures: dict[tuple[str, str], list[ParkSafeError]] = field(default_factory=dict)
    expire_next: int = 0
    admin_listing_allowed: bool = False
    access_token: str | None = None
    refresh_tokens: dict[str, str] = field(default_factory=dict)
    access_tokens: dict[str, str] = field(default_factory=dict)
    holds: dict[str, asyncio.Event] = field(default_factory=dict)
    now: datetime = NOW
    _ids: Any = field(default_factory=lambda: itertools.count(1))
    _clock_ticks: Any = field(default_factory=lambda: itertools.count(1))

    # -- test helpers ---------------------------------------------------

    def fail_next(self, op: str, table: str, error: ParkSafeError | None = None, *, times: int = 1) -> None:
        error = error or map_error(f"{REST_PREFIX}/{table}", 500, {"code": "XX000", "message": "boom"})
        self.failures.setdefault((op, table), []).extend([error] * times)

    def hold_next_select(self, table: str) -> asyncio.Event:
        """The next select on *table* reads its rows, then waits for the returned event."""
        gate = asyncio.Event()
        self.holds[table] = gate
        return gate

    def count(self, op: str, table: str) -> int:
        return sum(1 for call in self.calls if call == (op, table))

    def next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def stamp(self) -> str:
        # Strictly increasing creation times.
        return isoformat(self.now + timedelta(milliseconds=next(self._clock_ticks)))

    def add_user(
        self,
        email: str,
        password: str = "secret-pw",
        *,
        is_admin: bool = False,
        full_name: str = "",
        profile: bool = True,
    ) -> dict[str, Any]:
        user = {
            "id": self.next_id("user"),
            "email": email,
            "user_metadata": {"is_admin": is_admin, "full_name": full_name},
            "identities": [{"provider": "email"}],
        }
        self.auth_users[email] = user
        self.passwords[email] = password
        if profile:
            self.tables["profiles"].append({"id": user["id"], "email": email, "full_name": full_name or None})
        return user

    def session_payload(self, user: Mapping[str, Any]) -> dict[str, Any]:
        n = next(self._ids)
        refresh = f"refresh-{n}"
        self.refresh_tokens[refresh] = str(user["email"])
        self.access_tokens[f"token-{n}"] = str(user["email"])
        return {
            "access_token": f"token-{n}",
            "refresh_token": refresh,
            "token_type": "bearer",
            "expires_in": 3600,
            "user": copy.deepcopy(dict(user)),
        }

    def seed(self, table: str, **row: Any) -> dict[str, Any]:
        row.setdefault("id", self.next_id(table))
        if table != "profiles":
            row.setdefault("created_at", self.stamp())
        self.tables[table].append(row)
        return row

    def place(self, user: Mapping[str, Any], lat: float, lng: float, *, age: timedelta) -> None:
        for row in self.tables["profiles"]:
            if row["id"] == user["id"]:
                row["location"] = {"lat": lat, "lng": lng}
                row["last_active"] = isoformat(self.now - age)
                return
        raise AssertionError(f"No profile for {user['id']}")

    def row(self, table: str, row_id: str) -> dict[str, Any] | None:
        return next((row for row in self.tables[table] if row.get("id") == row_id), None)

    # -- Transport --------------------------------------------------------

    def set_access_token(self, token: str | None) -> None:
        self.access_token = token

    def _enter(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        if self.expire_next > 0:
            self.expire_next -= 1
            raise map_error(f"{REST_PREFIX}/{table}", 401, {"code": "PGRST301", "message": "JWT expired"})
        pending = self.failures.get((op, table))
        if pending:
            raise pending.pop(0)

    def _project(self, row: Mapping[str, Any], query: Query) -> dict[str, Any]:
        if query.columns == ("*",):
            projected = copy.deepcopy(dict(row))
        else:
            projected = {column: copy.deepcopy(row.get(column)) for column in query.columns}
        for embed in query.embeds:
            target = self.row(embed.table, str(row.get(embed.foreign_key)))
            projected[embed.alias] = (
                {column: target.get(column) for column in embed.columns} if target is not None else None
            )
        return projected

    def _select_rows(self, query: Query) -> list[dict[str, Any]]:
        rows = [row for row in self.tables[query.table] if all(_matches(row, f) for f in query.filters)]
        if query.order is not None:
            column, descending = query.order
            rows.sort(key=lambda row: _sort_key(row.get(column)), reverse=descending)
        if query.limit is not None:
            rows = rows[: query.limit]
        return rows

    async def select(self, query: Query) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        self._enter("select", query.table)
        result = [self._project(row, query) for row in self._select_rows(query)]
        gate = self.holds.pop(query.table, None)
        if gate is not None:
            await gate.wait()
        return result

    async def insert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        returning: Query | None = None,
    ) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        self._enter("insert", table)
        stored = [self.seed(table, **copy.deepcopy(dict(row))) for row in rows]
        if returning is None:
            return []
        return [self._project(row, returning) for row in stored]

    async def update(self, query: Query, values: Mapping[str, Any]) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        self._enter("update", query.table)
        matched = self._select_rows(query)
        for row in matched:
            row.update(copy.deepcopy(dict(values)))
        return copy.deepcopy(matched)

    async def delete(self, query: Query) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        self._enter("delete", query.table)
        matched = self._select_rows(query)
        self.tables[query.table] = [row for row in self.tables[query.table] if row not in matched]
        return copy.deepcopy(matched)

    def _user_for_token(self) -> dict[str, Any]:
        email = self.access_tokens.get(self.access_token or "")
        if email is None:
            raise map_error(f"{AUTH_PREFIX}/user", 401, {"error_code": "bad_jwt", "msg": "invalid JWT"})
        return self.auth_users[email]

    async def auth(
        self,
        method: str,
        endpoint: str,
        *,
        payload: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        self.calls.append((method, f"{AUTH_PREFIX}{endpoint}"))
        body = dict(payload or {})
        params = dict(params or {})

        if endpoint == "/token" and params.get("grant_type") == "password":
            email = body.get("email", "")
            if self.passwords.get(email) != body.get("password"):
                raise map_error(
                    f"{AUTH_PREFIX}/token",
                    400,
                    {"error_code": "invalid_credentials", "msg": "Invalid login credentials"},
                )
            return self.session_payload(self.auth_users[email])

        if endpoint == "/token" and params.get("grant_type") == "refresh_token":
            owner = self.refresh_tokens.pop(str(body.get("refresh_token")), None)
            if owner is None:
                raise map_error(
                    f"{AUTH_PREFIX}/token",
                    400,
                    {"error_code": "refresh_token_not_found", "msg": "Invalid Refresh Token"},
                )
            return self.session_payload(self.auth_users[owner])

        if endpoint == "/signup":
            email = body["email"]
            if email in self.auth_users:
                existing = copy.deepcopy(self.auth_users[email])
                existing["identities"] = []
                return existing
            data = body.get("data", {})
            user = self.add_user(
                email,
                body["password"],
                is_admin=bool(data.get("is_admin")),
                full_name=data.get("full_name", ""),
                profile=False,
            )
            user["user_metadata"]["avatar_url"] = data.get("avatar_url")
            return self.session_payload(user)

        if endpoint == "/user" and method == "GET":
            return copy.deepcopy(self._user_for_token())

        if endpoint == "/user" and method == "PUT":
            user = self._user_for_token()
            user["user_metadata"].update(body.get("data", {}))
            return copy.deepcopy(user)

        if endpoint == "/logout":
            self.access_token = None
            return {}

        if endpoint == "/admin/users":
            if not self.admin_listing_allowed:
                raise map_error(
                    f"{AUTH_PREFIX}/admin/users",
                    403,
                    {"code": "not_admin", "message": "User not allowed"},
                )
            pattern = params.get("filter", "").removeprefix("email.ilike.")
            flt = Filter("email", FilterOp.ILIKE, pattern)
            users = [copy.deepcopy(user) for user in self.auth_users.values() if _matches(user, flt)]
            return {"users": users}

        raise AssertionError(f"Unexpected auth endpoint in fake backend: {method} {endpoint}")


@dataclass
class _FakeSubscription:
    channel: FakePushChannel
    table: str
    kinds: tuple[ChangeKind, ...]
    handler: ChangeHandler
    on_rejoin: RejoinHandler | None
    active: bool = True

    async def unsubscribe(self) -> None:
        self.active = False


@dataclass
class FakePushChannel:
    """Push channel double: tests decide when events and rejoins happen."""

    subscriptions: list[_FakeSubscription] = field(default_factory=list)

    async def subscribe(
        self,
        table: str,
        kinds: Iterable[ChangeKind],
        handler: ChangeHandler,
        *,
        on_rejoin: RejoinHandler | None = None,
    ) -> _FakeSubscription:
        subscription = _FakeSubscription(self, table, tuple(kinds), handler, on_rejoin)
        self.subscriptions.append(subscription)
        return subscription

    def active(self, table: str | None = None) -> list[_FakeSubscription]:
        return [sub for sub in self.subscriptions if sub.active and (table is None or sub.table == table)]

    async def emit(
        self,
        table: str,
        kind: ChangeKind,
        record: Mapping[str, Any] | None = None,
        old_record: Mapping[str, Any] | None = None,
    ) -> None:
        event = ChangeEvent(table=table, kind=kind, record=dict(record or {}), old_record=dict(old_record or {}))
        for sub in self.active(table):
            if any(wanted.matches(kind) for wanted in sub.kinds):
                await sub.handler(event)

    async def rejoin(self) -> None:
        for sub in self.active():
            if sub.on_rejoin is not None:
                await sub.on_rejoin()


@dataclass
class RecordingNotifier:
    toasts: list[Toast] = field(default_factory=list)

    def notify(self, toast: Toast) -> None:
        self.toasts.append(toast)

    @property
    def titles(self) -> list[str]:
        return [toast.title for toast in self.toasts]


class FakeGeolocation:
    """Geolocation provider fed by the test through :meth:`push`."""

    def __init__(self, initial: LocationFix | None = None, *, error: ParkSafeError | None = None) -> None:
        self.current = initial
        self.error = error
        self.one_shot_calls = 0
        self.high_accuracy: list[bool] = []
        self._queue: asyncio.Queue[LocationFix | ParkSafeError] = asyncio.Queue()

    async def current_position(self, *, high_accuracy: bool = True) -> LocationFix:
        self.one_shot_calls += 1
        self.high_accuracy.append(high_accuracy)
        if self.error is not None:
            raise self.error
        assert self.current is not None
        return self.current

    async def watch_position(self, *, high_accuracy: bool = True) -> AsyncIterator[LocationFix]:
        self.high_accuracy.append(high_accuracy)
        while True:
            item = await self._queue.get()
            if isinstance(item, ParkSafeError):
                raise item
            self.current = item
            yield item

    def push(self, item: LocationFix | ParkSafeError) -> None:
        self._queue.put_nowait(item)


async def settle(rounds: int = 10) -> None:
    """Let background tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def signed_in(backend: FakeBackend, user: Mapping[str, Any]) -> SessionStore:
    store = SessionStore()
    payload = backend.session_payload(user)
    backend.set_access_token(payload["access_token"])
    store.set(Session.model_validate(payload))
    return store


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def push() -> FakePushChannel:
    return FakePushChannel()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def config() -> ParkSafeConfig:
    return ParkSafeConfig(url="https://parksafe.example.supabase.co", anon_key="anon-key", realtime_enabled=False)
