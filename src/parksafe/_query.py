"""Immutable description of a table read, rendered to PostgREST parameters.

Endpoint modules build :class:`Query` values; the transport renders them.
Keeping the query structural (instead of pre-rendered strings) lets test
doubles evaluate the same filters against in-memory rows.
"""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from parksafe.models._base import isoformat


class FilterOp(enum.StrEnum):
    EQ = "eq"
    NEQ = "neq"
    GTE = "gte"
    LT = "lt"
    IN = "in"
    IS = "is"
    NOT_IS = "not.is"
    ILIKE = "ilike"


def _render_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return isoformat(value)
    return str(value)


@dataclasses.dataclass(frozen=True)
class Filter:
    column: str
    op: FilterOp
    value: Any = None

    def render(self) -> str:
        if self.op == FilterOp.IN:
            items = ",".join(f'"{_render_value(v)}"' for v in self.value)
            return f"in.({items})"
        return f"{self.op.value}.{_render_value(self.value)}"


@dataclasses.dataclass(frozen=True)
class Embed:
    """A to-one relationship resolved by the backend, e.g. a message's sender."""

    alias: str
    table: str
    foreign_key: str
    columns: tuple[str, ...]

    def render(self) -> str:
        return f"{self.alias}:{self.table}!{self.foreign_key}({','.join(self.columns)})"


@dataclasses.dataclass(frozen=True)
class Query:
    table: str
    columns: tuple[str, ...] = ("*",)
    embeds: tuple[Embed, ...] = ()
    filters: tuple[Filter, ...] = ()
    order: tuple[str, bool] | None = None
    """``(column, descending)``."""
    limit: int | None = None

    def where(self, column: str, op: FilterOp, value: Any = None) -> Query:
        return dataclasses.replace(self, filters=(*self.filters, Filter(column, op, value)))

    def eq(self, column: str, value: Any) -> Query:
        return self.where(column, FilterOp.EQ, value)

    def in_(self, column: str, values: Iterable[Any]) -> Query:
        return self.where(column, FilterOp.IN, tuple(values))

    def order_by(self, column: str, *, descending: bool = False) -> Query:
        return dataclasses.replace(self, order=(column, descending))

    def take(self, limit: int) -> Query:
        return dataclasses.replace(self, limit=limit)

    def select_param(self) -> str:
        return ",".join([*self.columns, *(embed.render() for embed in self.embeds)])

    def to_params(self, *, include_select: bool = True) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = []
        if include_select:
            params.append(("select", self.select_param()))
        params.extend((f.column, f.render()) for f in self.filters)
        if self.order is not None:
            column, descending = self.order
            params.append(("order", f"{column}.{'desc' if descending else 'asc'}"))
        if self.limit is not None:
            params.append(("limit", str(self.limit)))
        return params
