"""Emergency alert endpoints."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from parksafe._api._common import first_row
from parksafe._constants import TABLE_ALERTS
from parksafe._query import Query
from parksafe._transport import Transport
from parksafe.models.alert import Alert, AlertKind, AlertStatus


async def fetch_active_alerts(transport: Transport, *, limit: int | None = None) -> list[Alert]:
    """Active alerts, newest first; unbounded when *limit* is ``None``."""
    query = Query(TABLE_ALERTS).eq("status", AlertStatus.ACTIVE.value).order_by("created_at", descending=True)
    if limit is not None:
        query = query.take(limit)
    return [Alert.model_validate(row) for row in await transport.select(query)]


async def insert_alert(
    transport: Transport,
    *,
    user_id: str,
    kind: AlertKind,
    message: str = "",
    metadata: Mapping[str, Any] | None = None,
    location: Mapping[str, Any] | None = None,
) -> Alert:
    row: dict[str, Any] = {
        "user_id": user_id,
        "type": kind.value,
        "status": AlertStatus.ACTIVE.value,
    }
    if message:
        row["message"] = message
    if metadata is not None:
        row["metadata"] = dict(metadata)
    if location is not None:
        row["location"] = dict(location)
    rows = await transport.insert(TABLE_ALERTS, [row], returning=Query(TABLE_ALERTS))
    return Alert.model_validate(first_row(rows, endpoint=TABLE_ALERTS, what="inserted alert"))


async def set_alert_status(transport: Transport, alert_id: str, status: AlertStatus) -> None:
    await transport.update(Query(TABLE_ALERTS).eq("id", alert_id), {"status": status.value})


async def delete_alert(transport: Transport, alert_id: str) -> None:
    await transport.delete(Query(TABLE_ALERTS).eq("id", alert_id))
