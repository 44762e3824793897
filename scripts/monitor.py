#!/usr/bin/env python3
"""Watch active users and emergency alerts from the terminal.

This script signs in, runs the monitor dashboard (every active user but
you, plus the active alert list) against a console map surface, and
prints the active-user table whenever it changes.

Usage
-----
Set environment variables and run::

    export PARKSAFE_URL="https://<project>.supabase.co"
    export PARKSAFE_ANON_KEY="<anon key>"
    export PARKSAFE_EMAIL="you@example.com"
    export PARKSAFE_PASSWORD="your-password"
    python scripts/monitor.py

Options::

    --broadcast TEXT     Send an emergency broadcast first (admins only)
    --duration SECONDS   Stop after this many seconds (default: run until Ctrl-C)
    --once               Print one snapshot and exit
    --json               Print snapshots as JSON lines
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from parksafe import ParkSafeClient, ParkSafeConfig, ParkSafeError  # noqa: E402
from parksafe.models import ActiveUser, Alert  # noqa: E402
from parksafe.sync.alerts import alert_location  # noqa: E402
from parksafe.sync.map import Marker, MarkerHandle  # noqa: E402


class ConsoleMapSurface:
    """Map surface that reports marker changes on stderr."""

    def __init__(self, *, quiet: bool = False) -> None:
        self._quiet = quiet

    def _log(self, text: str) -> None:
        if not self._quiet:
            print(text, file=sys.stderr)

    def create_marker(self, user_id: str, lat: float, lng: float, popup: str) -> Marker:
        self._log(f"+ {popup.splitlines()[0]} at {lat:.5f},{lng:.5f}")
        return _ConsoleMarker(self, user_id=user_id, lat=lat, lng=lng, popup=popup)

    def remove_marker(self, handle: MarkerHandle) -> None:
        if isinstance(handle, Marker):
            self._log(f"- {handle.popup.splitlines()[0]}")


class _ConsoleMarker(Marker):
    def __init__(self, surface: ConsoleMapSurface, **fields: Any) -> None:
        super().__init__(**fields)
        self._surface = surface

    def move(self, lat: float, lng: float, popup: str) -> None:
        if (lat, lng) != (self.lat, self.lng):
            self._surface._log(f"~ {popup.splitlines()[0]} moved to {lat:.5f},{lng:.5f}")  # noqa: SLF001
        super().move(lat, lng, popup)


def _section(title: str) -> str:
    return f"\n{'=' * 60}\n  {title}\n{'=' * 60}"


def _format_users(users: list[ActiveUser]) -> str:
    lines = [_section(f"ACTIVE USERS ({len(users)})")]
    for user in users:
        lines.append(f"  {user.display_name:<32} {user.lat:>10.5f} {user.lng:>11.5f}  {user.last_active:%H:%M:%S}")
    return "\n".join(lines)


def _format_alerts(alerts: list[Alert]) -> str:
    lines = [_section(f"ACTIVE ALERTS ({len(alerts)})")]
    for alert in alerts:
        where = alert_location(alert)
        position = f" at {where.get('lat')},{where.get('lng')}" if where else ""
        stamp = f"{alert.created_at:%H:%M:%S}" if alert.created_at else "--:--:--"
        lines.append(f"  [{stamp}] {alert.kind.value:<9} {alert.display_text}{position}")
    return "\n".join(lines)


def _snapshot_json(users: list[ActiveUser], alerts: list[Alert]) -> str:
    return json.dumps(
        {
            "active_users": [user.model_dump(mode="json", exclude={"raw"}) for user in users],
            "alerts": [alert.model_dump(mode="json", exclude={"raw"}) for alert in alerts],
        },
        default=str,
        ensure_ascii=False,
    )


async def _run(args: argparse.Namespace) -> int:
    email = args.email or os.environ.get("PARKSAFE_EMAIL")
    password = args.password or os.environ.get("PARKSAFE_PASSWORD")
    if not email or not password:
        print("Set PARKSAFE_EMAIL and PARKSAFE_PASSWORD (or pass --email/--password)", file=sys.stderr)
        return 2

    config = ParkSafeConfig.from_env()
    async with ParkSafeClient(config) as client:
        try:
            user = await client.sign_in(email, password)
        except (ParkSafeError, ValueError) as exc:
            print(f"Sign-in failed: {exc}", file=sys.stderr)
            return 1
        print(f"Signed in as {user.display_name} (admin={user.is_admin})", file=sys.stderr)

        if args.broadcast:
            try:
                message, alert = await client.broadcast(args.broadcast)
            except (ParkSafeError, ValueError) as exc:
                print(f"Broadcast failed: {exc}", file=sys.stderr)
                return 1
            print(f"Broadcast sent: message={message.id} alert={alert.id}", file=sys.stderr)

        dashboard = client.monitor_dashboard(ConsoleMapSurface(quiet=args.json_mode))

        def _print_snapshot(*_: Any) -> None:
            users = dashboard.presence.active_users
            alerts = dashboard.alerts.alerts
            if args.json_mode:
                print(_snapshot_json(users, alerts), flush=True)
            else:
                print(_format_users(users))
                print(_format_alerts(alerts), flush=True)

        async with dashboard:
            if args.once:
                _print_snapshot()
                return 0
            dashboard.presence.subscribe(_print_snapshot)
            dashboard.alerts.subscribe(_print_snapshot)
            _print_snapshot()
            with contextlib.suppress(asyncio.CancelledError):
                if args.duration is not None:
                    await asyncio.sleep(args.duration)
                else:
                    await asyncio.Event().wait()
        await client.sign_out()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Monitor active ParkSafe users and emergency alerts.")
    parser.add_argument("--email", help="Account email (default: $PARKSAFE_EMAIL)")
    parser.add_argument("--password", help="Account password (default: $PARKSAFE_PASSWORD)")
    parser.add_argument("--broadcast", metavar="TEXT", help="Send an emergency broadcast first (admins only)")
    parser.add_argument("--duration", type=float, help="Stop after SECONDS (default: run until Ctrl-C)")
    parser.add_argument("--once", action="store_true", help="Print one snapshot and exit")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Print snapshots as JSON lines")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
