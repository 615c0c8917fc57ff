#!/usr/bin/env python3
"""Console watcher for a ranch's live tracking dashboard.

This script uses rangeherd to:
1) restore a session from a bearer token,
2) load the device list and the latest points,
3) follow the live stream and print status changes, alerts and a
   per-device summary table.

Use this to check stream health and motion classification without the web UI.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from rangeherd import (  # noqa: E402
    AlertRecord,
    ConnectionStatus,
    DashboardView,
    HerdConfig,
    HerdDashboard,
    HerdError,
    Session,
)

_LOG = logging.getLogger("herd_watch")


@dataclass
class WatchStats:
    started_at: float
    views: int = 0
    alerts: int = 0
    status_changes: int = 0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Follow the live cattle-tracking stream from the console.",
    )
    parser.add_argument(
        "--token",
        default=os.environ.get("RANGEHERD_TOKEN"),
        help="Bearer token (default: $RANGEHERD_TOKEN).",
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Backend base URL (default: $RANGEHERD_API_URL).",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--summary-seconds",
        type=int,
        default=30,
        help="Print the device table each N seconds.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _format_ms(value: int | None) -> str:
    if not value:
        return "-"
    return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(value / 1000))


def _print_view(view: DashboardView) -> None:
    lat, lon = view.map_center
    print(f"[watch] stream={view.connection_status} load={view.load_status} center={lat:.5f},{lon:.5f}")
    for row in view.summaries:
        position = "no fix" if row.position is None else f"{row.lat:.5f},{row.lon:.5f}"
        battery = "-" if row.battery_pct is None else f"{row.battery_pct:.0f}%"
        print(
            f"[watch]   {row.label:<24} {row.motion:<10} {position:<22} "
            f"battery={battery:<5} last={_format_ms(row.last_seen_ms)} points={row.point_count}",
        )


async def _watch(args: argparse.Namespace) -> int:
    overrides = {"api_url": args.api_url} if args.api_url else {}
    config = HerdConfig.from_env(**overrides)
    session = Session.restore(args.token)

    stats = WatchStats(started_at=time.time())
    latest: list[DashboardView] = []
    stop = asyncio.Event()

    def on_change(view: DashboardView) -> None:
        stats.views += 1
        latest[:] = [view]

    def on_status(status: ConnectionStatus) -> None:
        stats.status_changes += 1
        print(f"[watch] stream status: {status}")

    def on_alert(alert: AlertRecord) -> None:
        stats.alerts += 1
        who = alert.device_name or alert.device_id or "?"
        fence = alert.geofence_name or alert.geofence_id or "?"
        print(f"[watch] ALERT {alert.badge} {who} @ {fence}: {alert.message}")

    def on_logout() -> None:
        print("[watch] Session token rejected; stopping.", file=sys.stderr)
        stop.set()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    async with HerdDashboard(
        config,
        session,
        on_change=on_change,
        on_alert=on_alert,
        on_status=on_status,
        on_logout=on_logout,
    ) as dashboard:
        await dashboard.start()
        _print_view(dashboard.view())

        while not stop.is_set():
            timeout = args.summary_seconds if args.summary_seconds > 0 else None
            if args.duration > 0:
                remaining = args.duration - (time.time() - stats.started_at)
                if remaining <= 0:
                    print(f"[watch] Reached --duration={args.duration}s, stopping.")
                    break
                timeout = remaining if timeout is None else min(timeout, remaining)
            try:
                await asyncio.wait_for(stop.wait(), timeout=timeout)
            except TimeoutError:
                if latest:
                    _print_view(latest[0])

    runtime = time.time() - stats.started_at
    print("[watch] Summary")
    print(f"[watch]   runtime_s      : {runtime:.1f}")
    print(f"[watch]   views          : {stats.views}")
    print(f"[watch]   alerts         : {stats.alerts}")
    print(f"[watch]   status_changes : {stats.status_changes}")
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_watch(args))
    except HerdError as exc:  # pragma: no cover - network/system interaction
        print(f"[watch] Failed: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(_main())
