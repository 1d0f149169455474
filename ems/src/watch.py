"""
Alert watcher: polls the EMS telemetry API and reports new alerts.

Every ``interval_s`` seconds (3 s by default, the dashboard's polling rate)
the watcher fetches the status snapshot and history for a site, pushes the
snapshot's alerts into an :class:`~ems.src.client.AlertFeed`, and reports
only alerts the feed has not seen before. A failed poll is logged and does
not stop the loop. SIGTERM/SIGINT set a shutdown event and the loop exits
after the current iteration.

Usage:
    python -m ems.src.watch --server http://localhost:3000 --site chiayi
    python -m ems.src.watch --server http://localhost:3000 --site xinying \
        --local-device-url http://192.168.1.50:8080

CHANGELOG:
- 2026-03-10: Initial creation (STORY-114)

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from collections.abc import Callable

import httpx

from ems.src.client import AlertFeed, DashboardClient
from ems.src.config import EmsSettings
from ems.src.logging_config import configure_logging
from ems.src.models import Alert, HistoryPoint, StatusSnapshot

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 3.0

AlertHandler = Callable[[Alert], None]
SnapshotHandler = Callable[[StatusSnapshot, list[HistoryPoint]], None]


# ---------------------------------------------------------------------------
# Single-iteration function (easily testable)
# ---------------------------------------------------------------------------


async def _poll_once(
    *,
    client: DashboardClient,
    site: str,
    feed: AlertFeed,
    on_alert: AlertHandler | None = None,
    on_snapshot: SnapshotHandler | None = None,
) -> list[Alert]:
    """Fetch status and history once and report new alerts.

    Catches HTTP errors so that the caller's loop is never broken.

    Returns:
        The alerts that were new in this iteration.
    """
    try:
        snapshot, history = await asyncio.gather(
            client.fetch_status(site),
            client.fetch_history(site),
        )
    except (httpx.HTTPError, ValueError):
        logger.error("Failed to fetch EMS data for site=%s", site, exc_info=True)
        return []

    if on_snapshot is not None:
        on_snapshot(snapshot, history)

    fresh = feed.push(snapshot.alerts)
    if on_alert is not None:
        for alert in fresh:
            on_alert(alert)
    return fresh


async def watch(
    *,
    client: DashboardClient,
    site: str,
    feed: AlertFeed,
    shutdown_event: asyncio.Event,
    interval_s: float = DEFAULT_INTERVAL_S,
    on_alert: AlertHandler | None = None,
    on_snapshot: SnapshotHandler | None = None,
) -> None:
    """Poll until shutdown_event is set.

    Args:
        client: Dashboard client used for both calls.
        site: Site key to watch.
        feed: Alert feed that de-duplicates alerts across polls.
        shutdown_event: Event to signal graceful shutdown.
        interval_s: Seconds between polls.
        on_alert: Called once for every new alert.
        on_snapshot: Called with every successful snapshot and history.
    """
    logger.info("Watching site=%s (interval=%ss)", site, interval_s)
    while not shutdown_event.is_set():
        await _poll_once(
            client=client,
            site=site,
            feed=feed,
            on_alert=on_alert,
            on_snapshot=on_snapshot,
        )
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval_s)
    logger.info("Watcher stopped")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def _print_alert(alert: Alert) -> None:
    print(f"[{alert.severity.upper():8}] {alert.time} {alert.message}")


def _print_snapshot(snapshot: StatusSnapshot, history: list[HistoryPoint]) -> None:
    print(
        f"{snapshot.site_name}: status={snapshot.system.status} "
        f"connection={snapshot.system.connection} soc={snapshot.battery.soc:.1f}% "
        f"p={snapshot.system.real_power_kw:.1f}kW history_points={len(history)}"
    )


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    logger.info("Received shutdown signal, stopping watcher")
    shutdown_event.set()


async def async_main(args: argparse.Namespace) -> None:
    """Async entrypoint: build the client and run the watcher."""
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: _handle_signal(shutdown_event))

    local_timeout_s = args.local_timeout
    if local_timeout_s is None:
        local_timeout_s = EmsSettings().local_timeout_s

    async with DashboardClient(
        args.server,
        local_device_url=args.local_device_url,
        local_timeout_s=local_timeout_s,
    ) as client:
        await watch(
            client=client,
            site=args.site,
            feed=AlertFeed(),
            shutdown_event=shutdown_event,
            interval_s=args.interval,
            on_alert=_print_alert,
            on_snapshot=_print_snapshot if args.verbose else None,
        )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(description="Watch an EMS site and print new alerts")
    p.add_argument("--server", default="http://localhost:3000", help="EMS API base URL")
    p.add_argument("--site", default="chiayi", help="Site key (default chiayi)")
    p.add_argument(
        "--local-device-url", default=None, dest="local_device_url",
        help="Device gateway on the local network, tried first for status"
    )
    p.add_argument(
        "--local-timeout", type=float, default=None, dest="local_timeout",
        help="Seconds allowed for the local device call (default LOCAL_TIMEOUT_S, 5)"
    )
    p.add_argument(
        "--interval", type=float, default=DEFAULT_INTERVAL_S,
        help="Seconds between polls (default 3)"
    )
    p.add_argument("--verbose", action="store_true", help="Print every snapshot")
    p.add_argument("--log-level", default="WARNING", dest="log_level")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Synchronous entrypoint."""
    args = parse_args(argv)
    configure_logging(args.log_level.upper())
    asyncio.run(async_main(args))


if __name__ == "__main__":
    main()
