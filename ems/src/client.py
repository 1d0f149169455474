"""
Dashboard-side client for the EMS telemetry API.

Mirrors what the dashboard frontend does on every polling interval:

- ``fetch_status`` first tries a direct call to a device gateway on the local
  network (when one is configured), bounded by ``local_timeout_s`` (5 s by
  default). Any failure falls back to the server's ``/status`` endpoint,
  which applies its own upstream-or-mock policy.
- ``fetch_history`` always goes through the server's ``/history`` endpoint.
- :class:`AlertFeed` keeps the most recent alerts, newest first, and drops
  alerts whose id it already holds, since the server re-derives alerts on
  every snapshot.

CHANGELOG:
- 2026-03-10: Initial creation (STORY-113)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

import httpx

from ems.src.models import Alert, HistoryPoint, StatusSnapshot
from ems.src.normalizer import normalize_status
from ems.src.sites import get_site_config

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_TIMEOUT_S = 5.0
DEFAULT_SERVER_TIMEOUT_S = 15.0
DEFAULT_FEED_SIZE = 10


class AlertFeed:
    """Bounded, de-duplicated list of recent alerts, newest first.

    Args:
        max_size: Number of alerts retained.
    """

    def __init__(self, max_size: int = DEFAULT_FEED_SIZE) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._max_size = max_size
        self._alerts: list[Alert] = []

    @property
    def alerts(self) -> list[Alert]:
        """Current alerts, newest first."""
        return list(self._alerts)

    def push(self, alerts: Iterable[Alert]) -> list[Alert]:
        """Add alerts not already in the feed.

        Args:
            alerts: Alerts from the latest snapshot.

        Returns:
            The alerts that were new, in the order given.
        """
        known = {alert.id for alert in self._alerts}
        fresh: list[Alert] = []
        for alert in alerts:
            if alert.id in known:
                continue
            known.add(alert.id)
            fresh.append(alert)
        if fresh:
            self._alerts = (fresh + self._alerts)[: self._max_size]
        return fresh


class DashboardClient:
    """Async client used by dashboards and the alert watcher.

    Args:
        server_url: Base URL of the EMS telemetry API.
        local_device_url: Optional base URL of a device gateway on the local
            network, tried first for status.
        local_timeout_s: Time bound for the direct local attempt.
        server_timeout_s: Timeout for calls to the EMS telemetry API.

    Usage::

        client = DashboardClient("http://localhost:3000")
        try:
            snapshot = await client.fetch_status("chiayi")
        finally:
            await client.close()
    """

    def __init__(
        self,
        server_url: str,
        *,
        local_device_url: str | None = None,
        local_timeout_s: float = DEFAULT_LOCAL_TIMEOUT_S,
        server_timeout_s: float = DEFAULT_SERVER_TIMEOUT_S,
    ) -> None:
        self._server_url = server_url.rstrip("/")
        self._local_device_url = local_device_url.rstrip("/") if local_device_url else None
        self._local_timeout_s = local_timeout_s
        self._server_timeout_s = server_timeout_s
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Accept": "application/json"},
                timeout=self._server_timeout_s,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> DashboardClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_status(self, site: str) -> StatusSnapshot:
        """Fetch a status snapshot, trying the local device gateway first.

        Raises:
            httpx.HTTPError: If the server call fails. Local-network
                failures are never raised; they only trigger the fallback.
        """
        if self._local_device_url:
            try:
                payload = await self._get_local(f"{self._local_device_url}/status")
            except (TimeoutError, httpx.HTTPError, ValueError) as exc:
                logger.info(
                    "Local device call failed for site=%s (%s), falling back to server",
                    site,
                    exc.__class__.__name__,
                )
            else:
                config = get_site_config(site)
                return normalize_status(
                    payload,
                    site=site,
                    site_name=config.display_name,
                    device_id="local",
                    now=datetime.now(tz=UTC),
                )

        payload = await self._get_server("/status", {"site": site})
        return StatusSnapshot.model_validate(payload)

    async def fetch_history(
        self,
        site: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[HistoryPoint]:
        """Fetch a history series from the server.

        Raises:
            httpx.HTTPError: If the server call fails.
        """
        params = {"site": site}
        if start is not None:
            params["start"] = start.isoformat()
        if end is not None:
            params["end"] = end.isoformat()
        payload = await self._get_server("/history", params)
        return [HistoryPoint.model_validate(item) for item in payload]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_local(self, url: str) -> Any:
        client = await self._get_client()
        response = await asyncio.wait_for(
            client.get(url, timeout=self._local_timeout_s),
            timeout=self._local_timeout_s,
        )
        response.raise_for_status()
        return response.json()

    async def _get_server(self, path: str, params: dict[str, str]) -> Any:
        client = await self._get_client()
        response = await client.get(f"{self._server_url}{path}", params=params)
        response.raise_for_status()
        return response.json()
