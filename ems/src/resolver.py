"""
Telemetry source resolver: upstream device API first, mock data as fallback.

For every request the resolver decides where telemetry comes from:

1. Upstream not configured (no base URL/API key, placeholder key, private or
   loopback host, or no device id for the site): mock data, logged at INFO.
2. Upstream timed out or unreachable: mock data, logged at WARNING.
3. Upstream answered with an error: mock data for status, an *empty* list
   for history, logged at ERROR. A configured deployment with no history
   shows nothing rather than fabricated points.
4. Upstream answered: payload normalized into the canonical schema.

The resolver never raises an upstream failure to its caller. A mock snapshot
served because a configured upstream failed is marked
``system.connection = "offline"`` so the outage stays visible in the payload.

CHANGELOG:
- 2026-03-08: Mark fallback snapshots offline after a configured upstream fails
- 2026-03-07: Empty history (not mock) on upstream HTTP errors
- 2026-03-06: Initial creation (STORY-110)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime

from ems.src.config import EmsSettings
from ems.src.mock_generator import MockGenerator, resolve_window
from ems.src.models import HistoryPoint, StatusSnapshot
from ems.src.normalizer import normalize_history, normalize_status
from ems.src.upstream import (
    DEFAULT_TIMEOUT_S,
    UpstreamClient,
    UpstreamHTTPError,
    UpstreamNotConfigured,
    UpstreamTimeout,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)


class TelemetryResolver:
    """Resolves status and history for a site from upstream or mock data.

    Args:
        base_url: Upstream base URL; empty means not configured.
        api_key: Upstream API key.
        site_devices: Mapping of site key -> upstream device id.
        generator: Mock generator used for every fallback.
        timeout_s: Time bound for each upstream fetch.
    """

    def __init__(
        self,
        *,
        base_url: str = "",
        api_key: str = "",
        site_devices: Mapping[str, str] | None = None,
        generator: MockGenerator | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._site_devices = dict(site_devices or {})
        self._generator = generator if generator is not None else MockGenerator()
        self._client: UpstreamClient | None = None
        self._unconfigured_reason: str | None = None
        try:
            self._client = UpstreamClient(base_url, api_key, timeout_s=timeout_s)
        except UpstreamNotConfigured as exc:
            self._unconfigured_reason = str(exc)

    @classmethod
    def from_settings(
        cls,
        settings: EmsSettings,
        generator: MockGenerator | None = None,
    ) -> TelemetryResolver:
        """Build a resolver from :class:`EmsSettings`."""
        return cls(
            base_url=settings.ems_api_base_url,
            api_key=settings.ems_api_key,
            site_devices=settings.site_devices,
            generator=generator,
            timeout_s=settings.upstream_timeout_s,
        )

    @property
    def upstream_configured(self) -> bool:
        """Whether base URL and API key are usable (device ids aside)."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_status(self, site: str | None) -> StatusSnapshot:
        """Return the best available status snapshot for *site*.

        Never raises for upstream failures; see the module docstring for
        the fallback policy.
        """
        site_key = _site_key(site)
        config = self._generator.site_config(site_key)

        try:
            client, device_id = self._upstream_for(site_key)
            payload = await client.fetch_status(device_id)
        except UpstreamNotConfigured as exc:
            logger.info("Upstream not configured (%s), serving mock status for site=%s", exc, site_key)
            return self._generator.generate_status(site_key)
        except UpstreamTimeout as exc:
            logger.warning(
                "Upstream status timed out for site=%s (%s), serving mock status",
                site_key,
                exc,
            )
            return self._offline_status(site_key)
        except UpstreamUnavailable as exc:
            logger.warning("Upstream unreachable for site=%s (%s), serving mock status", site_key, exc)
            return self._offline_status(site_key)
        except UpstreamHTTPError as exc:
            logger.error(
                "Upstream status failed (HTTP %d) for site=%s: %s, serving mock status",
                exc.status_code,
                site_key,
                exc,
            )
            return self._offline_status(site_key)

        try:
            return normalize_status(
                payload,
                site=site_key,
                site_name=config.display_name,
                device_id=device_id,
                now=datetime.now(tz=UTC),
            )
        except ValueError:
            logger.error(
                "Upstream status payload for site=%s could not be normalized, serving mock status",
                site_key,
                exc_info=True,
            )
            return self._offline_status(site_key)

    async def get_history(
        self,
        site: str | None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[HistoryPoint]:
        """Return the best available history series for *site*.

        Args:
            site: Site key.
            start: Window start; defaults to 24 hours before ``end``.
            end: Window end; defaults to now.

        Returns:
            Upstream points, mock points, or an empty list when a configured
            upstream answered with an error.

        Raises:
            ValueError: If ``end`` is not after ``start``. This is a caller
                error, not an upstream failure.
        """
        site_key = _site_key(site)
        start_ts, end_ts = resolve_window(start, end)

        try:
            client, device_id = self._upstream_for(site_key)
            payload = await client.fetch_history(device_id, start_ts, end_ts)
        except UpstreamNotConfigured as exc:
            logger.info("Upstream not configured (%s), serving mock history for site=%s", exc, site_key)
            return self._generator.generate_history(site_key, start_ts, end_ts)
        except UpstreamTimeout as exc:
            logger.warning(
                "Upstream history timed out for site=%s (%s), serving mock history",
                site_key,
                exc,
            )
            return self._generator.generate_history(site_key, start_ts, end_ts)
        except UpstreamUnavailable as exc:
            logger.warning("Upstream unreachable for site=%s (%s), serving mock history", site_key, exc)
            return self._generator.generate_history(site_key, start_ts, end_ts)
        except UpstreamHTTPError as exc:
            logger.error(
                "Upstream history failed (HTTP %d) for site=%s: %s, returning empty history",
                exc.status_code,
                site_key,
                exc,
            )
            return []

        try:
            return normalize_history(payload)
        except ValueError:
            logger.error(
                "Upstream history payload for site=%s could not be normalized, returning empty history",
                site_key,
                exc_info=True,
            )
            return []

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _upstream_for(self, site_key: str) -> tuple[UpstreamClient, str]:
        """Return the client and device id for *site_key*.

        Raises:
            UpstreamNotConfigured: If the upstream or the site's device id
                is not configured.
        """
        if self._client is None:
            raise UpstreamNotConfigured(self._unconfigured_reason or "not configured")
        device_id = self._site_devices.get(site_key)
        if not device_id:
            raise UpstreamNotConfigured(f"no device id for site '{site_key}'")
        return self._client, device_id

    def _offline_status(self, site_key: str) -> StatusSnapshot:
        snapshot = self._generator.generate_status(site_key)
        snapshot.system.connection = "offline"
        return snapshot


def _site_key(site: str | None) -> str:
    return (site or "").strip().lower()
