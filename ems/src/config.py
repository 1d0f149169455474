"""
EMS service configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Every value is optional: an empty upstream base URL or API key is the normal
state of a demo deployment and simply means telemetry is synthesized.

CHANGELOG:
- 2026-03-04: Add LOCAL_TIMEOUT_S for the dashboard client (STORY-108)
- 2026-03-02: Initial creation (STORY-101)

TODO:
- None
"""

from __future__ import annotations

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def parse_site_devices(raw: str) -> dict[str, str]:
    """Parse the SITE_DEVICE_IDS environment variable into a site-to-device map.

    Format: "chiayi:dev-001,xinying:dev-002"

    Entries without a colon separator are skipped with a warning. Site keys
    are lower-cased; surrounding whitespace is stripped from both parts.

    Args:
        raw: The raw comma-separated site:device_id string.

    Returns:
        dict[str, str]: Mapping of site key -> upstream device_id.
    """
    if not raw or not raw.strip():
        return {}

    site_map: dict[str, str] = {}
    for idx, entry in enumerate(raw.split(",")):
        entry = entry.strip()
        if not entry:
            continue
        if ":" not in entry:
            logger.warning(
                "Skipping malformed SITE_DEVICE_IDS entry at position %d"
                " (no colon separator)",
                idx,
            )
            continue
        site, device_id = entry.split(":", maxsplit=1)
        site = site.strip().lower()
        device_id = device_id.strip()
        if site and device_id:
            site_map[site] = device_id
    return site_map


class EmsSettings(BaseSettings):
    """EMS telemetry service configuration.

    Attributes:
        ems_api_base_url: Base URL of the upstream device API. Empty means
            the upstream is not configured.
        ems_api_key: Bearer token for the upstream device API.
        site_device_ids: Raw ``site:device_id`` list, see
            :func:`parse_site_devices`.
        upstream_timeout_s: Bound for one server-side upstream fetch.
        local_timeout_s: Bound for the dashboard client's direct
            local-network attempt before it falls back to this service.
        cors_origins: Origins allowed to call the API from a browser.
        log_level: Root log level name.
    """

    ems_api_base_url: str = ""
    ems_api_key: str = ""
    site_device_ids: str = ""
    upstream_timeout_s: float = 10.0
    local_timeout_s: float = 5.0
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"

    @property
    def site_devices(self) -> dict[str, str]:
        """Parsed SITE_DEVICE_IDS mapping (site key -> device_id)."""
        return parse_site_devices(self.site_device_ids)

    @field_validator("ems_api_base_url")
    @classmethod
    def strip_base_url(cls, v: str) -> str:
        """Strip whitespace and any trailing slash from the base URL."""
        return v.strip().rstrip("/")

    @field_validator("ems_api_key")
    @classmethod
    def strip_api_key(cls, v: str) -> str:
        """Strip surrounding whitespace from the API key."""
        return v.strip()

    @field_validator("upstream_timeout_s", "local_timeout_s")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        """Validate that timeouts are strictly positive."""
        if v <= 0:
            raise ValueError("Timeouts must be > 0 seconds")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Validate LOG_LEVEL against the standard logging level names."""
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}")
        return level

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}
