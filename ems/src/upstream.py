"""
HTTP client for the upstream device API.

Performs one bounded GET per call against ``{base_url}/devices/{device_id}/...``
with Bearer token authentication and turns every failure into a typed
:class:`UpstreamError`, so the resolver can tell the failure modes apart:

- :class:`UpstreamNotConfigured`: no usable base URL, API key or device id.
  Expected in demo and development deployments.
- :class:`UpstreamTimeout`: the request exceeded its time bound and was
  cancelled.
- :class:`UpstreamUnavailable`: connection refused, DNS failure, or another
  transport error.
- :class:`UpstreamHTTPError`: the upstream answered, but not with a usable
  2xx JSON body.

No retries: each call is a single attempt.

CHANGELOG:
- 2026-03-11: Reject API keys that cannot be sent as a header; map InvalidURL
  and encoding errors to UpstreamUnavailable
- 2026-03-07: Treat private and loopback upstream hosts as unconfigured
- 2026-03-06: Initial creation (STORY-109)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0

PLACEHOLDER_API_KEYS = frozenset(
    {
        "my_ems_api_key",
        "your_api_key",
        "your-api-key",
        "api_key_here",
        "changeme",
        "placeholder",
        "xxx",
    }
)
"""Lower-cased API key values shipped in example env files."""


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class UpstreamError(Exception):
    """Base class for all upstream fetch failures."""


class UpstreamNotConfigured(UpstreamError):
    """The upstream is not configured for this request."""


class UpstreamTimeout(UpstreamError):
    """The upstream did not answer within the time bound."""


class UpstreamUnavailable(UpstreamError):
    """The upstream could not be reached (transport-level failure)."""


class UpstreamHTTPError(UpstreamError):
    """The upstream answered with a non-success status or an unusable body.

    Attributes:
        status_code: HTTP status code of the response.
    """

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(message or f"HTTP {status_code}")


# ---------------------------------------------------------------------------
# Configuration checks
# ---------------------------------------------------------------------------


def is_private_host(base_url: str) -> bool:
    """Return ``True`` if *base_url* targets a loopback or private address.

    ``localhost`` and ``*.local`` names count as private. Other host names
    are not resolved; only literal IP addresses are range-checked.
    """
    host = urlsplit(base_url).hostname
    if not host:
        return False
    host = host.lower()
    if host == "localhost" or host.endswith((".localhost", ".local")):
        return True
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    return addr.is_private or addr.is_loopback or addr.is_link_local


def unconfigured_reason(base_url: str, api_key: str) -> str | None:
    """Explain why the upstream settings are unusable, or ``None`` if usable.

    Args:
        base_url: Configured upstream base URL.
        api_key: Configured upstream API key.

    Returns:
        A short reason string for logging, or ``None``.
    """
    if not base_url:
        return "no base URL"
    if not api_key:
        return "no API key"
    if api_key.lower() in PLACEHOLDER_API_KEYS:
        return "placeholder API key"
    if not (api_key.isascii() and api_key.isprintable()):
        return "invalid API key"
    parts = urlsplit(base_url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return "invalid base URL"
    if is_private_host(base_url):
        return "private or loopback base URL"
    return None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class UpstreamClient:
    """Single-attempt, time-bounded client for the upstream device API.

    The whole request (connect, send, receive) is bounded by ``timeout_s``
    and cancelled when the bound is exceeded.

    Args:
        base_url: Upstream base URL, without trailing slash.
        api_key: Bearer token sent in the ``Authorization`` header.
        timeout_s: Time bound for one request in seconds.

    Raises:
        UpstreamNotConfigured: If the settings are unusable (see
            :func:`unconfigured_reason`).

    Usage::

        client = UpstreamClient("https://ems.example.com/api", "tok-123")
        payload = await client.fetch_status("dev-001")
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        reason = unconfigured_reason(base_url, api_key)
        if reason is not None:
            raise UpstreamNotConfigured(reason)
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout_s = timeout_s

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_status(self, device_id: str) -> Any:
        """Fetch the raw status payload for *device_id*."""
        return await self._get(f"/devices/{device_id}/status")

    async def fetch_history(
        self,
        device_id: str,
        start: datetime,
        end: datetime,
    ) -> Any:
        """Fetch the raw history payload for *device_id* over a window."""
        return await self._get(
            f"/devices/{device_id}/history",
            params={"start": start.isoformat(), "end": end.isoformat()},
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET ``{base_url}{path}`` and return the decoded JSON body.

        Raises:
            UpstreamTimeout: The time bound was exceeded.
            UpstreamUnavailable: A transport error occurred, or the request
                could not be built (invalid URL, unencodable header).
            UpstreamHTTPError: Non-2xx status or a body that is not JSON.
        """
        url = f"{self._base_url}{path}"
        logger.debug("Upstream GET %s params=%s", url, params)
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await asyncio.wait_for(
                    client.get(
                        url,
                        params=params,
                        headers={
                            "Authorization": f"Bearer {self._api_key}",
                            "Accept": "application/json",
                        },
                    ),
                    timeout=self._timeout_s,
                )
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise UpstreamTimeout(f"GET {path} exceeded {self._timeout_s:.1f}s") from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"GET {path} failed: {exc}") from exc
        except (httpx.InvalidURL, UnicodeError) as exc:
            raise UpstreamUnavailable(f"GET {path} could not be sent: {exc}") from exc

        if not response.is_success:
            raise UpstreamHTTPError(response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamHTTPError(response.status_code, "response body is not JSON") from exc
