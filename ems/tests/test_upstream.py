"""
Unit tests for the upstream device API client.

Tests verify:
- Unusable settings (empty, placeholder, private host) raise UpstreamNotConfigured.
- GET URL, params and Bearer auth header.
- Each failure mode maps to its typed error.
- A hanging request is cancelled at the time bound.

CHANGELOG:
- 2026-03-11: Header-unsafe API keys and request build errors
- 2026-03-07: Private and loopback host tests
- 2026-03-06: Initial creation (STORY-109)

TODO:
- None
"""

import asyncio
import time
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from ems.src.upstream import (
    UpstreamClient,
    UpstreamError,
    UpstreamHTTPError,
    UpstreamNotConfigured,
    UpstreamTimeout,
    UpstreamUnavailable,
    is_private_host,
    unconfigured_reason,
)

BASE_URL = "https://ems.example.com/api"


def _response(status_code: int = 200, json_body: Any = None, text: str | None = None) -> httpx.Response:
    request = httpx.Request("GET", BASE_URL)
    if text is not None:
        return httpx.Response(status_code, text=text, request=request)
    return httpx.Response(status_code, json=json_body, request=request)


def _mock_client(*, response: httpx.Response | None = None, side_effect: Any = None) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.get = AsyncMock(return_value=response, side_effect=side_effect)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


# ---------------------------------------------------------------------------
# Configuration checks
# ---------------------------------------------------------------------------


class TestUnconfiguredReason:
    """Settings that mean "no upstream"."""

    def test_usable_settings(self) -> None:
        assert unconfigured_reason(BASE_URL, "tok-123") is None

    @pytest.mark.parametrize(
        ("base_url", "api_key", "reason"),
        [
            ("", "tok-123", "no base URL"),
            (BASE_URL, "", "no API key"),
            (BASE_URL, "MY_EMS_API_KEY", "placeholder API key"),
            (BASE_URL, "changeme", "placeholder API key"),
            ("ftp://ems.example.com", "tok-123", "invalid base URL"),
            ("not a url", "tok-123", "invalid base URL"),
            ("http://localhost:8080", "tok-123", "private or loopback base URL"),
            ("http://127.0.0.1:8080", "tok-123", "private or loopback base URL"),
            ("http://192.168.1.50", "tok-123", "private or loopback base URL"),
            (BASE_URL, "t\u00f6k\u00e9n", "invalid API key"),
            (BASE_URL, "tok-123\r\nX-Evil: 1", "invalid API key"),
        ],
    )
    def test_unusable_settings(self, base_url: str, api_key: str, reason: str) -> None:
        assert unconfigured_reason(base_url, api_key) == reason

    def test_constructor_raises(self) -> None:
        with pytest.raises(UpstreamNotConfigured, match="no API key"):
            UpstreamClient(BASE_URL, "")


class TestIsPrivateHost:
    @pytest.mark.parametrize(
        "url",
        [
            "http://localhost",
            "http://api.localhost",
            "http://gateway.local:8080",
            "http://10.0.0.4",
            "http://172.16.3.1",
            "http://169.254.1.1",
            "http://[::1]:3000",
        ],
    )
    def test_private(self, url: str) -> None:
        assert is_private_host(url) is True

    @pytest.mark.parametrize("url", ["https://ems.example.com", "http://8.8.8.8", "nohost"])
    def test_public_or_unparseable(self, url: str) -> None:
        assert is_private_host(url) is False


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestFetch:
    """Successful fetches."""

    @pytest.mark.asyncio
    async def test_status_request(self) -> None:
        mock_client = _mock_client(response=_response(json_body={"soc": 70}))
        client = UpstreamClient(BASE_URL, "tok-123")

        with patch("ems.src.upstream.httpx.AsyncClient", return_value=mock_client):
            payload = await client.fetch_status("dev-001")

        assert payload == {"soc": 70}
        call_args = mock_client.get.call_args
        assert call_args[0][0] == f"{BASE_URL}/devices/dev-001/status"
        assert call_args[1]["headers"]["Authorization"] == "Bearer tok-123"
        assert call_args[1]["params"] is None

    @pytest.mark.asyncio
    async def test_history_request_params(self) -> None:
        mock_client = _mock_client(response=_response(json_body=[]))
        client = UpstreamClient(BASE_URL, "tok-123")
        start = datetime(2026, 3, 1, tzinfo=UTC)
        end = datetime(2026, 3, 2, tzinfo=UTC)

        with patch("ems.src.upstream.httpx.AsyncClient", return_value=mock_client):
            payload = await client.fetch_history("dev-001", start, end)

        assert payload == []
        call_args = mock_client.get.call_args
        assert call_args[0][0] == f"{BASE_URL}/devices/dev-001/history"
        assert call_args[1]["params"] == {"start": start.isoformat(), "end": end.isoformat()}


class TestFailureModes:
    """Each failure maps to its typed error."""

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        mock_client = _mock_client(response=_response(503, json_body={"error": "busy"}))
        client = UpstreamClient(BASE_URL, "tok-123")

        with patch("ems.src.upstream.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(UpstreamHTTPError) as exc_info:
                await client.fetch_status("dev-001")

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        mock_client = _mock_client(response=_response(200, text="<html>login</html>"))
        client = UpstreamClient(BASE_URL, "tok-123")

        with patch("ems.src.upstream.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(UpstreamHTTPError, match="not JSON"):
                await client.fetch_status("dev-001")

    @pytest.mark.asyncio
    async def test_connect_error(self) -> None:
        mock_client = _mock_client(side_effect=httpx.ConnectError("refused"))
        client = UpstreamClient(BASE_URL, "tok-123")

        with patch("ems.src.upstream.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(UpstreamUnavailable):
                await client.fetch_status("dev-001")

    @pytest.mark.asyncio
    async def test_httpx_timeout(self) -> None:
        mock_client = _mock_client(side_effect=httpx.ReadTimeout("slow"))
        client = UpstreamClient(BASE_URL, "tok-123")

        with patch("ems.src.upstream.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(UpstreamTimeout):
                await client.fetch_status("dev-001")

    @pytest.mark.asyncio
    async def test_hanging_request_cancelled_at_bound(self) -> None:
        async def _hang(*args: Any, **kwargs: Any) -> httpx.Response:
            await asyncio.sleep(30)
            raise AssertionError("not reached")

        mock_client = _mock_client(side_effect=_hang)
        client = UpstreamClient(BASE_URL, "tok-123", timeout_s=0.1)

        started = time.monotonic()
        with patch("ems.src.upstream.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(UpstreamTimeout):
                await client.fetch_status("dev-001")

        assert time.monotonic() - started < 2.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            httpx.InvalidURL("bad host"),
            UnicodeEncodeError("ascii", "\u00f6", 0, 1, "ordinal not in range(128)"),
        ],
    )
    async def test_request_build_errors_are_unavailable(self, error: Exception) -> None:
        mock_client = _mock_client(side_effect=error)
        client = UpstreamClient(BASE_URL, "tok-123")

        with patch("ems.src.upstream.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(UpstreamUnavailable):
                await client.fetch_status("dev-001")

    def test_all_errors_share_base(self) -> None:
        for cls in (UpstreamNotConfigured, UpstreamTimeout, UpstreamUnavailable, UpstreamHTTPError):
            assert issubclass(cls, UpstreamError)
