"""
Shared test fixtures for the EMS telemetry tests.

All EMS env vars are cleaned before each test so the suite never picks up
a developer's upstream configuration, and the working directory is moved to
tmp_path so no .env file is accidentally loaded by Pydantic BaseSettings.

CHANGELOG:
- 2026-03-08: Add app client fixture (STORY-111)
- 2026-03-02: Initial creation (STORY-101)

TODO:
- None
"""

from __future__ import annotations

import random
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from ems.src.api.main import create_app
from ems.src.config import EmsSettings
from ems.src.mock_generator import MockGenerator

# All EmsSettings environment variable names, used for cleanup.
_ALL_EMS_ENV_VARS = (
    "EMS_API_BASE_URL",
    "EMS_API_KEY",
    "SITE_DEVICE_IDS",
    "UPSTREAM_TIMEOUT_S",
    "LOCAL_TIMEOUT_S",
    "CORS_ORIGINS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_ems_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all EMS env vars and isolate from .env files before each test."""
    for var in _ALL_EMS_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def generator() -> MockGenerator:
    """Mock generator with a seeded random source."""
    return MockGenerator(rng=random.Random(1234))


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    """TestClient for an app with no upstream configured (mock data only)."""
    app = create_app(EmsSettings())
    with TestClient(app) as test_client:
        yield test_client
