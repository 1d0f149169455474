"""
FastAPI application entry point for the EMS telemetry API.

Provides the root health endpoint and serves as the application factory.
Settings are loaded from the environment at startup; the TelemetryResolver
built from them is stored on app.state for route handlers. Structured JSON
logging is configured on startup and every request is logged with its
status code and duration.

Run with::

    uvicorn ems.src.api.main:app --host 0.0.0.0 --port 3000

CHANGELOG:
- 2026-03-09: Register telemetry router under /api/ems as well (STORY-112)
- 2026-03-09: Request logging middleware
- 2026-03-08: Initial creation (STORY-111)
"""

import hashlib
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ems.src.api.health import router as health_router
from ems.src.api.telemetry import router as telemetry_router
from ems.src.config import EmsSettings
from ems.src.logging_config import configure_logging
from ems.src.resolver import TelemetryResolver

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def log_config_summary(settings: EmsSettings, resolver: TelemetryResolver) -> None:
    """Log a config summary at startup, excluding the raw API key."""
    logger.info(
        "EMS API starting with config: ems_api_base_url=%s, "
        "upstream_configured=%s, sites_with_devices=%s, "
        "upstream_timeout_s=%s, log_level=%s, ems_api_key_masked=%s",
        settings.ems_api_base_url or "<unset>",
        resolver.upstream_configured,
        sorted(settings.site_devices),
        settings.upstream_timeout_s,
        settings.log_level,
        _masked_token(settings.ems_api_key),
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build the resolver and log startup/shutdown.

    Startup:
        - Configures JSON logging at the configured level.
        - Builds the TelemetryResolver from app.state.settings.

    Shutdown:
        - Logs that the API is shutting down.
    """
    settings: EmsSettings = app.state.settings
    configure_logging(settings.log_level)

    resolver = TelemetryResolver.from_settings(settings)
    app.state.resolver = resolver
    log_config_summary(settings, resolver)

    logger.info("EMS telemetry API ready")
    yield
    logger.info("EMS telemetry API shutting down")


def create_app(settings: EmsSettings | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when omitted.

    Returns:
        FastAPI: The configured application.
    """
    settings = settings if settings is not None else EmsSettings()

    app = FastAPI(
        title="EMS Telemetry API",
        description="Status and history telemetry for BESS sites.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        dur_ms = (time.perf_counter() - start) * 1000.0
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            dur_ms,
        )
        return response

    app.include_router(health_router)
    app.include_router(telemetry_router)
    app.include_router(telemetry_router, prefix="/api/ems")

    @app.get("/")
    async def root() -> dict:
        """Root health check endpoint.

        Returns:
            dict: JSON object with application status.
        """
        return {"status": "ok"}

    return app


app = create_app()
