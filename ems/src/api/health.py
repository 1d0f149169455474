"""
Health check endpoint for the EMS telemetry API.

Provides a simple GET /health endpoint that returns {"status": "ok"} with
HTTP 200. It never touches the upstream device API, so it reports process
liveness only; upstream outages show up inside the telemetry payloads.

CHANGELOG:
- 2026-03-08: Initial creation (STORY-111)

TODO:
- None
"""

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Return a simple health status.

    Returns:
        dict: ``{"status": "ok"}`` indicating the service is alive.
    """
    return {"status": "ok"}
