"""
GET /status and GET /history endpoints for site telemetry.

Both endpoints answer HTTP 200 with the best available data whatever the
state of the upstream device API: upstream failures are resolved to mock
data (or an empty history) by the TelemetryResolver and are visible only
through ``system.connection`` and ``system.status`` inside the payload.
The only non-200 answer is a 422 for a malformed request, such as a history
window whose end is not after its start.

CHANGELOG:
- 2026-03-09: Serve the same routes under /api/ems for the dashboard frontend
- 2026-03-08: Initial creation (STORY-111)

TODO:
- None
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query

from ems.src.api.deps import Resolver
from ems.src.models import HistoryPoint, StatusSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telemetry"])

DEFAULT_SITE = "chiayi"


@router.get("/status", response_model=StatusSnapshot)
async def get_status(
    resolver: Resolver,
    site: Annotated[str, Query(description="Site key, e.g. chiayi.")] = DEFAULT_SITE,
) -> StatusSnapshot:
    """Return the current status snapshot for a site.

    Args:
        resolver: Telemetry resolver from app.state.
        site: Site key; unknown keys are served with the default site profile.

    Returns:
        StatusSnapshot: Canonical snapshot, serialized with wire aliases.
    """
    return await resolver.get_status(site)


@router.get("/history", response_model=list[HistoryPoint])
async def get_history(
    resolver: Resolver,
    site: Annotated[str, Query(description="Site key, e.g. chiayi.")] = DEFAULT_SITE,
    start: Annotated[
        datetime | None,
        Query(description="Window start (ISO 8601). Defaults to end - 24h."),
    ] = None,
    end: Annotated[
        datetime | None,
        Query(description="Window end (ISO 8601). Defaults to now."),
    ] = None,
) -> list[HistoryPoint]:
    """Return the history series for a site over a time window.

    Args:
        resolver: Telemetry resolver from app.state.
        site: Site key.
        start: Optional window start.
        end: Optional window end.

    Returns:
        list[HistoryPoint]: Points in chronological order; empty when a
        configured upstream reported an error.

    Raises:
        HTTPException: 422 if ``end`` is not after ``start``.
    """
    try:
        points = await resolver.get_history(site, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    logger.debug("History query: site=%s start=%s end=%s points=%d", site, start, end, len(points))
    return points
