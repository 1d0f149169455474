"""
FastAPI dependency injection providers.

Provides the telemetry resolver built at startup for use with FastAPI's
Depends() mechanism. Tests replace it through ``app.dependency_overrides``.

CHANGELOG:
- 2026-03-08: Initial creation (STORY-111)
"""

from typing import Annotated

from fastapi import Depends, Request

from ems.src.resolver import TelemetryResolver


def get_resolver(request: Request) -> TelemetryResolver:
    """Return the TelemetryResolver stored on app.state during lifespan startup.

    Args:
        request: The incoming FastAPI request.

    Returns:
        TelemetryResolver: The process-wide resolver.
    """
    return request.app.state.resolver


# Type alias for injecting the resolver via FastAPI Depends().
# Usage in route handlers:
#   async def my_route(resolver: Resolver):
#       snapshot = await resolver.get_status("chiayi")
Resolver = Annotated[TelemetryResolver, Depends(get_resolver)]
