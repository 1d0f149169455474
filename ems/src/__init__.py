"""
EMS telemetry service for battery energy storage (BESS) sites.

Serves status and history telemetry for a named site, proxied from an
upstream device API when one is configured and reachable, or synthesized
from per-site baselines otherwise. Both sources are normalized into one
canonical JSON schema consumed by the dashboard frontend.

CHANGELOG:
- 2026-03-02: Initial creation (STORY-101)

TODO:
- None
"""
