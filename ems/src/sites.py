"""
Per-site baseline configuration -- single source of truth for known sites.

Each BESS site is described by an immutable :class:`SiteConfig` holding the
nominal operating values the mock generator jitters around, plus the naming
used for its battery containers. The table is built once at import time and
exposed read-only; callers pass it (or their own mapping) explicitly into the
generator and resolver.

Service type codes follow the grid operator's ancillary-service programs:
    0 = none, 1 = dReg (dynamic regulation), 2 = sReg (static regulation),
    3 = E-dReg (enhanced dynamic regulation).

CHANGELOG:
- 2026-03-03: Move per-site device names and temperatures into SiteConfig
- 2026-03-02: Initial creation (STORY-102)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SiteConfig:
    """Baseline operating values for one BESS site.

    Attributes:
        key: Short site key used in requests (e.g. ``"chiayi"``).
        display_name: Human-readable site name shown on the dashboard.
        soc: Nominal state of charge in percent.
        soh: State of health in percent.
        real_power_kw: Baseline real power in kW. Positive = discharging.
        reactive_power_kvar: Baseline reactive power in kvar.
        frequency_hz: Nominal grid frequency in Hz.
        bus_voltage_kv: Point-of-connection bus voltage in kV.
        device_count: Number of battery containers reported per snapshot.
        device_prefix: Prefix for container ids and names.
        device_temp_c: Baseline container temperature in degrees Celsius.
        device_voltage_v: Baseline container DC voltage in volts.
        uptime: Uptime string reported verbatim in the system block.
        service_type: Ancillary-service program code (see module docstring).
        is_operational: ``False`` for sites that are commissioning or idle;
            power flows and execution rate collapse to zero.
        pv_kw: Baseline co-located PV output in kW (0 for storage-only sites).
        load_kw: Baseline auxiliary site load in kW.
        execution_rate: Nominal execution rate in percent.
    """

    key: str
    display_name: str
    soc: float
    soh: float
    real_power_kw: float
    reactive_power_kvar: float
    frequency_hz: float
    bus_voltage_kv: float
    device_count: int
    device_prefix: str
    device_temp_c: float
    device_voltage_v: float
    uptime: str
    service_type: int
    is_operational: bool = True
    pv_kw: float = 0.0
    load_kw: float = 0.0
    execution_rate: float = 99.5


# ---------------------------------------------------------------------------
# Site table
# ---------------------------------------------------------------------------

DEFAULT_SITE_CONFIG = SiteConfig(
    key="default",
    display_name="Generic BESS Site",
    soc=65.0,
    soh=98.0,
    real_power_kw=500.0,
    reactive_power_kvar=50.0,
    frequency_hz=60.0,
    bus_voltage_kv=22.8,
    device_count=6,
    device_prefix="BESS",
    device_temp_c=26.0,
    device_voltage_v=768.0,
    uptime="0d 0h 0m",
    service_type=0,
)
"""Fallback configuration for unknown site keys."""

_SITES: dict[str, SiteConfig] = {
    "chiayi": SiteConfig(
        key="chiayi",
        display_name="盛大嘉義場",
        soc=75.0,
        soh=98.2,
        real_power_kw=1500.0,
        reactive_power_kvar=120.0,
        frequency_hz=60.0,
        bus_voltage_kv=22.8,
        device_count=8,
        device_prefix="CY-BESS",
        device_temp_c=27.5,
        device_voltage_v=768.0,
        uptime="124d 14h 22m",
        service_type=1,
        pv_kw=15.5,
        load_kw=12.0,
        execution_rate=99.2,
    ),
    "xinying": SiteConfig(
        key="xinying",
        display_name="盛大新營場",
        soc=68.0,
        soh=99.1,
        real_power_kw=980.0,
        reactive_power_kvar=85.0,
        frequency_hz=60.0,
        bus_voltage_kv=11.4,
        device_count=4,
        device_prefix="XY-BESS",
        device_temp_c=29.0,
        device_voltage_v=832.0,
        uptime="57d 3h 41m",
        service_type=3,
        load_kw=8.5,
        execution_rate=98.7,
    ),
}

SITE_CONFIGS: Mapping[str, SiteConfig] = MappingProxyType(_SITES)
"""Read-only mapping of known site key -> SiteConfig."""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_site_config(
    site: str | None,
    sites: Mapping[str, SiteConfig] = SITE_CONFIGS,
) -> SiteConfig:
    """Look up a site's configuration, falling back to the generic default.

    Args:
        site: Site key from the request. Matched case-insensitively.
        sites: Configuration table to search.

    Returns:
        The matching :class:`SiteConfig`, or :data:`DEFAULT_SITE_CONFIG`
        when the key is empty or unknown.
    """
    if not site:
        return DEFAULT_SITE_CONFIG
    return sites.get(site.strip().lower(), DEFAULT_SITE_CONFIG)
