"""
Threshold-based alert derivation and system status roll-up.

Alerts are never stored: every snapshot re-derives them from the values it
carries. Given the same values the derivation is deterministic; only the ids
differ between calls, and they are unique within the process.

CHANGELOG:
- 2026-03-03: Per-device low-charge alerts (STORY-104)
- 2026-03-02: Initial creation (STORY-104)

TODO:
- None
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Sequence
from datetime import datetime

from ems.src.models import Alert, DeviceReading, SystemStatus

LOW_SOC_THRESHOLD_PCT = 20.0
HIGH_TEMP_THRESHOLD_C = 45.0

# Process-wide sequence; two alerts of the same kind in the same millisecond
# still get distinct ids.
_alert_seq = itertools.count(1)


def make_alert_id(site: str, kind: str, now: datetime) -> str:
    """Build an alert id from site, kind and the current time."""
    millis = int(now.timestamp() * 1000)
    return f"{site}-{kind}-{millis}-{next(_alert_seq)}"


def derive_alerts(
    site: str,
    *,
    soc: float,
    temp: float,
    devices: Sequence[DeviceReading],
    fire_alarm: bool,
    now: datetime,
) -> list[Alert]:
    """Derive the alert list for one snapshot.

    Rules, in emission order:

    1. ``warning`` if the aggregate state of charge is below 20 %.
    2. ``warning`` for each device whose state of charge is below 20 %.
    3. ``critical`` if the aggregate temperature is above 45 degrees C.
    4. ``critical`` if the fire alarm is active.

    Args:
        site: Site key, used in alert ids.
        soc: Aggregate state of charge in percent.
        temp: Aggregate battery temperature in degrees Celsius.
        devices: Per-device readings to check individually.
        fire_alarm: Current fire alarm state.
        now: Time stamped on every alert.

    Returns:
        The derived alerts; empty when every check passes.
    """
    stamp = now.isoformat()
    alerts: list[Alert] = []

    if soc < LOW_SOC_THRESHOLD_PCT:
        alerts.append(
            Alert(
                id=make_alert_id(site, "low-soc", now),
                severity="warning",
                message=f"System state of charge low ({soc:.1f}%)",
                time=stamp,
            )
        )

    for device in devices:
        if device.soc < LOW_SOC_THRESHOLD_PCT:
            alerts.append(
                Alert(
                    id=make_alert_id(site, f"low-soc-{device.id}", now),
                    severity="warning",
                    message=f"{device.name} state of charge low ({device.soc:.1f}%)",
                    time=stamp,
                )
            )

    if temp > HIGH_TEMP_THRESHOLD_C:
        alerts.append(
            Alert(
                id=make_alert_id(site, "high-temp", now),
                severity="critical",
                message=f"Battery temperature high ({temp:.1f} °C)",
                time=stamp,
            )
        )

    if fire_alarm:
        alerts.append(
            Alert(
                id=make_alert_id(site, "fire", now),
                severity="critical",
                message="Fire alarm triggered",
                time=stamp,
            )
        )

    return alerts


def derive_system_status(alerts: Iterable[Alert]) -> SystemStatus:
    """Roll alerts up into one system status.

    ``critical`` if any alert is critical, else ``warning`` if any alert
    exists, else ``normal``.
    """
    status: SystemStatus = "normal"
    for alert in alerts:
        if alert.severity == "critical":
            return "critical"
        status = "warning"
    return status
