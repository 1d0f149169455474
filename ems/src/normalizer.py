"""
Pure normalizer that maps upstream device API payloads into the canonical schema.

The upstream schema is not under our control and its field names vary between
firmware and gateway versions. Every logical field therefore has an ordered
tuple of candidate key paths (dotted for nested objects); the first candidate
holding a non-null value wins. Missing or unparseable fields fall back to
neutral defaults (0, ``"N/A"``, ``False``, empty list) one field at a time,
so a partial payload still yields a complete snapshot.

This is a pure function module: no I/O and no clock. Site name, device id
and the fallback timestamp are passed in by the caller.

CHANGELOG:
- 2026-03-11: Treat overflowing and non-finite numbers as unparseable
- 2026-03-06: Accept payloads wrapped in a top-level ``data`` object
- 2026-03-05: Initial creation (STORY-107)

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from ems.src.alerts import derive_system_status, make_alert_id
from ems.src.models import (
    Alert,
    AlertSeverity,
    BatteryBlock,
    Connection,
    DeviceReading,
    DeviceStatus,
    HistoryPoint,
    PowerBlock,
    SafetyBlock,
    StatusSnapshot,
    SystemBlock,
    TempExtreme,
    clamp_pct,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Candidate key paths per logical field, in priority order.
# ---------------------------------------------------------------------------

_SYSTEM_FIELDS: dict[str, tuple[str, ...]] = {
    "frequency": ("system.frequency", "frequency", "freq", "grid_frequency", "gridFrequency"),
    "bus_voltage": ("system.bus_voltage", "bus_voltage", "busVoltage", "grid_voltage"),
    "real_power_kw": (
        "system.real_power_kw",
        "real_power_kw",
        "realPower",
        "active_power_kw",
        "activePower",
        "p_kw",
    ),
    "reactive_power_kvar": (
        "system.reactive_power_kvar",
        "reactive_power_kvar",
        "reactivePower",
        "q_kvar",
    ),
    "execution_rate": ("system.execution_rate", "execution_rate", "executionRate", "exec_rate"),
}

_BATTERY_FIELDS: dict[str, tuple[str, ...]] = {
    "soc": ("battery.soc", "soc", "SOC", "battery_soc", "stateOfCharge"),
    "soh": ("battery.soh", "soh", "SOH", "battery_soh", "stateOfHealth"),
    "voltage": ("battery.voltage", "battery_voltage", "batteryVoltage", "voltage"),
    "current": ("battery.current", "battery_current", "batteryCurrent", "current"),
    "temp": ("battery.temp", "battery.temperature", "battery_temp", "temperature", "temp"),
}

_POWER_FIELDS: dict[str, tuple[str, ...]] = {
    "pv_kw": ("power.pv_kw", "pv_kw", "pvPower", "solar_kw"),
    "load_kw": ("power.load_kw", "load_kw", "loadPower"),
    "grid_kw": ("power.grid_kw", "grid_kw", "gridPower"),
    "battery_kw": ("power.battery_kw", "battery_kw", "batteryPower"),
}

_MAX_TEMP_PATHS = ("battery.max_temp", "max_temp", "maxTemp", "max_cell_temp")
_MAX_TEMP_POSITION_PATHS = ("battery.max_temp_position", "max_temp_position", "maxTempPosition")
_MIN_TEMP_PATHS = ("battery.min_temp", "min_temp", "minTemp", "min_cell_temp")
_MIN_TEMP_POSITION_PATHS = ("battery.min_temp_position", "min_temp_position", "minTempPosition")

_DEVICE_LIST_PATHS = ("devices", "modules", "racks", "batteries")
_ALERT_LIST_PATHS = ("alerts", "alarms", "events")
_HISTORY_LIST_PATHS = ("history", "data", "points", "items", "records")

_SEVERITY_MAP: dict[str, AlertSeverity] = {
    "critical": "critical",
    "fatal": "critical",
    "error": "critical",
    "alarm": "critical",
    "fault": "critical",
    "warning": "warning",
    "warn": "warning",
    "info": "info",
    "notice": "info",
}

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on", "alarm", "active", "triggered"})


# ---------------------------------------------------------------------------
# Lookup and coercion helpers
# ---------------------------------------------------------------------------


def _get_path(payload: Mapping[str, Any], path: str) -> Any:
    """Follow a dotted key path through nested mappings; None if absent."""
    node: Any = payload
    for part in path.split("."):
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
        if node is None:
            return None
    return node


def pick(payload: Mapping[str, Any], candidates: Sequence[str]) -> Any:
    """Return the value of the first candidate path that is not null."""
    for path in candidates:
        value = _get_path(payload, path)
        if value is not None:
            return value
    return None


def _as_float(value: Any, field: str, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning("Field '%s': cannot parse %r as number, using %s", field, value, default)
        return default
    if not math.isfinite(number):
        logger.warning("Field '%s': non-finite value %r, using %s", field, value, default)
        return default
    return number


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def _as_str(value: Any, default: str = "N/A") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _unwrap(payload: Any) -> Mapping[str, Any]:
    """Return the snapshot object, unwrapping a top-level ``data`` envelope."""
    if not isinstance(payload, Mapping):
        return {}
    inner = payload.get("data")
    if isinstance(inner, Mapping):
        return inner
    return payload


def _coerce_device_status(value: Any) -> DeviceStatus:
    text = _as_str(value, "normal").lower()
    if text in ("normal", "warning", "critical"):
        return text  # type: ignore[return-value]
    if text in ("ok", "online", "running", "idle", "standby"):
        return "normal"
    if text in ("fault", "error", "alarm", "offline"):
        return "critical"
    return "warning"


def _coerce_connection(value: Any) -> Connection:
    if value is None:
        return "online"
    if isinstance(value, bool):
        return "online" if value else "offline"
    text = str(value).strip().lower()
    return "offline" if text in ("offline", "disconnected", "false", "0") else "online"


def _coerce_severity(value: Any) -> AlertSeverity:
    return _SEVERITY_MAP.get(_as_str(value, "info").lower(), "info")


def _service_type(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning("Field 'service_type': cannot parse %r as integer", value)
        return None


def _temp_extreme(
    payload: Mapping[str, Any],
    value_paths: Sequence[str],
    position_paths: Sequence[str],
    field: str,
) -> TempExtreme:
    """Read a temperature extreme given either as an object or a bare number."""
    raw = pick(payload, value_paths)
    if isinstance(raw, Mapping):
        return TempExtreme(
            value=_as_float(pick(raw, ("value", "temp", "temperature")), field),
            position=_as_str(pick(raw, ("position", "location", "pos"))),
        )
    return TempExtreme(
        value=_as_float(raw, field),
        position=_as_str(pick(payload, position_paths)),
    )


# ---------------------------------------------------------------------------
# Block builders
# ---------------------------------------------------------------------------


def _normalize_device(raw: Any, idx: int, device_id: str) -> DeviceReading | None:
    if not isinstance(raw, Mapping):
        logger.warning("Device entry %d is not an object, skipping", idx)
        return None
    dev_id = _as_str(pick(raw, ("id", "device_id", "deviceId", "sn")), f"{device_id}-{idx:02d}")
    return DeviceReading(
        id=dev_id,
        name=_as_str(pick(raw, ("name", "display_name", "label")), dev_id),
        status=_coerce_device_status(pick(raw, ("status", "state"))),
        soc=clamp_pct(_as_float(pick(raw, ("soc", "SOC", "stateOfCharge")), "device.soc")),
        temp=_as_float(pick(raw, ("temp", "temperature", "avg_temp")), "device.temp"),
        voltage=_as_float(pick(raw, ("voltage", "dc_voltage", "volt")), "device.voltage"),
    )


def _normalize_alert(raw: Any, idx: int, site: str, now: datetime) -> Alert | None:
    if isinstance(raw, str):
        raw = {"message": raw}
    if not isinstance(raw, Mapping):
        logger.warning("Alert entry %d is not an object, skipping", idx)
        return None
    alert_id = pick(raw, ("id", "alert_id", "alarm_id", "code"))
    return Alert(
        id=_as_str(alert_id) if alert_id is not None else make_alert_id(site, "upstream", now),
        severity=_coerce_severity(pick(raw, ("type", "severity", "level"))),
        message=_as_str(pick(raw, ("message", "msg", "description", "text"))),
        time=_as_str(pick(raw, ("time", "timestamp", "ts")), now.isoformat()),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_status(
    payload: Any,
    *,
    site: str,
    site_name: str,
    device_id: str,
    now: datetime,
) -> StatusSnapshot:
    """Convert an upstream status payload into a :class:`StatusSnapshot`.

    Never raises on malformed input: anything that cannot be read is
    replaced by its neutral default. ``system.status`` is always re-derived
    from the normalized alert list.

    Args:
        payload: Decoded JSON body of the upstream status response.
        site: Site key, used for generated alert ids.
        site_name: Display name used when the payload carries none.
        device_id: Upstream device id used when the payload carries none.
        now: Fallback timestamp for the snapshot and its alerts.

    Returns:
        The canonical snapshot.
    """
    data = _unwrap(payload)

    system_values = {
        name: _as_float(pick(data, paths), name) for name, paths in _SYSTEM_FIELDS.items()
    }
    battery_values = {
        name: _as_float(pick(data, paths), name) for name, paths in _BATTERY_FIELDS.items()
    }
    battery_values["soc"] = clamp_pct(battery_values["soc"])
    power_values = {
        name: _as_float(pick(data, paths), name) for name, paths in _POWER_FIELDS.items()
    }

    devices = [
        dev
        for idx, raw in enumerate(_as_list(pick(data, _DEVICE_LIST_PATHS)), start=1)
        if (dev := _normalize_device(raw, idx, device_id)) is not None
    ]
    alerts = [
        alert
        for idx, raw in enumerate(_as_list(pick(data, _ALERT_LIST_PATHS)), start=1)
        if (alert := _normalize_alert(raw, idx, site, now)) is not None
    ]

    return StatusSnapshot(
        site_name=_as_str(pick(data, ("siteName", "site_name", "site.name")), site_name),
        device_id=_as_str(pick(data, ("deviceId", "device_id", "device.id")), device_id),
        timestamp=_as_str(
            pick(data, ("timestamp", "ts", "time", "updatedAt", "updated_at")),
            now.isoformat(),
        ),
        system=SystemBlock(
            status=derive_system_status(alerts),
            uptime=_as_str(pick(data, ("system.uptime", "uptime"))),
            connection=_coerce_connection(
                pick(data, ("system.connection", "connection", "online", "connected"))
            ),
            service_type=_service_type(
                pick(data, ("system.service_type", "service_type", "serviceType"))
            ),
            **system_values,
        ),
        battery=BatteryBlock(
            max_temp=_temp_extreme(data, _MAX_TEMP_PATHS, _MAX_TEMP_POSITION_PATHS, "max_temp"),
            min_temp=_temp_extreme(data, _MIN_TEMP_PATHS, _MIN_TEMP_POSITION_PATHS, "min_temp"),
            **battery_values,
        ),
        safety=SafetyBlock(
            fire_alarm=_as_bool(pick(data, ("safety.fire_alarm", "fire_alarm", "fireAlarm"))),
            door_status=_as_str(pick(data, ("safety.door_status", "door_status", "doorStatus"))),
            emergency_stop=_as_bool(
                pick(data, ("safety.emergency_stop", "emergency_stop", "emergencyStop", "estop"))
            ),
        ),
        power=PowerBlock(**power_values),
        devices=devices,
        alerts=alerts,
    )


def normalize_history(payload: Any) -> list[HistoryPoint]:
    """Convert an upstream history payload into a list of :class:`HistoryPoint`.

    Accepts either a bare JSON array or an object wrapping the array under
    one of several keys. Entries without a timestamp are dropped.

    Args:
        payload: Decoded JSON body of the upstream history response.

    Returns:
        The normalized points in upstream order; empty if nothing usable.
    """
    if isinstance(payload, Mapping):
        items = _as_list(pick(payload, _HISTORY_LIST_PATHS))
    else:
        items = _as_list(payload)

    points: list[HistoryPoint] = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, Mapping):
            logger.warning("History entry %d is not an object, skipping", idx)
            continue
        ts = pick(raw, ("time", "timestamp", "ts", "t"))
        if ts is None:
            logger.warning("History entry %d has no timestamp, skipping", idx)
            continue
        points.append(
            HistoryPoint(
                time=str(ts),
                soc=clamp_pct(_as_float(pick(raw, ("soc", "SOC", "stateOfCharge")), "soc")),
                power=_as_float(
                    pick(raw, ("power", "real_power_kw", "realPower", "activePower", "p")),
                    "power",
                ),
                frequency=_as_float(pick(raw, ("frequency", "freq")), "frequency"),
                execution_rate=_as_float(
                    pick(raw, ("execution_rate", "executionRate", "exec_rate")),
                    "execution_rate",
                ),
                reactive_power=_as_float(
                    pick(raw, ("reactive_power", "reactive_power_kvar", "reactivePower", "q")),
                    "reactive_power",
                ),
            )
        )
    return points
