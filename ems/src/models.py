"""
Pydantic models for the canonical EMS telemetry schema.

These models are the JSON contract shared with the dashboard frontend. Both
the mock generator and the upstream normalizer produce them, so the response
shape is identical whichever source answered. Wire names that are not valid
snake_case (``siteName``, ``deviceId``, alert ``type``) are declared as field
aliases; FastAPI serializes response models by alias.

CHANGELOG:
- 2026-03-03: Add max/min temperature positions to the battery block
- 2026-03-02: Initial creation (STORY-103)

TODO:
- None
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

DeviceStatus = Literal["normal", "warning", "critical"]
SystemStatus = Literal["normal", "warning", "critical"]
Connection = Literal["online", "offline"]
AlertSeverity = Literal["info", "warning", "critical"]


class Alert(BaseModel):
    """A derived alert. Never stored; rebuilt on every snapshot.

    Attributes:
        id: Identifier unique per occurrence within the process.
        severity: One of ``info``, ``warning``, ``critical`` (wire name ``type``).
        message: Human-readable message.
        time: ISO 8601 timestamp of the occurrence.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    severity: AlertSeverity = Field(alias="type")
    message: str
    time: str


class DeviceReading(BaseModel):
    """Per-container reading."""

    id: str
    name: str
    status: DeviceStatus = "normal"
    soc: float
    temp: float
    voltage: float


class SystemBlock(BaseModel):
    status: SystemStatus = "normal"
    uptime: str = "N/A"
    connection: Connection = "online"
    frequency: float = 0.0
    bus_voltage: float = 0.0
    real_power_kw: float = 0.0
    reactive_power_kvar: float = 0.0
    execution_rate: float = 0.0
    service_type: int | None = None


class TempExtreme(BaseModel):
    """A temperature value and the device position it was measured at."""

    value: float = 0.0
    position: str = "N/A"


class BatteryBlock(BaseModel):
    soc: float = 0.0
    soh: float = 0.0
    voltage: float = 0.0
    current: float = 0.0
    temp: float = 0.0
    max_temp: TempExtreme = Field(default_factory=TempExtreme)
    min_temp: TempExtreme = Field(default_factory=TempExtreme)


class SafetyBlock(BaseModel):
    fire_alarm: bool = False
    door_status: str = "N/A"
    emergency_stop: bool = False


class PowerBlock(BaseModel):
    """Site power flows in kW.

    Attributes:
        pv_kw: Co-located PV output.
        load_kw: Auxiliary site load.
        grid_kw: Grid exchange. Positive = import, negative = export.
        battery_kw: Battery power. Positive = discharging.
    """

    pv_kw: float = 0.0
    load_kw: float = 0.0
    grid_kw: float = 0.0
    battery_kw: float = 0.0


class StatusSnapshot(BaseModel):
    """One point-in-time telemetry reading for a site.

    Attributes:
        site_name: Display name of the site (wire name ``siteName``).
        device_id: Upstream device identifier, or a synthetic id for mock
            data (wire name ``deviceId``).
        timestamp: ISO 8601 time the snapshot was produced.
        system: Grid-side system block.
        battery: Aggregate battery block.
        safety: Fire, door and emergency-stop state.
        power: Site power flows.
        devices: Per-container readings.
        alerts: Alerts derived for this snapshot.
    """

    model_config = ConfigDict(populate_by_name=True)

    site_name: str = Field(alias="siteName")
    device_id: str = Field(alias="deviceId")
    timestamp: str
    system: SystemBlock = Field(default_factory=SystemBlock)
    battery: BatteryBlock = Field(default_factory=BatteryBlock)
    safety: SafetyBlock = Field(default_factory=SafetyBlock)
    power: PowerBlock = Field(default_factory=PowerBlock)
    devices: list[DeviceReading] = Field(default_factory=list)
    alerts: list[Alert] = Field(default_factory=list)


class HistoryPoint(BaseModel):
    """A single point of a history series.

    Attributes:
        time: ISO 8601 timestamp of the point.
        soc: State of charge in percent.
        power: Real power in kW.
        frequency: Grid frequency in Hz.
        execution_rate: Execution rate in percent.
        reactive_power: Reactive power in kvar.
    """

    time: str
    soc: float
    power: float
    frequency: float
    execution_rate: float
    reactive_power: float


def clamp_pct(value: float) -> float:
    """Clamp a percentage into [0, 100]."""
    return max(0.0, min(100.0, value))
