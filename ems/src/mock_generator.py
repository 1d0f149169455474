"""
Mock telemetry generator for BESS sites.

Produces status snapshots and history series whose *shape* is fixed by the
site configuration (device count, naming, baselines) and whose *values* are
jittered around those baselines. Used whenever the upstream device API is
not configured or not answering.

The random source is injectable: by default an unseeded ``random.Random``
is created per generator, so output is not reproducible. Tests pass a
seeded instance instead.

Operations:
- generate_status(site): One full StatusSnapshot for the site.
- generate_history(site, start, end): 48 evenly spaced HistoryPoints.

CHANGELOG:
- 2026-03-05: Collapse power and execution rate for non-operational sites
- 2026-03-04: Diurnal SoC curve for history points (STORY-106)
- 2026-03-03: Initial creation (STORY-105)

TODO:
- None
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta

from ems.src.alerts import derive_alerts, derive_system_status
from ems.src.models import (
    BatteryBlock,
    DeviceReading,
    HistoryPoint,
    PowerBlock,
    SafetyBlock,
    StatusSnapshot,
    SystemBlock,
    TempExtreme,
    clamp_pct,
)
from ems.src.sites import (
    DEFAULT_SITE_CONFIG,
    SITE_CONFIGS,
    SiteConfig,
    get_site_config,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Generation constants
# ---------------------------------------------------------------------------

HISTORY_POINTS = 48
DEFAULT_HISTORY_WINDOW = timedelta(hours=24)

DEVICE_SOC_JITTER = 2.5
DEVICE_TEMP_JITTER = 1.0
DEVICE_VOLTAGE_JITTER = 5.0
DEVICE_WARNING_PROBABILITY = 0.02

# Aggregate SoC is intentionally much tighter than per-device SoC.
SYSTEM_SOC_JITTER = 0.1
SYSTEM_TEMP_JITTER = 1.0
FIRE_ALARM_PROBABILITY = 0.0001

FREQUENCY_JITTER_HZ = 0.02
BUS_VOLTAGE_JITTER_KV = 0.05
EXECUTION_RATE_JITTER = 0.5
POWER_JITTER_RATIO = 0.02
REACTIVE_JITTER_RATIO = 0.05
IDLE_POWER_JITTER_KW = 0.05

HISTORY_SOC_AMPLITUDE = 15.0
HISTORY_SOC_NOISE = 1.0
HISTORY_POWER_JITTER_RATIO = 0.05


def _ensure_utc(ts: datetime) -> datetime:
    """Treat naive timestamps as UTC and convert aware ones to UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def resolve_window(
    start: datetime | None,
    end: datetime | None,
    now: datetime | None = None,
) -> tuple[datetime, datetime]:
    """Resolve an optional history window to concrete UTC bounds.

    Missing ``end`` defaults to now; missing ``start`` defaults to 24 hours
    before ``end``.

    Raises:
        ValueError: If the resolved ``end`` is not after ``start``.
    """
    end_ts = _ensure_utc(end) if end is not None else (now or datetime.now(tz=UTC))
    start_ts = _ensure_utc(start) if start is not None else end_ts - DEFAULT_HISTORY_WINDOW
    if end_ts <= start_ts:
        raise ValueError("History window end must be after start")
    return start_ts, end_ts


class MockGenerator:
    """Synthesizes telemetry for a site from its baseline configuration.

    Args:
        sites: Site configuration table. Unknown keys fall back to the
            generic default configuration.
        rng: Random source. Defaults to a fresh unseeded ``random.Random``.
    """

    def __init__(
        self,
        sites: Mapping[str, SiteConfig] = SITE_CONFIGS,
        rng: random.Random | None = None,
    ) -> None:
        self._sites = sites
        self._rng = rng if rng is not None else random.Random()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def site_config(self, site: str | None) -> SiteConfig:
        """Return the configuration used for *site*."""
        config = get_site_config(site, self._sites)
        if config is DEFAULT_SITE_CONFIG and site:
            logger.debug("Unknown site '%s', using default configuration", site)
        return config

    def generate_status(
        self,
        site: str | None,
        *,
        now: datetime | None = None,
    ) -> StatusSnapshot:
        """Generate one status snapshot for *site*.

        Args:
            site: Site key; unknown keys use the default configuration.
            now: Snapshot time. Defaults to the current UTC time.

        Returns:
            A fully populated :class:`StatusSnapshot`.
        """
        config = self.site_config(site)
        now = now or datetime.now(tz=UTC)

        devices = self._generate_devices(config)
        soc = round(clamp_pct(self._jitter(config.soc, SYSTEM_SOC_JITTER)), 2)
        temp = round(self._jitter(config.device_temp_c, SYSTEM_TEMP_JITTER), 2)
        fire_alarm = self._rng.random() < FIRE_ALARM_PROBABILITY

        alerts = derive_alerts(
            config.key,
            soc=soc,
            temp=temp,
            devices=devices,
            fire_alarm=fire_alarm,
            now=now,
        )

        if config.is_operational:
            real_power = self._jitter(
                config.real_power_kw, abs(config.real_power_kw) * POWER_JITTER_RATIO
            )
            reactive_power = self._jitter(
                config.reactive_power_kvar,
                abs(config.reactive_power_kvar) * REACTIVE_JITTER_RATIO,
            )
            execution_rate = clamp_pct(
                self._jitter(config.execution_rate, EXECUTION_RATE_JITTER)
            )
        else:
            real_power = self._jitter(0.0, IDLE_POWER_JITTER_KW)
            reactive_power = self._jitter(0.0, IDLE_POWER_JITTER_KW)
            execution_rate = 0.0

        pv_kw = max(0.0, self._jitter(config.pv_kw, config.pv_kw * 0.1))
        load_kw = max(0.0, self._jitter(config.load_kw, 1.0))
        grid_kw = load_kw - pv_kw - real_power

        voltage = (
            sum(d.voltage for d in devices) / len(devices)
            if devices
            else config.device_voltage_v
        )
        current = real_power * 1000.0 / voltage if voltage else 0.0

        if devices:
            hottest = max(devices, key=lambda d: d.temp)
            coolest = min(devices, key=lambda d: d.temp)
            max_temp = TempExtreme(value=hottest.temp, position=hottest.name)
            min_temp = TempExtreme(value=coolest.temp, position=coolest.name)
        else:
            max_temp = TempExtreme(value=temp)
            min_temp = TempExtreme(value=temp)

        return StatusSnapshot(
            site_name=config.display_name,
            device_id=f"MOCK-{config.device_prefix}",
            timestamp=now.isoformat(),
            system=SystemBlock(
                status=derive_system_status(alerts),
                uptime=config.uptime,
                connection="online",
                frequency=round(self._jitter(config.frequency_hz, FREQUENCY_JITTER_HZ), 3),
                bus_voltage=round(
                    self._jitter(config.bus_voltage_kv, BUS_VOLTAGE_JITTER_KV), 3
                ),
                real_power_kw=round(real_power, 2),
                reactive_power_kvar=round(reactive_power, 2),
                execution_rate=round(execution_rate, 2),
                service_type=config.service_type,
            ),
            battery=BatteryBlock(
                soc=soc,
                soh=config.soh,
                voltage=round(voltage, 2),
                current=round(current, 2),
                temp=temp,
                max_temp=max_temp,
                min_temp=min_temp,
            ),
            safety=SafetyBlock(
                fire_alarm=fire_alarm,
                door_status="closed",
                emergency_stop=False,
            ),
            power=PowerBlock(
                pv_kw=round(pv_kw, 2),
                load_kw=round(load_kw, 2),
                grid_kw=round(grid_kw, 2),
                battery_kw=round(real_power, 2),
            ),
            devices=devices,
            alerts=alerts,
        )

    def generate_history(
        self,
        site: str | None,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        now: datetime | None = None,
    ) -> list[HistoryPoint]:
        """Generate a history series of :data:`HISTORY_POINTS` points.

        Points are evenly spaced with the first at ``start`` and the last at
        ``end``. State of charge follows a 24-hour sinusoid around the site
        baseline plus small noise.

        Args:
            site: Site key; unknown keys use the default configuration.
            start: Window start. Defaults to 24 hours before ``end``.
            end: Window end. Defaults to now.
            now: Reference time used when ``end`` is omitted.

        Returns:
            The history points in chronological order.

        Raises:
            ValueError: If ``end`` is not after ``start``.
        """
        config = self.site_config(site)
        start_ts, end_ts = resolve_window(start, end, now)
        step = (end_ts - start_ts) / (HISTORY_POINTS - 1)

        points: list[HistoryPoint] = []
        for idx in range(HISTORY_POINTS):
            ts = end_ts if idx == HISTORY_POINTS - 1 else start_ts + step * idx
            points.append(self._history_point(config, ts))
        return points

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _jitter(self, base: float, spread: float) -> float:
        """Return *base* plus uniform noise in [-spread, +spread]."""
        return base + self._rng.uniform(-spread, spread)

    def _generate_devices(self, config: SiteConfig) -> list[DeviceReading]:
        devices: list[DeviceReading] = []
        for idx in range(1, config.device_count + 1):
            warning = self._rng.random() < DEVICE_WARNING_PROBABILITY
            devices.append(
                DeviceReading(
                    id=f"{config.device_prefix}-{idx:02d}",
                    name=f"{config.device_prefix} #{idx}",
                    status="warning" if warning else "normal",
                    soc=round(clamp_pct(self._jitter(config.soc, DEVICE_SOC_JITTER)), 2),
                    temp=round(self._jitter(config.device_temp_c, DEVICE_TEMP_JITTER), 2),
                    voltage=round(
                        self._jitter(config.device_voltage_v, DEVICE_VOLTAGE_JITTER), 2
                    ),
                )
            )
        return devices

    def _history_point(self, config: SiteConfig, ts: datetime) -> HistoryPoint:
        # Peak charge mid-afternoon, trough before dawn.
        hour = ts.hour + ts.minute / 60.0
        diurnal = math.sin(2.0 * math.pi * (hour - 9.0) / 24.0)
        soc = clamp_pct(
            config.soc
            + HISTORY_SOC_AMPLITUDE * diurnal
            + self._rng.uniform(-HISTORY_SOC_NOISE, HISTORY_SOC_NOISE)
        )

        if config.is_operational:
            power = self._jitter(
                config.real_power_kw,
                abs(config.real_power_kw) * HISTORY_POWER_JITTER_RATIO,
            )
            reactive = self._jitter(
                config.reactive_power_kvar,
                abs(config.reactive_power_kvar) * REACTIVE_JITTER_RATIO,
            )
            execution_rate = clamp_pct(
                self._jitter(config.execution_rate, EXECUTION_RATE_JITTER)
            )
        else:
            power = self._jitter(0.0, IDLE_POWER_JITTER_KW)
            reactive = self._jitter(0.0, IDLE_POWER_JITTER_KW)
            execution_rate = 0.0

        return HistoryPoint(
            time=ts.isoformat(),
            soc=round(soc, 2),
            power=round(power, 2),
            frequency=round(self._jitter(config.frequency_hz, FREQUENCY_JITTER_HZ), 3),
            execution_rate=round(execution_rate, 2),
            reactive_power=round(reactive, 2),
        )
