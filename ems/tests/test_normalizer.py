"""
Unit tests for the upstream payload normalizer.

Tests verify:
- Nested canonical payloads map field for field.
- Flat and camelCase vendor variants are recognised.
- Missing or unparseable fields fall back to neutral defaults.
- System status is re-derived from alerts, never copied from the payload.
- History accepts bare arrays and wrapped arrays and drops bad entries.

CHANGELOG:
- 2026-03-11: Overflowing and non-finite number tests
- 2026-03-06: Top-level ``data`` envelope tests
- 2026-03-05: Initial creation (STORY-107)

TODO:
- None
"""

from datetime import UTC, datetime

import pytest

from ems.src.normalizer import normalize_history, normalize_status, pick

NOW = datetime(2026, 3, 5, 8, 0, tzinfo=UTC)


def _normalize(payload):
    return normalize_status(
        payload,
        site="chiayi",
        site_name="盛大嘉義場",
        device_id="dev-001",
        now=NOW,
    )


# ---------------------------------------------------------------------------
# Canonical and vendor payloads
# ---------------------------------------------------------------------------


class TestCanonicalPayload:
    """A payload already in the canonical nested shape."""

    PAYLOAD = {
        "siteName": "Upstream Site",
        "deviceId": "gw-7",
        "timestamp": "2026-03-05T07:59:58Z",
        "system": {
            "status": "critical",
            "uptime": "3d 1h 0m",
            "connection": "online",
            "frequency": 59.98,
            "bus_voltage": 22.7,
            "real_power_kw": 1480.5,
            "reactive_power_kvar": 118.0,
            "execution_rate": 99.1,
            "service_type": 2,
        },
        "battery": {
            "soc": 74.2,
            "soh": 98.0,
            "voltage": 770.1,
            "current": 1922.5,
            "temp": 27.3,
            "max_temp": {"value": 29.1, "position": "Rack 3"},
            "min_temp": {"value": 25.2, "position": "Rack 1"},
        },
        "safety": {"fire_alarm": False, "door_status": "closed", "emergency_stop": False},
        "power": {"pv_kw": 14.0, "load_kw": 12.0, "grid_kw": -1482.5, "battery_kw": 1480.5},
        "devices": [
            {"id": "R1", "name": "Rack 1", "status": "normal", "soc": 74, "temp": 25.2, "voltage": 769},
        ],
        "alerts": [],
    }

    def test_identity_fields(self) -> None:
        snapshot = _normalize(self.PAYLOAD)

        assert snapshot.site_name == "Upstream Site"
        assert snapshot.device_id == "gw-7"
        assert snapshot.timestamp == "2026-03-05T07:59:58Z"

    def test_system_block(self) -> None:
        system = _normalize(self.PAYLOAD).system

        assert system.uptime == "3d 1h 0m"
        assert system.frequency == 59.98
        assert system.bus_voltage == 22.7
        assert system.real_power_kw == 1480.5
        assert system.service_type == 2

    def test_battery_block(self) -> None:
        battery = _normalize(self.PAYLOAD).battery

        assert battery.soc == 74.2
        assert battery.current == 1922.5
        assert battery.max_temp.value == 29.1
        assert battery.max_temp.position == "Rack 3"
        assert battery.min_temp.position == "Rack 1"

    def test_devices(self) -> None:
        devices = _normalize(self.PAYLOAD).devices

        assert len(devices) == 1
        assert devices[0].id == "R1"
        assert devices[0].soc == 74.0

    def test_status_rederived_from_alerts(self) -> None:
        # The payload claims "critical" but carries no alerts.
        assert _normalize(self.PAYLOAD).system.status == "normal"


class TestVendorVariants:
    """Flat and camelCase field names are recognised."""

    def test_flat_camel_case_fields(self) -> None:
        snapshot = _normalize(
            {
                "SOC": "55.5",
                "realPower": 900,
                "freq": 60.01,
                "batteryVoltage": 760,
                "maxTemp": 31.0,
                "maxTempPosition": "CY-BESS #4",
                "pvPower": 3.2,
                "fireAlarm": "active",
                "connected": False,
            }
        )

        assert snapshot.battery.soc == 55.5
        assert snapshot.system.real_power_kw == 900.0
        assert snapshot.system.frequency == 60.01
        assert snapshot.battery.voltage == 760.0
        assert snapshot.battery.max_temp.value == 31.0
        assert snapshot.battery.max_temp.position == "CY-BESS #4"
        assert snapshot.power.pv_kw == 3.2
        assert snapshot.safety.fire_alarm is True
        assert snapshot.system.connection == "offline"

    def test_data_envelope_unwrapped(self) -> None:
        snapshot = _normalize({"data": {"soc": 42, "deviceId": "gw-9"}})

        assert snapshot.battery.soc == 42.0
        assert snapshot.device_id == "gw-9"

    def test_device_list_under_alternate_key(self) -> None:
        snapshot = _normalize({"racks": [{"sn": "A1", "state": "fault"}, {"soc": 10}]})

        assert snapshot.devices[0].id == "A1"
        assert snapshot.devices[0].status == "critical"
        assert snapshot.devices[1].id == "dev-001-02"
        assert snapshot.devices[1].name == "dev-001-02"


class TestDefaults:
    """Missing or bad input yields neutral values, never an exception."""

    def test_empty_payload(self) -> None:
        snapshot = _normalize({})

        assert snapshot.site_name == "盛大嘉義場"
        assert snapshot.device_id == "dev-001"
        assert snapshot.timestamp == NOW.isoformat()
        assert snapshot.system.uptime == "N/A"
        assert snapshot.system.connection == "online"
        assert snapshot.system.service_type is None
        assert snapshot.battery.soc == 0.0
        assert snapshot.battery.max_temp.position == "N/A"
        assert snapshot.safety.door_status == "N/A"
        assert snapshot.devices == []
        assert snapshot.alerts == []

    @pytest.mark.parametrize("payload", [None, [], "oops", 42])
    def test_non_object_payload(self, payload) -> None:
        snapshot = _normalize(payload)

        assert snapshot.battery.soc == 0.0
        assert snapshot.system.status == "normal"

    def test_unparseable_number_defaults_to_zero(self) -> None:
        snapshot = _normalize({"soc": "n/a", "frequency": {"x": 1}})

        assert snapshot.battery.soc == 0.0
        assert snapshot.system.frequency == 0.0

    def test_overflowing_numbers_default(self) -> None:
        snapshot = _normalize(
            {"service_type": 1e999, "frequency": 1e999, "soc": 10**400, "soh": float("nan")}
        )

        assert snapshot.system.service_type is None
        assert snapshot.system.frequency == 0.0
        assert snapshot.battery.soc == 0.0
        assert snapshot.battery.soh == 0.0

    def test_non_finite_history_values_default(self) -> None:
        points = normalize_history([{"time": "t0", "soc": float("inf"), "power": -1e999}])

        assert points[0].soc == 0.0
        assert points[0].power == 0.0

    def test_soc_clamped(self) -> None:
        assert _normalize({"soc": 140}).battery.soc == 100.0
        assert _normalize({"soc": -3}).battery.soc == 0.0

    def test_non_object_device_entries_skipped(self) -> None:
        snapshot = _normalize({"devices": ["x", None, {"id": "D1"}]})

        assert [d.id for d in snapshot.devices] == ["D1"]


class TestAlerts:
    """Upstream alerts are normalized and drive system status."""

    def test_severity_mapping_and_status(self) -> None:
        snapshot = _normalize(
            {
                "alarms": [
                    {"id": "a1", "level": "warn", "msg": "Door open", "ts": "2026-03-05T07:00:00Z"},
                    {"code": 17, "severity": "FAULT", "description": "PCS trip"},
                ]
            }
        )

        first, second = snapshot.alerts
        assert first.id == "a1"
        assert first.severity == "warning"
        assert first.message == "Door open"
        assert first.time == "2026-03-05T07:00:00Z"
        assert second.id == "17"
        assert second.severity == "critical"
        assert second.time == NOW.isoformat()
        assert snapshot.system.status == "critical"

    def test_string_alert_and_unknown_severity(self) -> None:
        snapshot = _normalize({"alerts": ["Grid sync lost", {"type": "purple", "message": "?"}]})

        assert snapshot.alerts[0].message == "Grid sync lost"
        assert snapshot.alerts[0].severity == "info"
        assert snapshot.alerts[0].id.startswith("chiayi-upstream-")
        assert snapshot.alerts[1].severity == "info"
        assert snapshot.system.status == "warning"

    def test_alert_serialized_with_type_alias(self) -> None:
        snapshot = _normalize({"alerts": [{"id": "a1", "type": "critical", "message": "x"}]})

        dumped = snapshot.model_dump(by_alias=True)
        assert dumped["alerts"][0]["type"] == "critical"


class TestPick:
    def test_first_non_null_wins(self) -> None:
        payload = {"a": None, "b": {"c": 0}, "d": 5}

        assert pick(payload, ("a", "b.c", "d")) == 0

    def test_missing_path(self) -> None:
        assert pick({"a": 1}, ("a.b", "x")) is None


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class TestNormalizeHistory:
    """History payload variants."""

    def test_bare_array(self) -> None:
        points = normalize_history(
            [
                {"time": "2026-03-05T00:00:00Z", "soc": 60, "power": 100, "frequency": 60.0},
                {"timestamp": "2026-03-05T00:30:00Z", "SOC": 61, "realPower": 110},
            ]
        )

        assert [p.time for p in points] == ["2026-03-05T00:00:00Z", "2026-03-05T00:30:00Z"]
        assert points[1].soc == 61.0
        assert points[1].power == 110.0
        assert points[1].frequency == 0.0

    @pytest.mark.parametrize("key", ["history", "data", "points", "items", "records"])
    def test_wrapped_array(self, key: str) -> None:
        points = normalize_history({key: [{"t": 1700000000, "soc": 50}]})

        assert len(points) == 1
        assert points[0].time == "1700000000"

    def test_bad_entries_dropped(self) -> None:
        points = normalize_history([{"soc": 50}, "junk", {"time": "x", "soc": 120}])

        assert len(points) == 1
        assert points[0].soc == 100.0

    @pytest.mark.parametrize("payload", [None, {}, {"history": "nope"}, 7])
    def test_unusable_payload_is_empty(self, payload) -> None:
        assert normalize_history(payload) == []
