"""Tests for the scan orchestrator."""

from datetime import datetime

import pytest

from ovo_exporter.client import OVOAuthError, OVOFetchError, OVOSessionExpired
from ovo_exporter.exporter import MetricCache
from ovo_exporter.readings import (
    ElectricityReading,
    ElectricityTier,
    GasReading,
    MetricIdentity,
    ReadingTimeError,
    SupplyPoint,
)
from ovo_exporter.scanner import Scanner, ScanState

NOW = datetime(2024, 1, 31, 12, 0, 0)

GAS_LABELS = {"fuel": "GAS", "tier": "default", "mpxn": "7654321", "msn": "G4A12345"}
GAS_AGE_LABELS = {"fuel": "GAS", "mpxn": "7654321", "msn": "G4A12345"}


class FakeClient:
    """Stub for OVOClient with scripted responses.

    points and readings are lists consumed one item per call; an Exception
    item is raised instead of returned. A 401-style failure is modelled by
    OVOSessionExpired, which also clears logged_in like the real client.
    """

    def __init__(self, points=None, readings=None, login_error=None):
        self.logged_in = False
        self.login_calls = 0
        self.login_error = login_error
        self.points = list(points or [])
        self.readings = dict(readings or {})
        self.calls = []

    def login(self):
        self.login_calls += 1
        self.calls.append("login")
        if self.login_error is not None:
            raise self.login_error
        self.logged_in = True

    def _next(self, script):
        result = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(result, Exception):
            if isinstance(result, OVOSessionExpired):
                self.logged_in = False
            raise result
        return result

    def load_points(self):
        self.calls.append("load_points")
        return self._next(self.points)

    def load_readings(self, point, now=None):
        self.calls.append(f"load_readings:{point.mpxn}")
        return self._next(self.readings[point.mpxn])


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_scanner(registry, sleeps):
    def factory(client):
        return Scanner(client, MetricCache(registry=registry), sleep=sleeps.append, clock=lambda: NOW)
    return factory


def test_scan_publishes_gas_and_electricity(make_scanner, registry, sleeps, gas_point, electricity_point):
    client = FakeClient(
        points=[[gas_point, electricity_point]],
        readings={
            gas_point.mpxn: [[GasReading(1500.25, "2024-01-31T11:00:00")]],
            electricity_point.mpxn: [[ElectricityReading(
                [ElectricityTier("Day", 10500.2), ElectricityTier("Night", 4200.0)], "2024-01-31T00:00:00"
            )]],
        },
    )
    scanner = make_scanner(client)

    scanner.scan()

    assert scanner.state is ScanState.SCAN_OK
    assert client.login_calls == 1
    assert sleeps == []
    assert registry.get_sample_value("ovo_reading_last", GAS_LABELS) == 1500.25
    assert registry.get_sample_value("ovo_reading_age_seconds", GAS_AGE_LABELS) == pytest.approx(3600)

    elec = {"fuel": "ELECTRICITY", "mpxn": "1900000000001", "msn": "21L0012345"}
    assert registry.get_sample_value("ovo_reading_last", dict(elec, tier="Day")) == 10500.2
    assert registry.get_sample_value("ovo_reading_last", dict(elec, tier="Night")) == 4200.0
    assert registry.get_sample_value("ovo_reading_age_seconds", elec) == pytest.approx(12 * 3600)


def test_scan_reuses_session_and_gauges(make_scanner, gas_point):
    client = FakeClient(
        points=[[gas_point]],
        readings={gas_point.mpxn: [[GasReading(1.0, "")], [GasReading(2.0, "")]]},
    )
    scanner = make_scanner(client)

    scanner.scan()
    gauge = scanner.cache.get_or_create(MetricIdentity(gas_point.mpxn), GAS_LABELS)
    scanner.scan()

    assert client.login_calls == 1
    assert scanner.cache.get_or_create(MetricIdentity(gas_point.mpxn), GAS_LABELS) is gauge
    assert len(scanner.cache) == 1


def test_empty_readings_leave_gauges_unchanged(make_scanner, registry, gas_point):
    client = FakeClient(
        points=[[gas_point]],
        readings={gas_point.mpxn: [[GasReading(99.0, "")], []]},
    )
    scanner = make_scanner(client)

    scanner.scan()
    scanner.scan()

    assert scanner.state is ScanState.SCAN_OK
    assert registry.get_sample_value("ovo_reading_last", GAS_LABELS) == 99.0


def test_scan_with_no_points_succeeds(make_scanner):
    client = FakeClient(points=[[]])
    scanner = make_scanner(client)

    scanner.scan()

    assert scanner.state is ScanState.SCAN_OK


def test_login_failure_aborts_scan(make_scanner, sleeps):
    client = FakeClient(points=[[]], login_error=OVOAuthError("Login request failed: 401"))
    scanner = make_scanner(client)

    with pytest.raises(OVOAuthError):
        scanner.scan()

    assert client.calls == ["login"]
    assert sleeps == []
    assert scanner.state is ScanState.SCAN_FAILED
    assert isinstance(scanner.last_error, OVOAuthError)


def test_points_fail_twice_then_succeed(make_scanner, sleeps, gas_point):
    client = FakeClient(
        points=[OVOFetchError("500"), OVOFetchError("502"), [gas_point]],
        readings={gas_point.mpxn: [[GasReading(1.0, "")]]},
    )
    scanner = make_scanner(client)

    scanner.scan()

    assert scanner.state is ScanState.SCAN_OK
    assert client.calls.count("load_points") == 3
    assert sleeps == [3, 3]


def test_points_fail_three_times(make_scanner, sleeps):
    errors = [OVOFetchError("first"), OVOFetchError("second"), OVOFetchError("third")]
    client = FakeClient(points=errors + [[]])
    scanner = make_scanner(client)

    with pytest.raises(OVOFetchError) as exc_info:
        scanner.scan()

    assert exc_info.value is errors[2]
    assert client.calls.count("load_points") == 3
    assert sleeps == [3, 3]
    assert scanner.state is ScanState.SCAN_FAILED
    assert scanner.last_error is errors[2]


def test_session_expired_triggers_relogin(make_scanner, gas_point):
    client = FakeClient(
        points=[OVOSessionExpired("403"), [gas_point]],
        readings={gas_point.mpxn: [[GasReading(1.0, "")]]},
    )
    scanner = make_scanner(client)

    scanner.scan()

    assert client.calls == ["login", "load_points", "login", "load_points", "load_readings:7654321"]
    assert scanner.state is ScanState.SCAN_OK


def test_session_expired_on_readings_triggers_relogin(make_scanner, gas_point):
    client = FakeClient(
        points=[[gas_point]],
        readings={gas_point.mpxn: [OVOSessionExpired("401"), [GasReading(1.0, "")]]},
    )
    scanner = make_scanner(client)

    scanner.scan()

    assert client.login_calls == 2
    assert client.calls[-2:] == ["load_points", "load_readings:7654321"]


def test_point_failure_does_not_stop_other_points(make_scanner, registry, sleeps, gas_point, electricity_point):
    client = FakeClient(
        points=[[electricity_point, gas_point]],
        readings={
            electricity_point.mpxn: [OVOFetchError("500"), [ElectricityReading([ElectricityTier("Day", 5.0)], "")]],
            gas_point.mpxn: [[GasReading(7.0, "")]],
        },
    )
    scanner = make_scanner(client)

    scanner.scan()

    # First pass: electricity fails, gas is still published; second pass succeeds
    assert client.calls[:4] == ["login", "load_points", "load_readings:1900000000001", "load_readings:7654321"]
    assert client.calls.count("load_points") == 2
    assert sleeps == [3]
    assert registry.get_sample_value("ovo_reading_last", GAS_LABELS) == 7.0
    assert scanner.state is ScanState.SCAN_OK


def test_bad_timestamp_keeps_value_gauge(make_scanner, registry, sleeps, gas_point):
    client = FakeClient(
        points=[[gas_point]],
        readings={gas_point.mpxn: [[GasReading(321.0, "31/01/2024 11:00")]]},
    )
    scanner = make_scanner(client)

    with pytest.raises(ReadingTimeError):
        scanner.scan()

    assert sleeps == [3, 3]
    assert registry.get_sample_value("ovo_reading_last", GAS_LABELS) == 321.0
    assert registry.get_sample_value("ovo_reading_age_seconds", GAS_AGE_LABELS) is None
    assert MetricIdentity(gas_point.mpxn, None, "age") not in scanner.cache


def test_publish_age(make_scanner, registry, gas_point):
    scanner = make_scanner(FakeClient())

    age = scanner.publish_age(gas_point, "2024-01-31T11:00:00")

    assert age == pytest.approx(3600)
    assert registry.get_sample_value("ovo_reading_age_seconds", GAS_AGE_LABELS) == pytest.approx(3600)


def test_unsupported_fuel_is_skipped(make_scanner, registry, sleeps, gas_point):
    export_point = SupplyPoint(mpxn="1900000000002", fuel=None, fuel_label="EXPORT", start="", msn="21L0099999")
    client = FakeClient(
        points=[[export_point, gas_point]],
        readings={gas_point.mpxn: [[GasReading(88.0, "")]]},
    )
    scanner = make_scanner(client)

    scanner.scan()

    assert scanner.state is ScanState.SCAN_OK
    assert sleeps == []
    assert client.calls == ["login", "load_points", "load_readings:7654321"]
    assert registry.get_sample_value("ovo_reading_last", GAS_LABELS) == 88.0
    assert scanner.points == [export_point, gas_point]
