"""Tests for sigma-rule anomaly detection."""

import pytest

from iot_fleet._types import Device, DeviceProperties
from iot_fleet.analytics import (
    DataPoint,
    Severity,
    detect_anomalies,
    series_from_values,
    telemetry_series,
)
from iot_fleet.analytics.anomaly import TELEMETRY_METRICS, evaluate_point
from iot_fleet.exceptions import InvalidParameterError


class TestEvaluatePoint:
    """Tests for the two/three sigma rule on single points."""

    def test_within_one_sigma_not_flagged(self):
        assert evaluate_point(DataPoint("cpu", value=60, mean=50, std_dev=10)) is None

    def test_exactly_two_sigma_not_flagged(self):
        assert evaluate_point(DataPoint("cpu", value=70, mean=50, std_dev=10)) is None

    def test_two_and_a_half_sigma_is_medium(self):
        anomaly = evaluate_point(DataPoint("cpu", value=75, mean=50, std_dev=10))

        assert anomaly is not None
        assert anomaly.severity == Severity.MEDIUM
        assert anomaly.deviation == 25
        assert anomaly.expected == 50

    def test_three_and_a_half_sigma_is_high(self):
        anomaly = evaluate_point(DataPoint("cpu", value=85, mean=50, std_dev=10))
        assert anomaly.severity == Severity.HIGH

    def test_below_mean_is_flagged(self):
        """Deviation is absolute."""
        anomaly = evaluate_point(DataPoint("battery", value=15, mean=50, std_dev=10))
        assert anomaly.severity == Severity.HIGH

    def test_zero_std_dev(self):
        """With no spread any difference is high severity, equality is normal."""
        assert evaluate_point(DataPoint("x", value=5, mean=5, std_dev=0)) is None
        assert evaluate_point(DataPoint("x", value=6, mean=5, std_dev=0)).severity == Severity.HIGH

    def test_negative_std_dev_rejected(self):
        with pytest.raises(InvalidParameterError):
            evaluate_point(DataPoint("x", value=1, mean=0, std_dev=-1))


class TestDetectAnomalies:
    """Tests for detect_anomalies()."""

    def test_keeps_input_order(self):
        series = [
            DataPoint("a", value=100, mean=0, std_dev=10, source_id="1"),
            DataPoint("b", value=1, mean=0, std_dev=10, source_id="2"),
            DataPoint("c", value=-25, mean=0, std_dev=10, source_id="3"),
        ]

        anomalies = detect_anomalies(series)

        assert [a.source_id for a in anomalies] == ["1", "3"]

    def test_deterministic(self):
        series = [DataPoint("a", value=v, mean=10, std_dev=2) for v in (9, 15, 20)]
        assert detect_anomalies(series) == detect_anomalies(series)

    def test_empty_series(self):
        assert detect_anomalies([]) == []


class TestSeries:
    """Tests for building series from fleet values."""

    def test_single_value_gives_empty_series(self):
        assert series_from_values("cpu", {"d1": 50}) == []

    def test_lone_outlier_in_six(self):
        """One outlier among five equal values lies about 2.24 sigma out."""
        values = {f"d{i}": 50.0 for i in range(5)}
        values["d5"] = 100.0

        anomalies = detect_anomalies(series_from_values("battery_level", values))

        assert len(anomalies) == 1
        assert anomalies[0].source_id == "d5"
        assert anomalies[0].severity == Severity.MEDIUM

    def test_uniform_values_not_flagged(self):
        values = {f"d{i}": 42.0 for i in range(10)}
        assert detect_anomalies(series_from_values("cpu", values)) == []

    def test_telemetry_series_covers_every_metric(self):
        devices = [
            Device(name=f"d{i}", properties=DeviceProperties(cpu_usage=10 * i))
            for i in range(3)
        ]

        points = telemetry_series(devices)

        assert len(points) == len(TELEMETRY_METRICS) * 3
        assert {p.label for p in points} == set(TELEMETRY_METRICS)
        assert {p.source_id for p in points} == {d.id for d in devices}
