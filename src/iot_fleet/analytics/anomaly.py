"""
Sigma-rule anomaly detection.

A point is anomalous when it lies more than two standard deviations from
its expected mean, and high severity beyond three. No training step; the
same series always yields the same anomalies.
"""

from __future__ import annotations

import statistics
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional

from .._types import Device
from ..exceptions import InvalidParameterError

ANOMALY_SIGMA = 2.0
HIGH_SEVERITY_SIGMA = 3.0

# Device gauges compared across the fleet during analysis
TELEMETRY_METRICS = (
    "battery_level",
    "signal_strength",
    "temperature",
    "memory_usage",
    "cpu_usage",
)


class Severity(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class DataPoint:
    """One labeled observation with the statistics it is judged against."""
    label: str
    value: float
    mean: float
    std_dev: float
    source_id: Optional[str] = None


@dataclass(frozen=True)
class Anomaly:
    source_id: Optional[str]
    label: str
    value: float
    expected: float
    deviation: float
    severity: Severity

    def to_dict(self) -> dict:
        return {
            "source_id": self.source_id,
            "label": self.label,
            "value": self.value,
            "expected": self.expected,
            "deviation": self.deviation,
            "severity": self.severity.value,
        }


def evaluate_point(point: DataPoint) -> Optional[Anomaly]:
    """Apply the sigma rule to one point. Returns None if the point is normal."""
    if point.std_dev < 0:
        raise InvalidParameterError("std_dev", point.std_dev, "must be >= 0")

    deviation = abs(point.value - point.mean)
    if deviation <= ANOMALY_SIGMA * point.std_dev:
        return None

    if deviation > HIGH_SEVERITY_SIGMA * point.std_dev:
        severity = Severity.HIGH
    else:
        severity = Severity.MEDIUM

    return Anomaly(
        source_id=point.source_id,
        label=point.label,
        value=point.value,
        expected=point.mean,
        deviation=deviation,
        severity=severity,
    )


def detect_anomalies(series: Iterable[DataPoint]) -> list[Anomaly]:
    """Return the anomalous points of a series, in input order."""
    anomalies = []
    for point in series:
        anomaly = evaluate_point(point)
        if anomaly is not None:
            anomalies.append(anomaly)
    return anomalies


def series_from_values(label: str, values: Mapping[str, float]) -> list[DataPoint]:
    """
    Build a labeled series from raw values keyed by source id.

    Mean and population standard deviation are taken over the whole
    series. Fewer than two values give an empty series.
    """
    if len(values) < 2:
        return []
    numbers = [float(v) for v in values.values()]
    mean = statistics.fmean(numbers)
    std_dev = statistics.pstdev(numbers, mu=mean)
    return [
        DataPoint(label=label, value=float(v), mean=mean, std_dev=std_dev, source_id=source_id)
        for source_id, v in values.items()
    ]


def telemetry_series(
    devices: Iterable[Device],
    metrics: Iterable[str] = TELEMETRY_METRICS,
) -> list[DataPoint]:
    """One series per telemetry gauge, each point sourced from a device."""
    devices = list(devices)
    points: list[DataPoint] = []
    for metric in metrics:
        values = {d.id: getattr(d.properties, metric) for d in devices}
        points.extend(series_from_values(metric, values))
    return points
