"""
Device health scoring.

Health starts at 100 and loses a fixed amount for every telemetry
condition that is out of bounds. Conditions are independent, so a device
can lose points for several of them at once. The score is derived on
every sweep and never stored on the device.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ._types import Device


class HealthStatus(str, Enum):
    """Health classification derived from the score."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class HealthRule:
    """One deduction applied when its condition holds."""
    component: str
    deduction: int
    description: str

    def triggered(self, device: Device) -> bool:
        p = device.properties
        if self.component == "battery":
            return p.battery_level < 20
        if self.component == "signal":
            return p.signal_strength < 50
        if self.component == "memory":
            return p.memory_usage > 80
        if self.component == "cpu":
            return p.cpu_usage > 90
        if self.component == "security":
            return device.security.score < 80
        return False


HEALTH_RULES = (
    HealthRule("battery", 30, "Battery below 20%"),
    HealthRule("signal", 20, "Signal strength below 50%"),
    HealthRule("memory", 15, "Memory usage above 80%"),
    HealthRule("cpu", 10, "CPU usage above 90%"),
    HealthRule("security", 25, "Security score below 80"),
)


@dataclass
class HealthReport:
    """Health of one device at scoring time."""
    device_id: str
    overall: int
    status: HealthStatus
    breakdown: dict[str, int] = field(default_factory=dict)
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "overall": self.overall,
            "status": self.status.value,
            "breakdown": dict(self.breakdown),
            "issues": list(self.issues),
        }


def classify_health(score: int) -> HealthStatus:
    """Map a health score to its status band."""
    if score > 80:
        return HealthStatus.HEALTHY
    if score > 50:
        return HealthStatus.WARNING
    return HealthStatus.CRITICAL


def score_device(device: Device) -> HealthReport:
    """
    Score a device's health.

    breakdown maps each component to the points it cost (0 if fine).
    """
    score = 100
    breakdown: dict[str, int] = {}
    issues: list[str] = []

    for rule in HEALTH_RULES:
        if rule.triggered(device):
            score -= rule.deduction
            breakdown[rule.component] = rule.deduction
            issues.append(rule.description)
        else:
            breakdown[rule.component] = 0

    score = max(0, score)
    return HealthReport(
        device_id=device.id,
        overall=score,
        status=classify_health(score),
        breakdown=breakdown,
        issues=issues,
    )
