"""
Security scanner.

Runs the posture checks against one device and turns the failures into a
score, a risk level and the matching recommendations. Scanning is pure:
the caller decides whether to write the score back to the device.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .._types import Device
from .base import CheckResult, SecurityCheck
from .checks import ALL_SECURITY_CHECKS, RECOMMENDATIONS


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class SecurityScanResult:
    """Outcome of scanning one device."""
    device_id: str
    score: int
    risk_level: RiskLevel
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    checks: list[CheckResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "score": self.score,
            "risk_level": self.risk_level.value,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
            "checks": {c.check_type: c.status for c in self.checks},
        }


def classify_risk(score: int) -> RiskLevel:
    """Map a security score to its risk band."""
    if score > 80:
        return RiskLevel.LOW
    if score > 60:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def recommendation_for(issue: str) -> str:
    """Look up the remediation for an issue. Raises KeyError for unknown issues."""
    return RECOMMENDATIONS[issue]


def scan_device(
    device: Device,
    checks: Optional[list[SecurityCheck]] = None,
) -> SecurityScanResult:
    """Scan a device's security posture.

    Args:
        device: Device to scan (not modified)
        checks: Checks to run (defaults to ALL_SECURITY_CHECKS)
    """
    if checks is None:
        checks = ALL_SECURITY_CHECKS

    score = 100
    results: list[CheckResult] = []
    issues: list[str] = []

    for check in checks:
        result = check.run(device.security)
        results.append(result)
        if result.failed:
            score -= result.deduction
            issues.append(result.issue)

    score = max(0, score)
    return SecurityScanResult(
        device_id=device.id,
        score=score,
        risk_level=classify_risk(score),
        issues=issues,
        recommendations=[recommendation_for(issue) for issue in issues],
        checks=results,
    )
