"""
Security posture scanning for fleet devices.

Each check compares one posture flag with the security baseline; the
scanner folds the check results into a score and risk level.
"""

from .base import CheckResult, SecurityCheck
from .checks import (
    ALL_SECURITY_CHECKS,
    RECOMMENDATIONS,
    AuthenticationCheck,
    CertificateCheck,
    EncryptionCheck,
    FirewallCheck,
    IntrusionDetectionCheck,
)
from .scanner import RiskLevel, SecurityScanResult, classify_risk, scan_device

__all__ = [
    "CheckResult",
    "SecurityCheck",
    "ALL_SECURITY_CHECKS",
    "RECOMMENDATIONS",
    "AuthenticationCheck",
    "CertificateCheck",
    "EncryptionCheck",
    "FirewallCheck",
    "IntrusionDetectionCheck",
    "RiskLevel",
    "SecurityScanResult",
    "classify_risk",
    "scan_device",
]
