"""
Security baseline checks for IoT devices.

Five checks compare a device's security posture against the strongest
known configuration. Each failing check contributes exactly one issue,
and every issue has exactly one remediation in RECOMMENDATIONS.
"""

from __future__ import annotations

from .._types import STRONGEST_AUTH, STRONGEST_ENCRYPTION, SecurityPosture
from .base import SecurityCheck


WEAK_ENCRYPTION = "Weak encryption"
WEAK_AUTHENTICATION = "Weak authentication"
INVALID_CERTIFICATE = "Invalid certificate"
FIREWALL_DISABLED = "Firewall disabled"
IDS_INACTIVE = "Intrusion detection inactive"

# Issue -> remediation. Must stay total over the issues of ALL_SECURITY_CHECKS.
RECOMMENDATIONS: dict[str, str] = {
    WEAK_ENCRYPTION: "Upgrade encryption to AES-256",
    WEAK_AUTHENTICATION: "Switch authentication to OAuth2",
    INVALID_CERTIFICATE: "Renew or reinstall the device certificate",
    FIREWALL_DISABLED: "Enable the device firewall",
    IDS_INACTIVE: "Activate intrusion detection",
}


class EncryptionCheck(SecurityCheck):
    """Encryption must be the strongest known cipher."""

    @property
    def check_type(self) -> str:
        return "encryption"

    @property
    def issue(self) -> str:
        return WEAK_ENCRYPTION

    @property
    def deduction(self) -> int:
        return 20

    def passes(self, posture: SecurityPosture) -> bool:
        return posture.encryption == STRONGEST_ENCRYPTION


class AuthenticationCheck(SecurityCheck):
    """Authentication must be the strongest known scheme."""

    @property
    def check_type(self) -> str:
        return "authentication"

    @property
    def issue(self) -> str:
        return WEAK_AUTHENTICATION

    @property
    def deduction(self) -> int:
        return 15

    def passes(self, posture: SecurityPosture) -> bool:
        return posture.authentication == STRONGEST_AUTH


class CertificateCheck(SecurityCheck):

    @property
    def check_type(self) -> str:
        return "certificate"

    @property
    def issue(self) -> str:
        return INVALID_CERTIFICATE

    @property
    def deduction(self) -> int:
        return 25

    def passes(self, posture: SecurityPosture) -> bool:
        return posture.certificate_valid


class FirewallCheck(SecurityCheck):

    @property
    def check_type(self) -> str:
        return "firewall"

    @property
    def issue(self) -> str:
        return FIREWALL_DISABLED

    @property
    def deduction(self) -> int:
        return 10

    def passes(self, posture: SecurityPosture) -> bool:
        return posture.firewall_enabled


class IntrusionDetectionCheck(SecurityCheck):

    @property
    def check_type(self) -> str:
        return "intrusion_detection"

    @property
    def issue(self) -> str:
        return IDS_INACTIVE

    @property
    def deduction(self) -> int:
        return 15

    def passes(self, posture: SecurityPosture) -> bool:
        return posture.intrusion_detection


# All security checks in evaluation order
ALL_SECURITY_CHECKS: list[SecurityCheck] = [
    EncryptionCheck(),
    AuthenticationCheck(),
    CertificateCheck(),
    FirewallCheck(),
    IntrusionDetectionCheck(),
]
