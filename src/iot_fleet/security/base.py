"""
Base classes for security posture checks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .._types import SecurityPosture, now_utc


@dataclass
class CheckResult:
    """Result of one posture check."""
    check_type: str
    status: str  # pass, fail
    deduction: int = 0
    issue: Optional[str] = None
    checked_at: datetime = field(default_factory=now_utc)

    @property
    def failed(self) -> bool:
        return self.status == "fail"


class SecurityCheck(ABC):
    """Base class for posture checks. Each check owns one issue and one deduction."""

    @property
    @abstractmethod
    def check_type(self) -> str:
        """Type identifier for this check."""
        pass

    @property
    @abstractmethod
    def issue(self) -> str:
        """Issue text reported when the check fails."""
        pass

    @property
    @abstractmethod
    def deduction(self) -> int:
        """Points removed from the security score on failure."""
        pass

    @abstractmethod
    def passes(self, posture: SecurityPosture) -> bool:
        """Whether the posture meets this baseline."""
        pass

    def run(self, posture: SecurityPosture) -> CheckResult:
        """Evaluate the posture against this check."""
        if self.passes(posture):
            return CheckResult(check_type=self.check_type, status="pass")
        return CheckResult(
            check_type=self.check_type,
            status="fail",
            deduction=self.deduction,
            issue=self.issue,
        )
