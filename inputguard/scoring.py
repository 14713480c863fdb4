from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

from inputguard.models import Severity


class _Rated(Protocol):
    severity: Severity


@dataclass(frozen=True)
class ScoringPolicy:
    """Per-severity weights and the safe/unsafe cut-off.

    The defaults are heuristic and have not been calibrated against an
    attack corpus.
    """

    critical_weight: int = 40
    high_weight: int = 25
    medium_weight: int = 15
    low_weight: int = 5
    safe_threshold: int = 70

    def weight(self, severity: Severity) -> int:
        if severity is Severity.CRITICAL:
            return self.critical_weight
        if severity is Severity.HIGH:
            return self.high_weight
        if severity is Severity.MEDIUM:
            return self.medium_weight
        if severity is Severity.NONE:
            return 0
        return self.low_weight


DEFAULT_POLICY = ScoringPolicy()


@dataclass(frozen=True)
class RiskAssessment:
    risk_score: int
    severity: Severity


def _clamp(value: int) -> int:
    return max(0, min(100, value))


def highest_severity(items: Iterable[_Rated]) -> Severity:
    """Return the maximum severity, or ``Severity.NONE`` for no items."""
    highest = Severity.NONE
    for item in items:
        if item.severity.rank > highest.rank:
            highest = item.severity
    return highest


def score(threats: Iterable[_Rated], policy: ScoringPolicy = DEFAULT_POLICY) -> RiskAssessment:
    """Severity-weighted risk of a list of threats, clamped to 0..100."""
    threats = list(threats)
    if not threats:
        return RiskAssessment(risk_score=0, severity=Severity.NONE)
    total = sum(policy.weight(t.severity) for t in threats)
    return RiskAssessment(risk_score=_clamp(total), severity=highest_severity(threats))


def safety_score(warnings: Iterable[_Rated], policy: ScoringPolicy = DEFAULT_POLICY) -> int:
    """Complement of :func:`score`: 100 minus the same deductions."""
    deductions = sum(policy.weight(w.severity) for w in warnings)
    return _clamp(100 - deductions)
