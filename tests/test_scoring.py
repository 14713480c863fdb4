"""Tests for inputguard.scoring."""

from __future__ import annotations

from inputguard.models import DetectedThreat, SanitizationWarning, Severity
from inputguard.scoring import (
    DEFAULT_POLICY,
    ScoringPolicy,
    highest_severity,
    safety_score,
    score,
)


def _threat(severity: Severity) -> DetectedThreat:
    return DetectedThreat(kind="INJECTION_PATTERN", message="m", severity=severity, context="f")


def _warning(severity: Severity) -> SanitizationWarning:
    return SanitizationWarning(kind="W", message="m", severity=severity)


class TestRiskScore:
    def test_empty(self):
        assessment = score([])
        assert assessment.risk_score == 0
        assert assessment.severity is Severity.NONE

    def test_weights(self):
        assert score([_threat(Severity.CRITICAL)]).risk_score == 40
        assert score([_threat(Severity.HIGH)]).risk_score == 25
        assert score([_threat(Severity.MEDIUM)]).risk_score == 15
        assert score([_threat(Severity.LOW)]).risk_score == 5

    def test_sum_and_max_severity(self):
        assessment = score([_threat(Severity.MEDIUM), _threat(Severity.CRITICAL)])
        assert assessment.risk_score == 55
        assert assessment.severity is Severity.CRITICAL

    def test_clamped_to_100(self):
        assert score([_threat(Severity.CRITICAL)] * 5).risk_score == 100

    def test_custom_policy(self):
        policy = ScoringPolicy(critical_weight=90)
        assert score([_threat(Severity.CRITICAL)], policy).risk_score == 90


class TestSafetyScore:
    def test_no_warnings(self):
        assert safety_score([]) == 100

    def test_is_complement_of_risk(self):
        warnings = [_warning(Severity.CRITICAL), _warning(Severity.MEDIUM)]
        assert safety_score(warnings) == 100 - score(warnings).risk_score == 45

    def test_clamped_at_zero(self):
        assert safety_score([_warning(Severity.CRITICAL)] * 4) == 0

    def test_default_threshold(self):
        assert DEFAULT_POLICY.safe_threshold == 70


class TestHighestSeverity:
    def test_ordering(self):
        items = [_threat(Severity.LOW), _threat(Severity.HIGH), _threat(Severity.MEDIUM)]
        assert highest_severity(items) is Severity.HIGH

    def test_none_weighs_nothing(self):
        assert DEFAULT_POLICY.weight(Severity.NONE) == 0
        assert highest_severity([]) is Severity.NONE
