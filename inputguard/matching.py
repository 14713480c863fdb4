from __future__ import annotations

from typing import Iterable, Optional

from inputguard.models import DetectedThreat, RenderContext, ScanVerdict
from inputguard.patterns import ThreatSignature
from inputguard.scoring import DEFAULT_POLICY, ScoringPolicy, score

_FRAGMENT_LIMIT = 100


def _fragment(text: str) -> str:
    if len(text) <= _FRAGMENT_LIMIT:
        return text
    return text[:_FRAGMENT_LIMIT] + "..."


def match_signatures(
    text: str,
    signatures: Iterable[ThreatSignature],
    *,
    context: str,
    render_context: Optional[RenderContext] = None,
) -> list[DetectedThreat]:
    """Run every applicable signature over *text*.

    Each signature contributes at most one threat (its first match). Several
    signatures matching the same substring are all reported.
    """
    threats: list[DetectedThreat] = []
    for signature in signatures:
        if render_context is not None and render_context not in signature.contexts:
            continue
        match = signature.pattern.search(text)
        if match is None:
            continue
        threats.append(
            DetectedThreat(
                kind=signature.kind.name,
                message=signature.description,
                severity=signature.severity,
                context=context,
                matched_fragment=_fragment(match.group(0)),
                signature=signature.name,
            )
        )
    return threats



def build_verdict(
    threats: Iterable[DetectedThreat], policy: ScoringPolicy = DEFAULT_POLICY
) -> ScanVerdict:
    """Score *threats* and wrap them in a verdict; safe means no threats."""
    threats = tuple(threats)
    assessment = score(threats, policy)
    return ScanVerdict(
        safe=not threats,
        threats=threats,
        risk_score=assessment.risk_score,
        severity=assessment.severity,
    )
