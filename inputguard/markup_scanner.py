"""Markup and script injection detection.

Besides the raw text, the scanner looks at percent-, entity- and
unicode-escape-decoded variants so that encoded payloads are caught too.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping, Union

from inputguard.encoding import decoded_variants
from inputguard.matching import build_verdict, match_signatures
from inputguard.models import (
    DetectedThreat,
    RenderContext,
    RequestContext,
    ScanVerdict,
    Severity,
    SignatureKind,
)
from inputguard.patterns import MARKUP_SIGNATURES
from inputguard.scoring import DEFAULT_POLICY, ScoringPolicy

logger = logging.getLogger(__name__)

_PROTOCOL_KIND = SignatureKind.DANGEROUS_PROTOCOL.name


def _coerce_render_context(value: Union[RenderContext, str, None]) -> RenderContext:
    if isinstance(value, RenderContext):
        return value
    if value is None:
        return RenderContext.HTML
    try:
        return RenderContext(str(value).lower())
    except ValueError:
        logger.debug("Unknown render context %r, scanning as html", value)
        return RenderContext.HTML


def _adjust_for_context(threat: DetectedThreat, render_context: RenderContext) -> DetectedThreat:
    # Inside an attribute value a bare protocol is one step from execution.
    if (
        render_context is RenderContext.ATTRIBUTE
        and threat.kind == _PROTOCOL_KIND
        and threat.severity is Severity.MEDIUM
    ):
        return replace(threat, severity=Severity.HIGH)
    return threat


def _decoded_threats(
    text: str, seen: set[str], field_label: str, render_context: RenderContext
) -> list[DetectedThreat]:
    found: list[DetectedThreat] = []
    for label, variant in decoded_variants(text):
        for threat in match_signatures(
            variant, MARKUP_SIGNATURES, context=field_label, render_context=render_context
        ):
            if threat.signature in seen:
                continue
            seen.add(threat.signature)
            found.append(replace(threat, message=f"{threat.message} ({label})"))
    return found


def scan_markup_injection(
    text: Any,
    context: Union[RequestContext, Mapping[str, Any], None] = None,
    field_label: str = "unknown",
    render_context: Union[RenderContext, str, None] = RenderContext.HTML,
    *,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> ScanVerdict:
    """Scan *text* for markup, script, style and template injection.

    ``render_context`` selects the signatures that matter where the value
    will be rendered: stylesheet-only rules are skipped for attribute
    values, handler and template rules are skipped for stylesheets.
    """
    if not isinstance(text, str):
        return build_verdict((), policy)

    try:
        render = _coerce_render_context(render_context)
        threats = match_signatures(
            text, MARKUP_SIGNATURES, context=field_label, render_context=render
        )
        seen = {t.signature for t in threats if t.signature}
        decoded = _decoded_threats(text, seen, field_label, render)
        if decoded:
            threats.extend(decoded)
            threats.append(
                DetectedThreat(
                    kind="ENCODED_PAYLOAD",
                    message="Markup injection hidden behind encoding",
                    severity=Severity.CRITICAL,
                    context=field_label,
                    matched_fragment=decoded[0].matched_fragment,
                )
            )
        return build_verdict([_adjust_for_context(t, render) for t in threats], policy)
    except Exception as exc:
        logger.error("Markup scan failed for field %s", field_label, exc_info=True)
        return build_verdict(
            [
                DetectedThreat(
                    kind="SCAN_ERROR",
                    message=f"Markup scan failed: {exc}",
                    severity=Severity.MEDIUM,
                    context=field_label,
                )
            ],
            policy,
        )
