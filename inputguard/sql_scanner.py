"""Query-injection detection and cleanup.

``scan_injection`` reports every signature that matches, then applies the
clause-specific rules for values headed into a WHERE, ORDER BY or LIMIT
slot. ``sanitize_sql`` is the cleanup the sanitizer applies to values the
scanner rejected.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Union

from inputguard.encoding import CHARACTER_REFERENCE_RE
from inputguard.events import SecurityEventLog, dispatch_event, get_default_event_log
from inputguard.matching import build_verdict, match_signatures
from inputguard.models import (
    DetectedThreat,
    QueryClause,
    RequestContext,
    ScanVerdict,
    Severity,
)
from inputguard.patterns import (
    DANGEROUS_SQL_KEYWORDS,
    RESERVED_SQL_WORDS,
    SQL_KEYWORD_RE,
    SQL_SIGNATURES,
    TAUTOLOGY,
    UNION,
)
from inputguard.scoring import DEFAULT_POLICY, ScoringPolicy

logger = logging.getLogger(__name__)

_CATEGORY_BY_SIGNATURE = {sig.name: sig.category for sig in SQL_SIGNATURES}

# Statements are expected in query templates, so these categories are not
# evidence of tampering there.
_TEMPLATE_EXEMPT_CATEGORIES = frozenset({"select", "dml"})

_TOKEN_SPLIT_RE = re.compile(r"[\s,]+")
_NUMBER_RE = re.compile(r"\d{1,20}")
_IDENTIFIER_RE = re.compile(r"[A-Za-z_][\w.]{0,127}")

# Quotes, separators and backslashes; a character reference counts as none.
_SUSPICIOUS_CHAR_RE = re.compile(r"(?P<ref>" + CHARACTER_REFERENCE_RE.pattern + r")|['\";\\]")
_SUSPICIOUS_CHAR_LIMIT = 2


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


def _token_allowed(token: str, clause: QueryClause) -> bool:
    if _NUMBER_RE.fullmatch(token):
        return True
    if clause is QueryClause.LIMIT:
        return False
    return bool(_IDENTIFIER_RE.fullmatch(token)) and token.lower() not in RESERVED_SQL_WORDS


def _suspicious_characters(text: str, field_label: str) -> list[DetectedThreat]:
    count = sum(1 for m in _SUSPICIOUS_CHAR_RE.finditer(text) if m.group("ref") is None)
    if count <= _SUSPICIOUS_CHAR_LIMIT:
        return []
    return [
        DetectedThreat(
            kind="MULTIPLE_SUSPICIOUS_CHARS",
            message=f"{count} quote, separator or backslash characters",
            severity=Severity.MEDIUM,
            context=field_label,
        )
    ]


def _context_threats(
    text: str,
    clause: Optional[QueryClause],
    threats: Sequence[DetectedThreat],
    field_label: str,
) -> list[DetectedThreat]:
    if clause is None:
        return []

    code = f"CONTEXT_VIOLATION_{clause.value.upper()}"

    if clause is QueryClause.WHERE_CLAUSE:
        escalated = []
        for threat in threats:
            if _CATEGORY_BY_SIGNATURE.get(threat.signature) in (TAUTOLOGY, UNION):
                escalated.append(
                    DetectedThreat(
                        kind=code,
                        message=f"{threat.message} inside a filter clause",
                        severity=Severity.CRITICAL,
                        context=field_label,
                        matched_fragment=threat.matched_fragment,
                        signature=threat.signature,
                    )
                )
        return escalated

    tokens = [t for t in _TOKEN_SPLIT_RE.split(text.strip()) if t]
    offending = next((t for t in tokens if not _token_allowed(t, clause)), None)
    if offending is None:
        return []
    keyword = SQL_KEYWORD_RE.search(text)
    if keyword is None:
        return []
    return [
        DetectedThreat(
            kind=code,
            message=f"Unexpected token {offending!r} with SQL keyword in {clause.value} value",
            severity=Severity.HIGH,
            context=field_label,
            matched_fragment=keyword.group(0),
        )
    ]


def _scan_error(field_label: str, error: Exception, policy: ScoringPolicy) -> ScanVerdict:
    return build_verdict(
        [
            DetectedThreat(
                kind="SCAN_ERROR",
                message=f"Injection scan failed: {error}",
                severity=Severity.MEDIUM,
                context=field_label,
            )
        ],
        policy,
    )


def scan_injection(
    text: Any,
    context: Union[RequestContext, Mapping[str, Any], None] = None,
    field_label: str = "unknown",
    *,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> ScanVerdict:
    """Scan *text* for query-injection shapes.

    Non-string input is treated as absent and is always safe. The scan never
    raises: an internal failure becomes a ``SCAN_ERROR`` threat.
    """
    if not isinstance(text, str):
        return build_verdict((), policy)

    try:
        ctx = RequestContext.coerce(context)
        threats = match_signatures(text, SQL_SIGNATURES, context=field_label)
        threats.extend(_suspicious_characters(text, field_label))
        threats.extend(_context_threats(text, ctx.query_clause, threats, field_label))
        return build_verdict(threats, policy)
    except Exception as exc:
        logger.error("Injection scan failed for field %s", field_label, exc_info=True)
        return _scan_error(field_label, exc, policy)


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------

_LINE_COMMENT_RE = re.compile(r"--[^\n]*")
_BLOCK_COMMENT_RE = re.compile(r"/\*[^*]*\*+(?:[^/*][^*]*\*+)*/")
_COMMENT_MARKER_RE = re.compile(r"/\*|\*/")
_HASH_COMMENT_RE = re.compile(r"(['\")])[ \t]*#[^\n]*")
_KEYWORD_RE = re.compile(
    r"\b(?:" + "|".join(DANGEROUS_SQL_KEYWORDS) + r")\b", re.IGNORECASE
)
_SINGLE_QUOTES_RE = re.compile(r"'+")
_DOUBLE_QUOTES_RE = re.compile(r'"+')
_SEPARATOR_RE = re.compile(r"(" + CHARACTER_REFERENCE_RE.pattern[:-1] + r");|;")


def _escape_quote_run(match: re.Match[str]) -> str:
    # An even run is already escaped.
    run = match.group(0)
    return run if len(run) % 2 == 0 else run + run[0]


def _strip_separator(match: re.Match[str]) -> str:
    # Keep the terminator of a character reference such as "&amp;".
    return match.group(1) + ";" if match.group(1) else ""


def sanitize_sql(text: str) -> str:
    """Remove comments, dangerous keywords and statement separators, and
    escape quotes by doubling them."""
    if not isinstance(text, str) or not text:
        return ""
    while True:
        previous = text
        text = _LINE_COMMENT_RE.sub("", text)
        text = _BLOCK_COMMENT_RE.sub("", text)
        text = _COMMENT_MARKER_RE.sub("", text)
        text = _HASH_COMMENT_RE.sub(r"\1", text)
        text = _KEYWORD_RE.sub("", text)
        text = _SINGLE_QUOTES_RE.sub(_escape_quote_run, text)
        text = _DOUBLE_QUOTES_RE.sub(_escape_quote_run, text)
        text = _SEPARATOR_RE.sub(_strip_separator, text)
        text = text.strip()
        if text == previous:
            return text


# ---------------------------------------------------------------------------
# Parameterised queries
# ---------------------------------------------------------------------------

Params = Union[Sequence[Any], Mapping[str, Any]]


@dataclass(frozen=True)
class ParameterValidation:
    safe: bool
    validated_params: Params
    threats: tuple[DetectedThreat, ...]
    error: Optional[str] = None


@dataclass(frozen=True)
class SecureQuery:
    safe: bool
    query: Optional[str]
    params: Optional[Params]
    error: Optional[str] = None
    query_threats: tuple[DetectedThreat, ...] = ()
    param_threats: tuple[DetectedThreat, ...] = ()


def _labelled(params: Params) -> list[tuple[str, Any]]:
    if isinstance(params, Mapping):
        return [(str(key), value) for key, value in params.items()]
    return [(f"param_{index}", value) for index, value in enumerate(params)]


def validate_parameters(
    params: Params,
    context: Union[RequestContext, Mapping[str, Any], None] = None,
    *,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> ParameterValidation:
    """Scan every string parameter and return cleaned copies.

    Non-string parameters pass through untouched. The result keeps the
    shape of *params*: a mapping stays a mapping, a sequence becomes a list.
    """
    try:
        threats: list[DetectedThreat] = []
        cleaned: list[tuple[str, Any]] = []
        for label, value in _labelled(params):
            if isinstance(value, str):
                verdict = scan_injection(value, context, label, policy=policy)
                threats.extend(verdict.threats)
                value = sanitize_sql(value) if not verdict.safe else value
            cleaned.append((label, value))

        if isinstance(params, Mapping):
            validated: Params = {str(k): v for k, v in params.items()}
            validated.update(cleaned)
        else:
            validated = [value for _, value in cleaned]
        return ParameterValidation(
            safe=not threats, validated_params=validated, threats=tuple(threats)
        )
    except Exception as exc:
        logger.error("Parameter validation failed", exc_info=True)
        return ParameterValidation(
            safe=False,
            validated_params=[],
            threats=(
                DetectedThreat(
                    kind="VALIDATION_ERROR",
                    message=f"Parameter validation failed: {exc}",
                    severity=Severity.MEDIUM,
                    context="params",
                ),
            ),
            error=str(exc),
        )


def create_secure_query(
    query: str,
    params: Params = (),
    context: Union[RequestContext, Mapping[str, Any], None] = None,
    *,
    policy: ScoringPolicy = DEFAULT_POLICY,
    event_log: Optional[SecurityEventLog] = None,
) -> SecureQuery:
    """Check a query template and its bound parameters together.

    Statements in the template itself are expected; only injection shapes
    (separators, comments, tautologies, unions, catalog lookups) make it unsafe.
    Failures are reported in the result and recorded as a security event.
    """
    ctx = RequestContext.coerce(context)
    template_verdict = scan_injection(query, ctx, "query_template", policy=policy)
    query_threats = tuple(
        t
        for t in template_verdict.threats
        if _CATEGORY_BY_SIGNATURE.get(t.signature) not in _TEMPLATE_EXEMPT_CATEGORIES
    )

    error = None
    validation = None
    if not isinstance(query, str) or not query.strip():
        error = "Query template is empty"
    elif query_threats:
        error = "Unsafe query template detected"
    else:
        validation = validate_parameters(params, ctx, policy=policy)
        if not validation.safe:
            error = "Unsafe parameters detected"

    if error is None:
        return SecureQuery(
            safe=True,
            query=query,
            params=validation.validated_params,
            query_threats=query_threats,
            param_threats=validation.threats,
        )

    dispatch_event(
        event_log or get_default_event_log(),
        ctx,
        "SECURE_QUERY_CREATION_FAILED",
        {
            "error": error,
            "query": str(query)[:100],
            "param_count": len(params),
            "severity": Severity.HIGH.value,
        },
    )
    return SecureQuery(
        safe=False,
        query=None,
        params=None,
        error=error,
        query_threats=query_threats,
        param_threats=validation.threats if validation else (),
    )
