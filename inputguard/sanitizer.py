"""Input sanitizer and batch sanitizer.

``sanitize`` runs one value through an ordered pipeline:

1. coerce to ``str``
2. enforce max/min length
3. strip universally dangerous sequences
4. enforce the field type's character class
5. query-injection scan and cleanup
6. markup-injection scan and cleanup
7. type-specific normalization
8. final format validation
9. safety score

Steps 2-7 repeat until the value stops changing, so sanitizing an
already-sanitized value returns it unchanged. Malicious input never raises;
it produces ``safe=False`` with itemized warnings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional, Union

from inputguard.encoding import (
    clean_allowed_markup,
    encode_html_entities,
    remove_script_vectors,
    strip_tags,
    truncate,
)
from inputguard.events import SecurityEventLog, dispatch_event, get_default_event_log
from inputguard.field_types import (
    FIELD_TYPE_CONFIGS,
    NORMALIZERS,
    STRICT_FIELD_TYPES,
    VALIDATORS,
    FieldType,
    FieldTypeConfig,
    resolve_field_type,
)
from inputguard.markup_scanner import scan_markup_injection
from inputguard.models import (
    BatchResult,
    RenderContext,
    RequestContext,
    SanitizationResult,
    SanitizationWarning,
    Severity,
)
from inputguard.patterns import UNIVERSAL_STRIP_PATTERNS
from inputguard.scoring import DEFAULT_POLICY, ScoringPolicy, safety_score
from inputguard.sql_scanner import sanitize_sql, scan_injection

logger = logging.getLogger(__name__)

ContextLike = Union[RequestContext, Mapping[str, Any], None]

# Warning kinds
LENGTH_TRUNCATED = "LENGTH_TRUNCATED"
LENGTH_TOO_SHORT = "LENGTH_TOO_SHORT"
DANGEROUS_PATTERNS_REMOVED = "DANGEROUS_PATTERNS_REMOVED"
INVALID_CHARACTERS = "INVALID_CHARACTERS"
INVALID_CHARS_REMOVED = "INVALID_CHARS_REMOVED"
SQL_INJECTION_DETECTED = "SQL_INJECTION_DETECTED"
MARKUP_INJECTION_DETECTED = "MARKUP_INJECTION_DETECTED"
INVALID_FORMAT = "INVALID_FORMAT"
UNKNOWN_FIELD_TYPE = "UNKNOWN_FIELD_TYPE"
INTERNAL_ERROR = "INTERNAL_ERROR"

_EVENT_KIND_BY_WARNING = {
    SQL_INJECTION_DETECTED: "SQL_INJECTION_ATTEMPT",
    MARKUP_INJECTION_DETECTED: "XSS_ATTACK_ATTEMPT",
}


@dataclass(frozen=True)
class GuardConfig:
    """Everything the sanitizer needs, passed explicitly to each call."""

    field_types: Mapping[FieldType, FieldTypeConfig] = field(
        default_factory=lambda: FIELD_TYPE_CONFIGS
    )
    policy: ScoringPolicy = DEFAULT_POLICY
    event_log: SecurityEventLog = field(default_factory=get_default_event_log)
    max_passes: int = 8
    preview_length: int = 100


DEFAULT_CONFIG = GuardConfig()


class _HardStop(Exception):
    """Raised inside the pipeline when the value must be rejected outright."""

    def __init__(self, warning: SanitizationWarning):
        super().__init__(warning.message)
        self.warning = warning


class _Warnings:
    """Ordered warnings, at most one per kind."""

    def __init__(self) -> None:
        self._items: list[SanitizationWarning] = []
        self._kinds: set[str] = set()

    def add(self, warning: SanitizationWarning) -> None:
        if warning.kind in self._kinds:
            return
        self._kinds.add(warning.kind)
        self._items.append(warning)

    def as_tuple(self) -> tuple[SanitizationWarning, ...]:
        return tuple(self._items)


# ---------------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------------


def _coerce_input(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def _strip_universal(value: str) -> str:
    while True:
        previous = value
        for pattern in UNIVERSAL_STRIP_PATTERNS:
            value = pattern.sub("", value)
        if value == previous:
            return value


def _clean_markup(value: str, cfg: FieldTypeConfig) -> str:
    if cfg.strip_markup:
        value = strip_tags(value)
    else:
        value = clean_allowed_markup(value, cfg.allowed_tags, cfg.allowed_attributes)
    value = remove_script_vectors(value)
    if cfg.encode_entities:
        value = encode_html_entities(value)
    return value


def _run_pass(
    value: str,
    field_type: FieldType,
    cfg: FieldTypeConfig,
    ctx: RequestContext,
    policy: ScoringPolicy,
    warnings: _Warnings,
    *,
    first: bool,
) -> str:
    label = ctx.field or field_type.value

    if len(value) > cfg.max_length:
        warnings.add(
            SanitizationWarning(
                kind=LENGTH_TRUNCATED,
                message=f"Input truncated from {len(value)} to {cfg.max_length} characters",
                severity=Severity.MEDIUM,
            )
        )
        value = truncate(value, cfg.max_length)

    if first and cfg.min_length and len(value) < cfg.min_length:
        raise _HardStop(
            SanitizationWarning(
                kind=LENGTH_TOO_SHORT,
                message=f"Input must be at least {cfg.min_length} characters",
                severity=Severity.HIGH,
            )
        )

    stripped = _strip_universal(value)
    if stripped != value:
        warnings.add(
            SanitizationWarning(
                kind=DANGEROUS_PATTERNS_REMOVED,
                message="Dangerous character sequences were removed",
                severity=Severity.HIGH,
            )
        )
        value = stripped

    invalid = cfg.disallowed_characters()
    if invalid is not None and invalid.search(value):
        if field_type in STRICT_FIELD_TYPES:
            raise _HardStop(
                SanitizationWarning(
                    kind=INVALID_CHARACTERS,
                    message=f"Input contains characters not allowed in a {field_type.value} field",
                    severity=Severity.HIGH,
                )
            )
        value = invalid.sub("", value)
        warnings.add(
            SanitizationWarning(
                kind=INVALID_CHARS_REMOVED,
                message="Characters outside the allowed set were removed",
                severity=Severity.MEDIUM,
            )
        )

    if cfg.check_injection:
        verdict = scan_injection(value, ctx, label, policy=policy)
        if not verdict.safe:
            warnings.add(
                SanitizationWarning(
                    kind=SQL_INJECTION_DETECTED,
                    message="Potential SQL injection detected and cleaned",
                    severity=Severity.CRITICAL,
                    threats=verdict.threats,
                )
            )
            value = sanitize_sql(value)

    if cfg.check_markup_injection:
        verdict = scan_markup_injection(value, ctx, label, RenderContext.HTML, policy=policy)
        if not verdict.safe:
            warnings.add(
                SanitizationWarning(
                    kind=MARKUP_INJECTION_DETECTED,
                    message="Potential markup injection detected and cleaned",
                    severity=Severity.CRITICAL,
                    threats=verdict.threats,
                )
            )
            value = _clean_markup(value, cfg)

    return NORMALIZERS[cfg.rules](value)


def _validate(value: str, cfg: FieldTypeConfig) -> None:
    if cfg.min_length and len(value) < cfg.min_length:
        raise _HardStop(
            SanitizationWarning(
                kind=LENGTH_TOO_SHORT,
                message=f"Input too short after sanitization (minimum {cfg.min_length} characters)",
                severity=Severity.HIGH,
            )
        )
    error = VALIDATORS[cfg.rules](value)
    if error:
        raise _HardStop(
            SanitizationWarning(kind=INVALID_FORMAT, message=error, severity=Severity.HIGH)
        )


# ---------------------------------------------------------------------------
# Results and events
# ---------------------------------------------------------------------------


def _failure(
    original: str,
    warnings: tuple[SanitizationWarning, ...],
    error: str,
    policy: ScoringPolicy,
) -> SanitizationResult:
    return SanitizationResult(
        safe=False,
        sanitized_value="",
        warnings=warnings,
        safety_score=safety_score(warnings, policy),
        original_length=len(original),
        sanitized_length=0,
        changed=original != "",
        error=error,
    )


def _report_critical(
    warnings: tuple[SanitizationWarning, ...],
    original: str,
    field_type: FieldType,
    ctx: RequestContext,
    config: GuardConfig,
) -> None:
    for warning in warnings:
        if warning.severity is not Severity.CRITICAL:
            continue
        dispatch_event(
            config.event_log,
            ctx,
            _EVENT_KIND_BY_WARNING.get(warning.kind, "SECURITY_WARNING"),
            {
                "field_type": field_type.value,
                "warning": warning.kind,
                "threat_count": len(warning.threats),
                "threats": [t.as_dict() for t in warning.threats[:10]],
                "input_preview": original[: config.preview_length],
                "severity": warning.severity.value,
            },
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def sanitize(
    value: Any,
    field_type: Union[FieldType, str] = FieldType.PLAIN_TEXT,
    context: ContextLike = None,
    override_options: Optional[Mapping[str, Any]] = None,
    *,
    config: GuardConfig = DEFAULT_CONFIG,
) -> SanitizationResult:
    """Clean *value* for storage as *field_type*.

    ``override_options`` replaces individual ``FieldTypeConfig`` fields for
    this call. The call never raises; an unexpected failure yields
    ``safe=False`` with an ``INTERNAL_ERROR`` warning.
    """
    ctx = RequestContext.coerce(context)
    original = ""
    try:
        original = _coerce_input(value)
        try:
            resolved = resolve_field_type(field_type)
        except ValueError:
            warning = SanitizationWarning(
                kind=UNKNOWN_FIELD_TYPE,
                message=f"Unknown field type: {field_type}",
                severity=Severity.HIGH,
            )
            return _failure(original, (warning,), warning.message, config.policy)

        cfg = config.field_types[resolved].with_overrides(override_options)
        warnings = _Warnings()
        try:
            sanitized = _run_pass(
                original, resolved, cfg, ctx, config.policy, warnings, first=True
            )
            for _ in range(max(config.max_passes, 1) - 1):
                again = _run_pass(
                    sanitized, resolved, cfg, ctx, config.policy, warnings, first=False
                )
                if again == sanitized:
                    break
                sanitized = again
            else:
                logger.debug(
                    "Sanitizing %s did not settle after %d passes", resolved.value, config.max_passes
                )
            sanitized = truncate(sanitized, cfg.max_length)
            _validate(sanitized, cfg)
        except _HardStop as stop:
            warnings.add(stop.warning)
            collected = warnings.as_tuple()
            _report_critical(collected, original, resolved, ctx, config)
            return _failure(original, collected, stop.warning.message, config.policy)

        collected = warnings.as_tuple()
        _report_critical(collected, original, resolved, ctx, config)
        score = safety_score(collected, config.policy)
        return SanitizationResult(
            safe=score >= config.policy.safe_threshold,
            sanitized_value=sanitized,
            warnings=collected,
            safety_score=score,
            original_length=len(original),
            sanitized_length=len(sanitized),
            changed=sanitized != original,
        )
    except Exception as exc:
        logger.error("Sanitization failed for %s", field_type, exc_info=True)
        dispatch_event(
            config.event_log,
            ctx,
            "SANITIZATION_ERROR",
            {"error": str(exc), "field_type": str(field_type)},
        )
        warning = SanitizationWarning(
            kind=INTERNAL_ERROR,
            message="Sanitization failed due to internal error",
            severity=Severity.HIGH,
        )
        return _failure(original, (warning,), warning.message, config.policy)


def sanitize_batch(
    fields: Mapping[str, Any],
    types: Optional[Mapping[str, Union[FieldType, str]]] = None,
    context: ContextLike = None,
    *,
    config: GuardConfig = DEFAULT_CONFIG,
) -> BatchResult:
    """Sanitize each named field independently and combine the verdicts.

    Fields without an entry in *types* are treated as plain text. Every
    warning in the combined list carries the name of its field.
    """
    ctx = RequestContext.coerce(context)
    types = types or {}
    per_field: dict[str, SanitizationResult] = {}
    sanitized_values: dict[str, str] = {}
    warnings: list[SanitizationWarning] = []

    for name, value in fields.items():
        result = sanitize(
            value,
            types.get(name, FieldType.PLAIN_TEXT),
            ctx.with_field(name),
            config=config,
        )
        per_field[name] = result
        sanitized_values[name] = result.sanitized_value
        warnings.extend(replace(w, field=name) for w in result.warnings)

    return BatchResult(
        safe=all(r.safe for r in per_field.values()),
        per_field=per_field,
        warnings=tuple(warnings),
        sanitized_values=sanitized_values,
    )
