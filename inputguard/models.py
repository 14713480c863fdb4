from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    """Ordinal threat tier: critical > high > medium > low > none."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.NONE: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class SignatureKind(str, Enum):
    INJECTION_PATTERN = "injection-pattern"
    DANGEROUS_KEYWORD = "dangerous-keyword"
    DANGEROUS_TAG = "dangerous-tag"
    DANGEROUS_ATTRIBUTE = "dangerous-attribute"
    DANGEROUS_PROTOCOL = "dangerous-protocol"


class RenderContext(str, Enum):
    """Where a value will be rendered back to a browser."""

    HTML = "html"
    ATTRIBUTE = "attribute"
    CSS = "css"


class QueryClause(str, Enum):
    """Syntactic slot a value will occupy in a downstream query."""

    WHERE_CLAUSE = "whereClause"
    ORDER_BY = "orderBy"
    LIMIT = "limit"


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestContext:
    """Who sent a value and where it is headed.

    Only ``query_clause`` influences detection; the remaining fields are
    carried into security events.
    """

    client_ip: Optional[str] = None
    user_id: Optional[str] = None
    request_id: Optional[str] = None
    field: Optional[str] = None
    query_clause: Optional[QueryClause] = None

    @classmethod
    def coerce(cls, value: Any) -> "RequestContext":
        """Accept ``None``, a ``RequestContext`` or a plain mapping."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            clause = value.get("query_clause", value.get("queryClause"))
            return cls(
                client_ip=_optional_str(value.get("client_ip", value.get("ip"))),
                user_id=_optional_str(value.get("user_id")),
                request_id=_optional_str(value.get("request_id")),
                field=_optional_str(value.get("field")),
                query_clause=_coerce_clause(clause),
            )
        return cls()

    def with_field(self, name: str) -> "RequestContext":
        return RequestContext(
            client_ip=self.client_ip,
            user_id=self.user_id,
            request_id=self.request_id,
            field=name,
            query_clause=self.query_clause,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "client_ip": self.client_ip,
            "user_id": self.user_id,
            "request_id": self.request_id,
            "field": self.field,
            "query_clause": self.query_clause.value if self.query_clause else None,
        }


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _coerce_clause(value: Any) -> Optional[QueryClause]:
    if value is None or isinstance(value, QueryClause):
        return value
    try:
        return QueryClause(str(value))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Scan results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DetectedThreat:
    """A single finding produced by one of the scanners."""

    kind: str
    message: str
    severity: Severity
    context: str
    matched_fragment: Optional[str] = None
    signature: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
            "matched_fragment": self.matched_fragment,
            "signature": self.signature,
        }


@dataclass(frozen=True)
class ScanVerdict:
    safe: bool
    threats: tuple[DetectedThreat, ...]
    risk_score: int
    severity: Severity


# ---------------------------------------------------------------------------
# Sanitization results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SanitizationWarning:
    kind: str
    message: str
    severity: Severity
    threats: tuple[DetectedThreat, ...] = ()
    field: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind,
            "message": self.message,
            "severity": self.severity.value,
        }
        if self.threats:
            data["threats"] = [t.as_dict() for t in self.threats]
        if self.field is not None:
            data["field"] = self.field
        return data


@dataclass(frozen=True)
class SanitizationResult:
    safe: bool
    sanitized_value: str
    warnings: tuple[SanitizationWarning, ...]
    safety_score: int
    original_length: int
    sanitized_length: int
    changed: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class BatchResult:
    safe: bool
    per_field: dict[str, SanitizationResult] = field(default_factory=dict)
    warnings: tuple[SanitizationWarning, ...] = ()
    sanitized_values: dict[str, str] = field(default_factory=dict)
