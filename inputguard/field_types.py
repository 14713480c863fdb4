"""Per-field-type configuration, normalization and final format checks."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from pydantic import HttpUrl, TypeAdapter, ValidationError

from inputguard.patterns import RICH_TEXT_ATTRIBUTES, RICH_TEXT_TAGS

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    PLAIN_TEXT = "plainText"
    EMAIL = "email"
    USERNAME = "username"
    PASSWORD = "password"
    RICH_TEXT = "richText"
    FILENAME = "filename"
    URL = "url"
    NUMERIC = "numeric"
    SEARCH_QUERY = "searchQuery"


_FIELD_TYPE_ALIASES = {
    "text": FieldType.PLAIN_TEXT,
    "richtext": FieldType.RICH_TEXT,
    "search": FieldType.SEARCH_QUERY,
}

# Types where a single out-of-class character rejects the whole value.
STRICT_FIELD_TYPES = frozenset({FieldType.EMAIL, FieldType.USERNAME})


def resolve_field_type(value: Any) -> FieldType:
    """Map a field-type name (or alias) to a ``FieldType``.

    Raises ``ValueError`` for names that are not recognised.
    """
    if isinstance(value, FieldType):
        return value
    name = str(value)
    if name in _FIELD_TYPE_ALIASES:
        return _FIELD_TYPE_ALIASES[name]
    return FieldType(name)


class NormalizationRule(str, Enum):
    NONE = "none"
    EMAIL = "email"
    USERNAME = "username"
    FILENAME = "filename"
    URL = "url"
    NUMERIC = "numeric"
    SEARCH = "search"
    RICH_TEXT = "richText"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# Option names accepted from callers that use the camel-case vocabulary.
_OPTION_ALIASES = {
    "maxLength": "max_length",
    "minLength": "min_length",
    "allowedChars": "allowed_characters",
    "stripHTML": "strip_markup",
    "encodeEntities": "encode_entities",
    "preventSQL": "check_injection",
    "preventXSS": "check_markup_injection",
    "allowedTags": "allowed_tags",
    "allowedAttributes": "allowed_attributes",
}


@dataclass(frozen=True)
class FieldTypeConfig:
    """How one field type is cleaned and validated.

    ``allowed_characters`` is the body of a regex character class, e.g.
    ``"A-Za-z0-9_\\-"``.
    """

    max_length: int
    min_length: Optional[int] = None
    allowed_characters: Optional[str] = None
    strip_markup: bool = True
    encode_entities: bool = False
    check_injection: bool = True
    check_markup_injection: bool = True
    allowed_tags: Optional[frozenset[str]] = None
    allowed_attributes: Optional[frozenset[str]] = None
    rules: NormalizationRule = NormalizationRule.NONE

    def disallowed_characters(self) -> Optional[re.Pattern[str]]:
        if not self.allowed_characters:
            return None
        return _negated_class(self.allowed_characters)

    def with_overrides(self, options: Optional[Mapping[str, Any]]) -> "FieldTypeConfig":
        """Return a copy with *options* applied; unknown keys are ignored."""
        if not options:
            return self
        known = {f.name for f in fields(self)}
        changes: dict[str, Any] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in known:
                logger.debug("Ignoring unknown sanitize option %r", key)
                continue
            if name in ("allowed_tags", "allowed_attributes") and value is not None:
                value = frozenset(value)
            elif name == "rules":
                value = NormalizationRule(value)
            changes[name] = value
        return replace(self, **changes) if changes else self


_class_cache: dict[str, re.Pattern[str]] = {}


def _negated_class(body: str) -> re.Pattern[str]:
    pattern = _class_cache.get(body)
    if pattern is None:
        pattern = re.compile(f"[^{body}]")
        _class_cache[body] = pattern
    return pattern


FIELD_TYPE_CONFIGS: Mapping[FieldType, FieldTypeConfig] = MappingProxyType({
    FieldType.PLAIN_TEXT: FieldTypeConfig(
        max_length=1000,
        allowed_characters=r"\w\s\-.,!?@#$%^&*()+={}\[\]:;\"'<>/\\|`~",
        encode_entities=True,
    ),
    FieldType.EMAIL: FieldTypeConfig(
        max_length=255,
        allowed_characters=r"A-Za-z0-9.!#$%&'*+/=?^_`{|}~@\-",
        rules=NormalizationRule.EMAIL,
    ),
    FieldType.USERNAME: FieldTypeConfig(
        max_length=50,
        min_length=3,
        allowed_characters=r"A-Za-z0-9_\-",
        rules=NormalizationRule.USERNAME,
    ),
    FieldType.PASSWORD: FieldTypeConfig(
        max_length=128,
        min_length=8,
        strip_markup=False,
        check_markup_injection=False,
    ),
    FieldType.RICH_TEXT: FieldTypeConfig(
        max_length=10000,
        strip_markup=False,
        allowed_tags=RICH_TEXT_TAGS,
        allowed_attributes=RICH_TEXT_ATTRIBUTES,
        rules=NormalizationRule.RICH_TEXT,
    ),
    FieldType.FILENAME: FieldTypeConfig(
        max_length=255,
        allowed_characters=r"A-Za-z0-9\-_. ",
        rules=NormalizationRule.FILENAME,
    ),
    FieldType.URL: FieldTypeConfig(
        max_length=2048,
        rules=NormalizationRule.URL,
    ),
    FieldType.NUMERIC: FieldTypeConfig(
        max_length=64,
        allowed_characters=r"0-9.\-",
        rules=NormalizationRule.NUMERIC,
    ),
    FieldType.SEARCH_QUERY: FieldTypeConfig(
        max_length=500,
        encode_entities=True,
        rules=NormalizationRule.SEARCH,
    ),
})


# ---------------------------------------------------------------------------
# Normalizers (step 7)
# ---------------------------------------------------------------------------

_WHITESPACE_RE = re.compile(r"\s+")
_SEPARATOR_RUN_RE = re.compile(r"[-_]{2,}")
_EDGE_SEPARATORS_RE = re.compile(r"^[-_]+|[-_]+$")
_EDGE_DOTS_RE = re.compile(r"^[.\s]+|[.\s]+$")
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def _normalize_email(value: str) -> str:
    value = value.lower().strip()
    if value.count("@") > 1:
        parts = value.split("@")
        value = parts[0] + "@" + parts[-1]
    return value


def _normalize_username(value: str) -> str:
    value = value.lower().strip()
    value = _SEPARATOR_RUN_RE.sub("_", value)
    return _EDGE_SEPARATORS_RE.sub("", value)


def _normalize_filename(value: str) -> str:
    value = _WHITESPACE_RE.sub(" ", value)
    return _EDGE_DOTS_RE.sub("", value)


def _normalize_url(value: str) -> str:
    value = value.strip()
    if value and not _SCHEME_RE.match(value):
        value = "https://" + value
    return value


def _normalize_numeric(value: str) -> str:
    value = _NON_NUMERIC_RE.sub("", value)
    negative = value.startswith("-")
    value = value.replace("-", "")
    if value.count(".") > 1:
        head, _, tail = value.partition(".")
        value = head + "." + tail.replace(".", "")
    return ("-" + value) if negative else value


def _normalize_search(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


def _normalize_rich_text(value: str) -> str:
    value = value.replace("\r\n", "\n").replace("\r", "\n")
    return _EXCESS_NEWLINES_RE.sub("\n\n", value)


NORMALIZERS: Mapping[NormalizationRule, Callable[[str], str]] = MappingProxyType({
    NormalizationRule.NONE: lambda value: value,
    NormalizationRule.EMAIL: _normalize_email,
    NormalizationRule.USERNAME: _normalize_username,
    NormalizationRule.FILENAME: _normalize_filename,
    NormalizationRule.URL: _normalize_url,
    NormalizationRule.NUMERIC: _normalize_numeric,
    NormalizationRule.SEARCH: _normalize_search,
    NormalizationRule.RICH_TEXT: _normalize_rich_text,
})


# ---------------------------------------------------------------------------
# Format validators (step 8); each returns an error message or None
# ---------------------------------------------------------------------------

EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]{1,64}@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?){0,10}$"
)

_http_url = TypeAdapter(HttpUrl)


def _validate_email(value: str) -> Optional[str]:
    if not EMAIL_RE.match(value):
        return "Invalid email format after sanitization"
    return None


def _validate_url(value: str) -> Optional[str]:
    try:
        _http_url.validate_python(value)
    except ValidationError:
        return "Invalid URL format after sanitization"
    return None


def _validate_numeric(value: str) -> Optional[str]:
    if not value:
        return None
    try:
        float(value)
    except ValueError:
        return "Invalid numeric value after sanitization"
    return None


VALIDATORS: Mapping[NormalizationRule, Callable[[str], Optional[str]]] = MappingProxyType({
    NormalizationRule.NONE: lambda value: None,
    NormalizationRule.EMAIL: _validate_email,
    NormalizationRule.USERNAME: lambda value: None,
    NormalizationRule.FILENAME: lambda value: None,
    NormalizationRule.URL: _validate_url,
    NormalizationRule.NUMERIC: _validate_numeric,
    NormalizationRule.SEARCH: lambda value: None,
    NormalizationRule.RICH_TEXT: lambda value: None,
})

_missing = (
    (set(FieldType) - set(FIELD_TYPE_CONFIGS))
    | (set(NormalizationRule) - set(NORMALIZERS))
    | (set(NormalizationRule) - set(VALIDATORS))
)
if _missing:
    raise RuntimeError(f"Field-type tables are incomplete: {sorted(m.value for m in _missing)}")
del _missing
