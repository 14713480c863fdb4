"""Signature library for query-injection and markup-injection detection.

Every pattern is compiled once at import and uses bounded quantifiers only,
so matching time stays proportional to input length.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from inputguard.models import RenderContext, Severity, SignatureKind


@dataclass(frozen=True)
class ThreatSignature:
    """A named structural match rule with a base severity."""

    name: str
    kind: SignatureKind
    severity: Severity
    pattern: re.Pattern[str]
    description: str
    category: str
    contexts: frozenset[RenderContext] = frozenset(RenderContext)


def _sig(
    name: str,
    kind: SignatureKind,
    severity: Severity,
    pattern: str,
    description: str,
    category: str,
    contexts: frozenset[RenderContext] = frozenset(RenderContext),
    flags: int = 0,
) -> ThreatSignature:
    return ThreatSignature(
        name=name,
        kind=kind,
        severity=severity,
        pattern=re.compile(pattern, re.IGNORECASE | flags),
        description=description,
        category=category,
        contexts=contexts,
    )


_INJ = SignatureKind.INJECTION_PATTERN
_KEY = SignatureKind.DANGEROUS_KEYWORD
_TAG = SignatureKind.DANGEROUS_TAG
_ATTR = SignatureKind.DANGEROUS_ATTRIBUTE
_PROTO = SignatureKind.DANGEROUS_PROTOCOL

_NOT_CSS = frozenset({RenderContext.HTML, RenderContext.ATTRIBUTE})
_NOT_ATTRIBUTE = frozenset({RenderContext.HTML, RenderContext.CSS})

# Categories the where-clause context rule escalates.
TAUTOLOGY = "tautology"
UNION = "union"


# ---------------------------------------------------------------------------
# Injection-style signatures
# ---------------------------------------------------------------------------

_STATEMENT_KEYWORD = (
    r"(?:select|insert|update|delete|drop|create|alter|exec|execute|"
    r"truncate|declare|shutdown|grant|revoke)"
)

# Comment or whitespace between UNION and SELECT
_GAP = r"(?:\s|/\*[^*]{0,50}\*/)"

_SQL_SHAPE_SIGNATURES: tuple[ThreatSignature, ...] = (
    _sig(
        "stacked-query", _INJ, Severity.CRITICAL,
        rf";\s{{0,10}}{_STATEMENT_KEYWORD}\b",
        "Statement separator followed by a new statement", "stacked",
    ),
    _sig(
        "quote-terminator", _INJ, Severity.HIGH,
        r"(?<!')'\s{0,10}(?:;|--|#|/\*)",
        "String literal closed and followed by a separator or comment", "stacked",
    ),
    _sig(
        "line-comment", _INJ, Severity.HIGH,
        r"--",
        "SQL line comment used to truncate a query", "comment",
    ),
    _sig(
        "block-comment", _INJ, Severity.HIGH,
        r"/\*.{0,2000}?\*/",
        "Inline SQL block comment", "comment",
        flags=re.DOTALL,
    ),
    _sig(
        "hash-comment", _INJ, Severity.MEDIUM,
        r"['\")]\s{0,10}#",
        "MySQL hash comment after a closed literal", "comment",
    ),
    _sig(
        "boolean-tautology", _INJ, Severity.CRITICAL,
        r"\b(?:or|and)\s{1,10}\(?\s{0,5}['\"]?(\w{1,50})['\"]?\s{0,5}=\s{0,5}['\"]?\1(?!\w)",
        "Always-true boolean comparison", TAUTOLOGY,
    ),
    _sig(
        "numeric-tautology", _INJ, Severity.HIGH,
        r"\b(?:or|and)\s{1,10}\d{1,10}\s{0,5}(?:=|<>|!=|<=|>=|<|>)\s{0,5}\d{1,10}\b",
        "Numeric comparison appended with OR/AND", TAUTOLOGY,
    ),
    _sig(
        "quoted-boolean", _INJ, Severity.HIGH,
        r"(?<!')'\s{0,10}(?:or|and)\s{1,10}['\"\d(]",
        "String literal closed and followed by OR/AND", TAUTOLOGY,
    ),
    _sig(
        "union-select", _INJ, Severity.CRITICAL,
        rf"\bunion{_GAP}{{1,10}}(?:all{_GAP}{{1,10}})?select\b",
        "UNION-based result merging", UNION,
    ),
    _sig(
        "select-projection", _INJ, Severity.HIGH,
        r"\bselect\s{1,10}(?:\*|distinct\b|top\s{1,10}\d|null\b|count\s{0,5}\(|@@|[\w.]{1,64}\s{0,5},)",
        "SELECT projection list", "select",
    ),
    _sig(
        "subquery", _INJ, Severity.HIGH,
        r"\(\s{0,10}select\b",
        "Parenthesised sub-select", "select",
    ),
    _sig(
        "drop-statement", _KEY, Severity.CRITICAL,
        r"\bdrop\s{1,10}(?:table|database|schema|view|index|procedure|function|user|trigger)\b",
        "DROP statement", "ddl",
    ),
    _sig(
        "delete-statement", _KEY, Severity.CRITICAL,
        r"\bdelete\s{1,10}from\b",
        "DELETE statement", "dml",
    ),
    _sig(
        "insert-statement", _KEY, Severity.CRITICAL,
        r"\binsert\s{1,10}into\b",
        "INSERT statement", "dml",
    ),
    _sig(
        "update-statement", _KEY, Severity.HIGH,
        r"\bupdate\s{1,10}[\w.`\"\[\]]{1,64}\s{1,10}set\b",
        "UPDATE statement", "dml",
    ),
    _sig(
        "truncate-statement", _KEY, Severity.CRITICAL,
        r"\btruncate\s{1,10}table\b",
        "TRUNCATE statement", "ddl",
    ),
    _sig(
        "alter-statement", _KEY, Severity.HIGH,
        r"\balter\s{1,10}(?:table|database|user|schema)\b",
        "ALTER statement", "ddl",
    ),
    _sig(
        "create-statement", _KEY, Severity.HIGH,
        r"\bcreate\s{1,10}(?:table|database|user|procedure|function|trigger)\b",
        "CREATE statement", "ddl",
    ),
    _sig(
        "exec-call", _KEY, Severity.CRITICAL,
        r"\bexec(?:ute)?\s{0,10}(?:\(|(?:xp_|sp_|master\.)\w)",
        "Dynamic execution of a procedure", "exec",
    ),
    _sig(
        "extended-procedure", _KEY, Severity.CRITICAL,
        r"\b(?:xp_cmdshell|sp_executesql|sp_oacreate|sp_oamethod|sp_oadestroy|"
        r"openrowset|opendatasource|openquery|cmdshell)\b",
        "Extended stored procedure or remote data source", "exec",
    ),
    _sig(
        "time-delay", _INJ, Severity.CRITICAL,
        r"\b(?:sleep\s{0,5}\(\s{0,5}\d|pg_sleep\s{0,5}\(|benchmark\s{0,5}\(|waitfor\s{1,10}(?:delay|time)\b)",
        "Time-based blind injection", "timing",
    ),
    _sig(
        "conditional-blind", _INJ, Severity.MEDIUM,
        r"\bcase\s{1,10}when\b|\bif\s{0,5}\([^()]{0,100},[^()]{0,100},",
        "Conditional expression used for blind extraction", "blind",
    ),
    _sig(
        "schema-catalog", _KEY, Severity.CRITICAL,
        r"\b(?:information_schema|pg_catalog|mysql\.user|sysobjects|syscolumns|sqlite_master)\b",
        "System catalog reference", "recon",
    ),
    _sig(
        "system-variable", _INJ, Severity.HIGH,
        r"@@\w{1,30}",
        "Server system variable", "recon",
    ),
    _sig(
        "system-function", _INJ, Severity.MEDIUM,
        r"\b(?:user|database|version|current_user|session_user|system_user)\s{0,5}\(\s{0,5}\)",
        "Server identity function", "recon",
    ),
    _sig(
        "file-operation", _KEY, Severity.CRITICAL,
        r"\bload_file\s{0,5}\(|\binto\s{1,10}(?:out|dump)file\b",
        "File system access from SQL", "file",
    ),
    _sig(
        "string-function", _INJ, Severity.MEDIUM,
        r"\b(?:concat|char|ascii|substring|substr|cast|convert|hex|unhex)\s{0,5}\(",
        "String manipulation function used for extraction", "blind",
    ),
    _sig(
        "group-having", _INJ, Severity.HIGH,
        r"\bgroup\s{1,10}by\b[^;]{0,200}?\bhaving\b",
        "GROUP BY ... HAVING error-based extraction", "recon",
    ),
    _sig(
        "order-by-position", _INJ, Severity.MEDIUM,
        r"\border\s{1,10}by\s{1,10}\d",
        "ORDER BY column-count enumeration", "recon",
    ),
    _sig(
        "encoded-metacharacter", _INJ, Severity.HIGH,
        r"%(?:27|22|3b|23)|%2d%2d",
        "URL-encoded quote, separator or comment", "encoded",
    ),
)

# Keyword sequences that never belong in user input. They are reported on
# top of the structural matches above.
_SQL_KEYWORD_SEQUENCES: tuple[tuple[str, str], ...] = (
    ("union", r"\bunion\b[\s\S]{0,100}?\bselect\b"),
    ("sleep", r"\b(?:pg_)?sleep\s{0,5}\("),
    ("waitfor", r"\bwaitfor\b"),
    ("benchmark", r"\bbenchmark\s{0,5}\("),
    ("exec", r"\bexec\b"),
    ("bulk-insert", r"\bbulk\s{1,10}insert\b"),
)

_SQL_KEYWORD_SIGNATURES: tuple[ThreatSignature, ...] = tuple(
    _sig(
        f"{name}-keyword", _KEY, Severity.CRITICAL, pattern,
        f"Dangerous SQL keyword {name.upper()}", "keyword",
    )
    for name, pattern in _SQL_KEYWORD_SEQUENCES
)

SQL_SIGNATURES: tuple[ThreatSignature, ...] = _SQL_SHAPE_SIGNATURES + _SQL_KEYWORD_SIGNATURES

# Removed by word boundary during SQL cleanup.
DANGEROUS_SQL_KEYWORDS: tuple[str, ...] = (
    "EXEC", "EXECUTE", "DROP", "DELETE", "TRUNCATE", "ALTER", "CREATE",
    "INSERT", "UPDATE", "UNION", "SELECT", "XP_CMDSHELL", "SP_EXECUTESQL",
    "OPENROWSET", "OPENDATASOURCE", "OPENQUERY", "WAITFOR", "PG_SLEEP",
)

# Words that never count as identifiers in ORDER BY / LIMIT slots.
RESERVED_SQL_WORDS: frozenset[str] = frozenset({
    "select", "union", "insert", "update", "delete", "drop", "create",
    "alter", "exec", "execute", "truncate", "from", "where", "and", "or",
    "not", "having", "group", "into", "case", "when", "then", "sleep",
    "waitfor", "benchmark", "declare", "shutdown", "null", "limit", "offset",
})

SQL_KEYWORD_RE = re.compile(
    r"\b(?:select|union|insert|update|delete|drop|create|alter|exec|execute|"
    r"truncate|from|where|having|sleep|waitfor|benchmark)\b",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Markup-style signatures
# ---------------------------------------------------------------------------

EVENT_HANDLER_ATTRIBUTES: frozenset[str] = frozenset({
    "onabort", "onactivate", "onafterprint", "onafterupdate", "onanimationstart",
    "onbeforeactivate", "onbeforecopy", "onbeforecut", "onbeforedeactivate",
    "onbeforeeditfocus", "onbeforepaste", "onbeforeprint", "onbeforeunload",
    "onbeforeupdate", "onblur", "onbounce", "oncellchange", "onchange",
    "onclick", "oncontextmenu", "oncontrolselect", "oncopy", "oncut",
    "ondataavailable", "ondatasetchanged", "ondatasetcomplete", "ondblclick",
    "ondeactivate", "ondrag", "ondragend", "ondragenter", "ondragleave",
    "ondragover", "ondragstart", "ondrop", "onerror", "onerrorupdate",
    "onfilterchange", "onfinish", "onfocus", "onfocusin", "onfocusout",
    "onhashchange", "onhelp", "oninput", "onkeydown", "onkeypress", "onkeyup",
    "onlayoutcomplete", "onload", "onlosecapture", "onmessage", "onmousedown",
    "onmouseenter", "onmouseleave", "onmousemove", "onmouseout", "onmouseover",
    "onmouseup", "onmousewheel", "onmove", "onmoveend", "onmovestart",
    "onpageshow", "onpaste", "onpointerdown", "onpointerover", "onpopstate",
    "onpropertychange", "onreadystatechange", "onreset", "onresize",
    "onresizeend", "onresizestart", "onrowenter", "onrowexit", "onrowsdelete",
    "onrowsinserted", "onscroll", "onsearch", "onselect", "onselectionchange",
    "onselectstart", "onstart", "onstop", "onsubmit", "ontoggle",
    "ontouchstart", "onunload", "onwheel",
})

DANGEROUS_TAGS: frozenset[str] = frozenset({
    "script", "object", "embed", "applet", "meta", "iframe", "frame",
    "frameset", "link", "style", "base", "form", "input", "button",
    "textarea", "select", "option", "optgroup", "fieldset", "legend",
    "bgsound", "sound", "xml", "import", "layer", "ilayer", "nolayer",
    "svg", "math",
})

_HANDLER_ALTERNATION = "|".join(sorted(EVENT_HANDLER_ATTRIBUTES, key=len, reverse=True))

_MARKUP_SHAPE_SIGNATURES: tuple[ThreatSignature, ...] = (
    _sig(
        "script-tag", _TAG, Severity.CRITICAL,
        r"<\s{0,5}script\b",
        "Script element", "script",
    ),
    _sig(
        "script-close-tag", _TAG, Severity.HIGH,
        r"</\s{0,5}script\s{0,5}>",
        "Script element close tag", "script",
    ),
    _sig(
        "embedding-tag", _TAG, Severity.CRITICAL,
        r"<\s{0,5}(?:iframe|frame|frameset|object|embed|applet)\b",
        "Element that embeds foreign content", "embed",
    ),
    _sig(
        "document-control-tag", _TAG, Severity.HIGH,
        r"<\s{0,5}(?:meta|link|base)\b",
        "Element that changes document behaviour", "embed",
    ),
    _sig(
        "style-tag", _TAG, Severity.HIGH,
        r"<\s{0,5}style\b",
        "Inline stylesheet element", "css",
    ),
    _sig(
        "form-control-tag", _TAG, Severity.MEDIUM,
        r"<\s{0,5}(?:form|input|button|textarea|select|isindex)\b",
        "Form control element", "form",
    ),
    _sig(
        "vector-markup-tag", _TAG, Severity.MEDIUM,
        r"<\s{0,5}(?:svg|math|xml|xss)\b",
        "Foreign markup namespace element", "embed",
    ),
    _sig(
        "cdata-section", _TAG, Severity.MEDIUM,
        r"<!\[cdata\[",
        "CDATA section", "embed",
    ),
    _sig(
        "event-handler-in-tag", _ATTR, Severity.CRITICAL,
        r"<[^>]{0,500}?[\s/\"'`]on[a-z]{3,30}\s{0,5}=",
        "Event handler attribute inside a tag", "event-handler",
        contexts=_NOT_CSS,
    ),
    _sig(
        "known-event-handler", _ATTR, Severity.HIGH,
        rf"\b(?:{_HANDLER_ALTERNATION})\s{{0,5}}=",
        "Known event handler attribute", "event-handler",
        contexts=_NOT_CSS,
    ),
    _sig(
        "document-attribute", _ATTR, Severity.HIGH,
        r"\b(?:srcdoc|formaction)\s{0,5}=",
        "Attribute that loads an inline document or redirects a form", "event-handler",
        contexts=_NOT_CSS,
    ),
    _sig(
        "script-protocol", _PROTO, Severity.MEDIUM,
        r"\b(?:javascript|vbscript|livescript|mocha)\s{0,5}:",
        "Script protocol prefix", "protocol",
    ),
    _sig(
        "data-uri", _PROTO, Severity.MEDIUM,
        r"\bdata\s{0,5}:\s{0,5}[a-z]{1,20}/[\w.+-]{1,50}\s{0,5}[;,]",
        "data: URI", "protocol",
    ),
    _sig(
        "executable-protocol", _PROTO, Severity.CRITICAL,
        r"\b(?:href|src|action|formaction|background|lowsrc|dynsrc|poster|xlink:href)"
        r"\s{0,5}=\s{0,5}[\"'`]?\s{0,5}(?:javascript|vbscript|livescript|data)\s{0,5}:",
        "Script protocol in a navigable attribute", "protocol",
        contexts=_NOT_CSS,
    ),
    _sig(
        "protocol-call", _PROTO, Severity.HIGH,
        r"\b(?:javascript|vbscript)\s{0,5}:[^\n]{0,200}?\b(?:alert|confirm|prompt|eval)\s{0,5}\(",
        "Script protocol invoking a dialog or eval", "protocol",
    ),
    _sig(
        "css-url-protocol", _PROTO, Severity.CRITICAL,
        r"url\s{0,5}\(\s{0,5}[\"']?\s{0,5}(?:javascript|vbscript|data)\s{0,5}:",
        "Script protocol inside CSS url()", "css",
        contexts=_NOT_ATTRIBUTE,
    ),
    _sig(
        "css-expression", _INJ, Severity.HIGH,
        r"\bexpression\s{0,5}\(",
        "CSS expression()", "css",
        contexts=_NOT_ATTRIBUTE,
    ),
    _sig(
        "css-behavior", _INJ, Severity.MEDIUM,
        r"\bbehavior\s{0,5}:",
        "CSS behavior directive", "css",
        contexts=_NOT_ATTRIBUTE,
    ),
    _sig(
        "css-import", _INJ, Severity.HIGH,
        r"@import\b",
        "CSS @import directive", "css",
        contexts=_NOT_ATTRIBUTE,
    ),
    _sig(
        "css-binding", _INJ, Severity.MEDIUM,
        r"-moz-binding\s{0,5}:",
        "CSS XBL binding", "css",
        contexts=_NOT_ATTRIBUTE,
    ),
    _sig(
        "template-mustache", _INJ, Severity.HIGH,
        r"\{\{[^{}]{0,200}\}\}",
        "Client-side template interpolation", "template",
        contexts=_NOT_CSS,
    ),
    _sig(
        "template-dollar", _INJ, Severity.HIGH,
        r"\$\{[^{}]{0,200}\}",
        "Expression-language interpolation", "template",
        contexts=_NOT_CSS,
    ),
    _sig(
        "template-server", _INJ, Severity.HIGH,
        r"<%=?[^%]{0,200}%>",
        "Server-side template tag", "template",
        contexts=_NOT_CSS,
    ),
    _sig(
        "template-statement", _INJ, Severity.HIGH,
        r"\{%[^%]{0,200}%\}",
        "Template statement block", "template",
        contexts=_NOT_CSS,
    ),
)

# One signature per dangerous element, reported alongside the structural
# tag signatures above so that each element adds its own evidence.
_DANGEROUS_TAG_SIGNATURES: tuple[ThreatSignature, ...] = tuple(
    _sig(
        f"dangerous-tag-{tag}", _TAG, Severity.CRITICAL,
        rf"<\s{{0,5}}{tag}\b[^>]{{0,500}}>",
        f"Dangerous <{tag}> element", "dangerous-tag",
    )
    for tag in sorted(DANGEROUS_TAGS)
)

MARKUP_SIGNATURES: tuple[ThreatSignature, ...] = (
    _MARKUP_SHAPE_SIGNATURES + _DANGEROUS_TAG_SIGNATURES
)


# ---------------------------------------------------------------------------
# Universally dangerous raw sequences (stripped for every field type)
# ---------------------------------------------------------------------------

UNIVERSAL_STRIP_PATTERNS: tuple[re.Pattern[str], ...] = (
    # Control characters (C0 except tab/newline/CR, DEL, C1) and null bytes
    re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F-\x9F]"),
    # Zero-width characters, BOM and non-characters
    re.compile("[\ufeff\u200b-\u200d\u2060\ufffe\uffff]"),
    # Directory traversal, raw and percent-encoded
    re.compile(r"\.\.(?:/|\\|%2f|%5c)", re.IGNORECASE),
    # Foreign protocol prefixes
    re.compile(r"^\s*(?:javascript|vbscript|data|file|ftp)\s*:", re.IGNORECASE),
    # Absolute file-system path prefix
    re.compile(r"^(?:[a-zA-Z]:)?[\\/]"),
)


# ---------------------------------------------------------------------------
# Markup allow-list defaults for rich text
# ---------------------------------------------------------------------------

RICH_TEXT_TAGS: frozenset[str] = frozenset({
    "p", "br", "b", "i", "u", "strong", "em", "ul", "ol", "li", "a",
    "h1", "h2", "h3", "h4", "h5", "h6",
})

RICH_TEXT_ATTRIBUTES: frozenset[str] = frozenset({"href", "title", "target"})
