"""Decoding, encoding and markup-removal helpers shared by the scanners and
the sanitizer.

Every transformation here is idempotent: applying it to its own output
returns the output unchanged.
"""

from __future__ import annotations

import html
import re
from typing import Iterable, Optional
from urllib.parse import unquote

import bleach

from inputguard.patterns import RICH_TEXT_ATTRIBUTES, RICH_TEXT_TAGS

# ---------------------------------------------------------------------------
# Decoding (obfuscation resistance)
# ---------------------------------------------------------------------------

_UNICODE_ESCAPE_RE = re.compile(
    r"\\u\{([0-9a-fA-F]{1,6})\}|\\u([0-9a-fA-F]{4})|\\x([0-9a-fA-F]{2})"
)


def percent_decode(text: str) -> str:
    return unquote(text, errors="replace")


def entity_decode(text: str) -> str:
    return html.unescape(text)


def _unicode_replacement(match: re.Match[str]) -> str:
    digits = match.group(1) or match.group(2) or match.group(3)
    codepoint = int(digits, 16)
    if codepoint > 0x10FFFF:
        return match.group(0)
    return chr(codepoint)


def unicode_unescape(text: str) -> str:
    """Resolve ``\\uXXXX``, ``\\u{X}`` and ``\\xXX`` escapes."""
    return _UNICODE_ESCAPE_RE.sub(_unicode_replacement, text)


def decoded_variants(text: str) -> list[tuple[str, str]]:
    """Return ``(label, variant)`` pairs that differ from *text*.

    The ``fully-decoded`` variant chains all three decoders twice, which
    also unwraps double percent-encoding.
    """
    candidates = [
        ("percent-decoded", percent_decode(text)),
        ("entity-decoded", entity_decode(text)),
        ("unicode-decoded", unicode_unescape(text)),
    ]
    full = text
    for _ in range(2):
        full = unicode_unescape(entity_decode(percent_decode(full)))
    candidates.append(("fully-decoded", full))

    seen = {text}
    variants: list[tuple[str, str]] = []
    for label, variant in candidates:
        if variant in seen:
            continue
        seen.add(variant)
        variants.append((label, variant))
    return variants


# ---------------------------------------------------------------------------
# Entity encoding
# ---------------------------------------------------------------------------

_ENTITY_MAP = {
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
    "`": "&#x60;",
    "=": "&#x3D;",
}

# An ampersand that does not already start a character reference
_BARE_AMPERSAND_RE = re.compile(
    r"&(?!(?:[a-zA-Z][a-zA-Z0-9]{1,31}|#[0-9]{1,7}|#[xX][0-9a-fA-F]{1,6});)"
)
_ENCODABLE_RE = re.compile(r"[<>\"'`=/]")

CHARACTER_REFERENCE_RE = re.compile(
    r"&(?:[a-zA-Z][a-zA-Z0-9]{1,31}|#[0-9]{1,7}|#[xX][0-9a-fA-F]{1,6});"
)


def encode_html_entities(text: str) -> str:
    """HTML-encode markup-significant characters.

    Existing character references are left alone, so encoding twice is the
    same as encoding once.
    """
    if not text:
        return ""
    text = _BARE_AMPERSAND_RE.sub("&amp;", text)
    return _ENCODABLE_RE.sub(lambda m: _ENTITY_MAP[m.group(0)], text)


_LONGEST_REFERENCE = 33


def truncate(text: str, max_length: int) -> str:
    """Cut *text* to *max_length* without splitting a character reference."""
    if len(text) <= max_length:
        return text
    cut = text[:max_length]
    amp = cut.rfind("&", max(0, max_length - _LONGEST_REFERENCE))
    if amp != -1 and ";" not in cut[amp:] and CHARACTER_REFERENCE_RE.match(text, amp):
        cut = cut[:amp]
    return cut


# ---------------------------------------------------------------------------
# Markup removal
# ---------------------------------------------------------------------------

_TAG_RE = re.compile(r"<[^>]*>")
_UNTERMINATED_TAG_RE = re.compile(r"<[a-zA-Z/!?%][^>]*$")

_SCRIPT_VECTOR_RES: tuple[re.Pattern[str], ...] = (
    # Event handler and document-loading attributes with their values
    re.compile(
        r"\b(?:on[a-z]{3,30}|srcdoc|formaction)\s{0,5}=\s{0,5}"
        r"(?:\"[^\"]{0,2000}\"|'[^']{0,2000}'|[^\s>]{0,2000})",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:javascript|vbscript|livescript|mocha)\s{0,5}:", re.IGNORECASE),
    re.compile(r"\bdata\s{0,5}:(?=\s{0,5}[a-z]{1,20}/)", re.IGNORECASE),
    re.compile(r"\bexpression\s{0,5}(?=\()", re.IGNORECASE),
    re.compile(r"\bbehavior\s{0,5}:|@import\b|-moz-binding\s{0,5}:", re.IGNORECASE),
    re.compile(r"\{\{|\}\}|\$\{|<%=?|%>|\{%|%\}"),
)


def _until_stable(text: str, patterns: Iterable[re.Pattern[str]]) -> str:
    patterns = tuple(patterns)
    while True:
        previous = text
        for pattern in patterns:
            text = pattern.sub("", text)
        if text == previous:
            return text


def strip_tags(text: str) -> str:
    """Remove every tag, including a trailing unterminated one."""
    return _until_stable(text, (_TAG_RE, _UNTERMINATED_TAG_RE))


def remove_script_vectors(text: str) -> str:
    """Remove event handlers, script protocols, CSS directives and
    template delimiters that survive tag removal."""
    return _until_stable(text, _SCRIPT_VECTOR_RES)


def clean_allowed_markup(
    text: str,
    allowed_tags: Optional[Iterable[str]],
    allowed_attributes: Optional[Iterable[str]],
) -> str:
    """Drop tags and attributes outside the allow-lists, keeping their text."""
    return bleach.clean(
        text,
        tags=set(allowed_tags or ()),
        attributes=list(allowed_attributes or ()),
        protocols={"http", "https", "mailto"},
        strip=True,
        strip_comments=True,
    )


def create_safe_html(
    text: str,
    allowed_tags: Optional[Iterable[str]] = None,
    allowed_attributes: Optional[Iterable[str]] = None,
) -> str:
    """Render untrusted text as HTML, keeping only allow-listed markup.

    Unlike the sanitizer's cleanup, disallowed tags are escaped rather than
    removed, so the reader sees what was submitted.
    """
    if not isinstance(text, str) or not text:
        return ""
    return bleach.clean(
        text,
        tags=set(RICH_TEXT_TAGS if allowed_tags is None else allowed_tags),
        attributes=list(RICH_TEXT_ATTRIBUTES if allowed_attributes is None else allowed_attributes),
        protocols={"http", "https", "mailto"},
        strip=False,
        strip_comments=True,
    )
