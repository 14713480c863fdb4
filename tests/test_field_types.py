"""Tests for inputguard.field_types: table, overrides, normalizers and validators."""

from __future__ import annotations

import pytest

from inputguard.field_types import (
    FIELD_TYPE_CONFIGS,
    NORMALIZERS,
    VALIDATORS,
    FieldType,
    NormalizationRule,
    resolve_field_type,
)


class TestFieldTypeTable:
    def test_every_type_configured(self):
        assert set(FIELD_TYPE_CONFIGS) == set(FieldType)

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            FIELD_TYPE_CONFIGS[FieldType.EMAIL] = FIELD_TYPE_CONFIGS[FieldType.URL]  # type: ignore[index]

    def test_limits(self):
        assert FIELD_TYPE_CONFIGS[FieldType.PLAIN_TEXT].max_length == 1000
        assert FIELD_TYPE_CONFIGS[FieldType.USERNAME].min_length == 3
        assert FIELD_TYPE_CONFIGS[FieldType.PASSWORD].min_length == 8
        assert FIELD_TYPE_CONFIGS[FieldType.RICH_TEXT].max_length == 10000

    def test_password_skips_markup_checks(self):
        cfg = FIELD_TYPE_CONFIGS[FieldType.PASSWORD]
        assert cfg.check_injection is True
        assert cfg.check_markup_injection is False

    def test_rich_text_allow_list(self):
        cfg = FIELD_TYPE_CONFIGS[FieldType.RICH_TEXT]
        assert "p" in cfg.allowed_tags
        assert "script" not in cfg.allowed_tags
        assert cfg.allowed_attributes == frozenset({"href", "title", "target"})


class TestResolveFieldType:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("plainText", FieldType.PLAIN_TEXT),
            ("text", FieldType.PLAIN_TEXT),
            ("richtext", FieldType.RICH_TEXT),
            ("search", FieldType.SEARCH_QUERY),
            (FieldType.URL, FieldType.URL),
        ],
    )
    def test_names_and_aliases(self, name, expected):
        assert resolve_field_type(name) is expected

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            resolve_field_type("creditCard")


class TestOverrides:
    def test_snake_and_camel_case(self):
        cfg = FIELD_TYPE_CONFIGS[FieldType.PLAIN_TEXT]
        assert cfg.with_overrides({"max_length": 10}).max_length == 10
        assert cfg.with_overrides({"maxLength": 20}).max_length == 20
        assert cfg.with_overrides({"stripHTML": False}).strip_markup is False

    def test_unknown_keys_ignored(self):
        cfg = FIELD_TYPE_CONFIGS[FieldType.PLAIN_TEXT]
        assert cfg.with_overrides({"colour": "blue"}) is cfg

    def test_original_untouched(self):
        cfg = FIELD_TYPE_CONFIGS[FieldType.PLAIN_TEXT]
        cfg.with_overrides({"max_length": 5})
        assert FIELD_TYPE_CONFIGS[FieldType.PLAIN_TEXT].max_length == 1000

    def test_tag_lists_become_frozensets(self):
        cfg = FIELD_TYPE_CONFIGS[FieldType.RICH_TEXT].with_overrides({"allowedTags": ["b"]})
        assert cfg.allowed_tags == frozenset({"b"})


class TestCharacterClasses:
    def test_username_class(self):
        invalid = FIELD_TYPE_CONFIGS[FieldType.USERNAME].disallowed_characters()
        assert invalid.search("bad user!name")
        assert invalid.search("bad_user-name") is None

    def test_no_class_for_url(self):
        assert FIELD_TYPE_CONFIGS[FieldType.URL].disallowed_characters() is None

    def test_plain_text_accepts_unicode_letters(self):
        invalid = FIELD_TYPE_CONFIGS[FieldType.PLAIN_TEXT].disallowed_characters()
        assert invalid.search("Crème brûlée, s'il vous plaît!") is None


class TestNormalizers:
    @pytest.mark.parametrize(
        "rule, value, expected",
        [
            (NormalizationRule.EMAIL, " User@Example.COM ", "user@example.com"),
            (NormalizationRule.EMAIL, "a@b@c.com", "a@c.com"),
            (NormalizationRule.USERNAME, "__John--Doe__", "john_doe"),
            (NormalizationRule.FILENAME, "..my   report.pdf.", "my report.pdf"),
            (NormalizationRule.URL, "example.com", "https://example.com"),
            (NormalizationRule.URL, "http://example.com", "http://example.com"),
            (NormalizationRule.NUMERIC, "1.2.3", "1.23"),
            (NormalizationRule.NUMERIC, "-12-3", "-123"),
            (NormalizationRule.SEARCH, "  many   spaces\there ", "many spaces here"),
            (NormalizationRule.RICH_TEXT, "a\r\nb\r\n\r\n\r\n\r\nc", "a\nb\n\nc"),
            (NormalizationRule.NONE, "  as is ", "  as is "),
        ],
    )
    def test_normalize(self, rule, value, expected):
        assert NORMALIZERS[rule](value) == expected

    @pytest.mark.parametrize("rule", list(NormalizationRule))
    def test_normalizers_are_idempotent(self, rule):
        value = "  Mixed--Case__Value @ x.y..  \r\n\r\n\r\n 1.2.3 "
        once = NORMALIZERS[rule](value)
        assert NORMALIZERS[rule](once) == once


class TestValidators:
    def test_email(self):
        assert VALIDATORS[NormalizationRule.EMAIL]("user@example.com") is None
        assert VALIDATORS[NormalizationRule.EMAIL]("no-at-sign") is not None

    def test_url(self):
        assert VALIDATORS[NormalizationRule.URL]("https://example.com/path?q=1") is None
        assert VALIDATORS[NormalizationRule.URL]("https://not a host") is not None

    def test_numeric(self):
        assert VALIDATORS[NormalizationRule.NUMERIC]("-12.5") is None
        assert VALIDATORS[NormalizationRule.NUMERIC]("") is None
        assert VALIDATORS[NormalizationRule.NUMERIC]("-") is not None
