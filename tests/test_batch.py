"""Tests for sanitize_batch."""

from __future__ import annotations

from inputguard.sanitizer import sanitize, sanitize_batch


class TestBatchVerdict:
    def test_one_unsafe_field_fails_the_batch(self, guard_config):
        result = sanitize_batch(
            {"a": "hello", "b": "<script>alert(1)</script>"}, {}, {}, config=guard_config
        )
        assert result.safe is False
        assert result.per_field["a"].safe is True
        assert result.per_field["b"].safe is False

    def test_all_safe(self, guard_config):
        result = sanitize_batch(
            {"name": "John", "email": "John@Example.com"},
            {"email": "email"},
            config=guard_config,
        )
        assert result.safe is True
        assert result.sanitized_values == {"name": "John", "email": "john@example.com"}
        assert result.warnings == ()

    def test_safe_is_conjunction_of_fields(self, guard_config):
        fields = {
            "q": "' OR '1'='1",
            "user": "ab",
            "bio": "<p>hi</p>",
            "age": "42",
        }
        types = {"q": "searchQuery", "user": "username", "bio": "richText", "age": "numeric"}
        result = sanitize_batch(fields, types, config=guard_config)
        assert result.safe == all(r.safe for r in result.per_field.values())
        assert set(result.per_field) == set(fields)

    def test_empty_batch_is_safe(self, guard_config):
        result = sanitize_batch({}, config=guard_config)
        assert result.safe is True
        assert result.per_field == {}


class TestBatchFields:
    def test_missing_type_defaults_to_plain_text(self, guard_config):
        batch = sanitize_batch({"note": "a   b"}, {"other": "searchQuery"}, config=guard_config)
        single = sanitize("a   b", "plainText", config=guard_config)
        assert batch.sanitized_values["note"] == single.sanitized_value

    def test_values_match_single_field_results(self, guard_config):
        batch = sanitize_batch({"x": "admin'; DROP TABLE users; --"}, config=guard_config)
        assert batch.sanitized_values["x"] == "admin''  TABLE users"
        assert batch.per_field["x"].sanitized_value == batch.sanitized_values["x"]

    def test_warnings_are_attributed(self, guard_config):
        result = sanitize_batch(
            {"a": "fine", "b": "<img src=x onerror=alert(1)>", "c": "a" * 1200},
            config=guard_config,
        )
        by_field = {(w.field, w.kind) for w in result.warnings}
        assert ("b", "MARKUP_INJECTION_DETECTED") in by_field
        assert ("c", "LENGTH_TRUNCATED") in by_field
        assert all(w.field in ("b", "c") for w in result.warnings)

    def test_event_context_names_the_field(self, guard_config, event_log):
        sanitize_batch(
            {"a": "ok", "b": "<script>alert(1)</script>"},
            context={"ip": "192.0.2.7", "request_id": "req-1"},
            config=guard_config,
        )
        assert event_log.kinds == ["XSS_ATTACK_ATTEMPT"]
        context, _, _ = event_log.events[0]
        assert context.field == "b"
        assert context.client_ip == "192.0.2.7"
        assert context.request_id == "req-1"
