"""Tests for inputguard.sql_scanner: detection, clause rules and cleanup."""

from __future__ import annotations

from datetime import datetime

import pytest

from inputguard.models import QueryClause, RequestContext, Severity
from inputguard.sql_scanner import (
    create_secure_query,
    sanitize_sql,
    scan_injection,
    validate_parameters,
)


# -----------------------------------------------------------------------
# Known attacks
# -----------------------------------------------------------------------


class TestKnownAttacks:
    def test_attacks_are_unsafe(self, sql_attacks: list[str]):
        for payload in sql_attacks:
            verdict = scan_injection(payload, {}, "q")
            assert verdict.safe is False, payload
            assert verdict.severity in (Severity.CRITICAL, Severity.HIGH), payload
            assert verdict.risk_score >= 50, payload

    def test_drop_table_scores_maximum(self):
        verdict = scan_injection("'; DROP TABLE users; --", {}, "q")
        assert verdict.risk_score == 100
        assert verdict.severity is Severity.CRITICAL

    def test_tautology_score(self):
        verdict = scan_injection("' OR '1'='1", {}, "q")
        signatures = {t.signature for t in verdict.threats}
        assert {"boolean-tautology", "quoted-boolean"} <= signatures
        assert any(t.kind == "MULTIPLE_SUSPICIOUS_CHARS" for t in verdict.threats)
        assert verdict.risk_score == 80

    def test_overlapping_signatures_are_all_reported(self):
        verdict = scan_injection("'; DROP TABLE users; --", {}, "q")
        signatures = [t.signature for t in verdict.threats]
        assert "stacked-query" in signatures
        assert "drop-statement" in signatures
        assert "line-comment" in signatures

    def test_threat_carries_field_label_and_fragment(self):
        verdict = scan_injection("1 UNION SELECT password FROM users", {}, "search")
        union = next(t for t in verdict.threats if t.signature == "union-select")
        assert union.context == "search"
        assert union.kind == "INJECTION_PATTERN"
        assert "UNION" in union.matched_fragment

    def test_case_insensitive(self):
        assert scan_injection("x'; drop table users", {}, "q").safe is False

    def test_time_delay(self):
        verdict = scan_injection("1 AND SLEEP(5)", {}, "q")
        assert any(t.signature == "time-delay" for t in verdict.threats)

    @pytest.mark.parametrize(
        "payload, signature",
        [
            ("1 UNION SELECT 1", "union-keyword"),
            ("SLEEP(5)", "sleep-keyword"),
            ("WAITFOR DELAY '0:0:5'", "waitfor-keyword"),
            ("1; exec master..xp_cmdshell 'dir'", "exec-keyword"),
        ],
    )
    def test_keyword_adds_evidence(self, payload: str, signature: str):
        verdict = scan_injection(payload, {}, "q")
        keyword = next(t for t in verdict.threats if t.signature == signature)
        assert keyword.kind == "DANGEROUS_KEYWORD"
        assert keyword.severity is Severity.CRITICAL
        assert verdict.risk_score >= 80


class TestLineComment:
    @pytest.mark.parametrize("text", ["abc --", "abc --CASE WHEN", "x-- y", "1--"])
    def test_marker_detected_wherever_it_appears(self, text: str):
        verdict = scan_injection(text, {}, "q")
        assert any(t.signature == "line-comment" for t in verdict.threats)

    def test_text_after_marker_keeps_the_threat(self):
        base = scan_injection("abc --", {}, "q")
        more = scan_injection("abc --CASE WHEN 1=1 THEN 1 END", {}, "q")
        assert more.risk_score >= base.risk_score

    def test_single_hyphen_is_not_a_comment(self):
        assert scan_injection("well-known e-mail", {}, "q").safe is True


class TestSuspiciousCharacters:
    def test_many_quotes(self):
        verdict = scan_injection("a'b'c'd", {}, "q")
        assert [t.kind for t in verdict.threats] == ["MULTIPLE_SUSPICIOUS_CHARS"]
        assert verdict.threats[0].severity is Severity.MEDIUM
        assert verdict.risk_score == 15

    def test_backslashes_count(self):
        verdict = scan_injection("a\\b\\c\\d", {}, "q")
        assert any(t.kind == "MULTIPLE_SUSPICIOUS_CHARS" for t in verdict.threats)

    def test_two_are_tolerated(self):
        assert scan_injection('He said "hello"', {}, "q").safe is True

    def test_character_reference_terminators_ignored(self):
        assert scan_injection("Tom &amp; Jerry &lt;3 &quot;hi&quot;", {}, "q").safe is True


# -----------------------------------------------------------------------
# Monotonic risk
# -----------------------------------------------------------------------


class TestMonotonicRisk:
    @pytest.mark.parametrize(
        "prefix",
        [
            "' OR '1'='1",
            "1 UNION SELECT 1",
            "abc --",
            "admin'; DROP TABLE users",
            "SLEEP(5)",
        ],
    )
    @pytest.mark.parametrize(
        "suffix",
        [
            " --",
            "; DROP TABLE t",
            " UNION SELECT password FROM users",
            " AND SLEEP(5)",
            " /* x */",
        ],
    )
    def test_appending_a_payload_never_lowers_risk(self, prefix: str, suffix: str):
        base = scan_injection(prefix, {}, "q")
        more = scan_injection(prefix + suffix, {}, "q")
        assert base.safe is False
        assert more.risk_score >= base.risk_score


# -----------------------------------------------------------------------
# Benign input
# -----------------------------------------------------------------------


class TestBenignInput:
    def test_benign_strings_are_safe(self, benign_inputs: list[str]):
        for text in benign_inputs:
            verdict = scan_injection(text, {}, "q")
            assert verdict.safe is True, text
            assert verdict.threats == ()
            assert verdict.risk_score == 0
            assert verdict.severity is Severity.NONE

    @pytest.mark.parametrize("value", [None, 42, 3.5, b"'; DROP TABLE x; --", ["x"]])
    def test_non_string_is_safe(self, value):
        verdict = scan_injection(value, {}, "q")
        assert verdict.safe is True
        assert verdict.risk_score == 0

    def test_empty_string_is_safe(self):
        assert scan_injection("", None, "q").safe is True

    def test_oversized_input_returns_verdict(self):
        verdict = scan_injection("a" * 200_000 + "'; DROP TABLE users; --", {}, "q")
        assert verdict.safe is False


# -----------------------------------------------------------------------
# Clause-specific rules
# -----------------------------------------------------------------------


class TestQueryClauseRules:
    def test_where_clause_escalates_tautology(self):
        verdict = scan_injection("' OR '1'='1", {"queryClause": "whereClause"}, "filter")
        escalated = [t for t in verdict.threats if t.kind == "CONTEXT_VIOLATION_WHERECLAUSE"]
        assert escalated
        assert all(t.severity is Severity.CRITICAL for t in escalated)
        assert verdict.risk_score == 100

    def test_where_clause_escalates_union(self):
        ctx = RequestContext(query_clause=QueryClause.WHERE_CLAUSE)
        verdict = scan_injection("1 UNION SELECT 1", ctx, "filter")
        assert any(t.kind == "CONTEXT_VIOLATION_WHERECLAUSE" for t in verdict.threats)

    def test_where_clause_plain_value_is_safe(self):
        assert scan_injection("active", {"queryClause": "whereClause"}, "filter").safe is True

    @pytest.mark.parametrize("value", ["name", "name DESC", "created_at, id", "2"])
    def test_order_by_accepts_identifiers(self, value: str):
        assert scan_injection(value, {"queryClause": "orderBy"}, "sort").safe is True

    def test_order_by_rejects_statement(self):
        verdict = scan_injection("name; DROP TABLE users", {"queryClause": "orderBy"}, "sort")
        violation = [t for t in verdict.threats if t.kind == "CONTEXT_VIOLATION_ORDERBY"]
        assert len(violation) == 1
        assert violation[0].severity is Severity.HIGH

    def test_order_by_rejects_reserved_word(self):
        verdict = scan_injection("name, (select 1)", {"queryClause": "orderBy"}, "sort")
        assert any(t.kind == "CONTEXT_VIOLATION_ORDERBY" for t in verdict.threats)

    def test_limit_accepts_number(self):
        assert scan_injection("10", {"queryClause": "limit"}, "limit").safe is True

    def test_limit_rejects_union(self):
        verdict = scan_injection("10 UNION SELECT 1", {"queryClause": "limit"}, "limit")
        assert any(t.kind == "CONTEXT_VIOLATION_LIMIT" for t in verdict.threats)

    def test_limit_non_numeric_without_keyword_is_not_a_violation(self):
        verdict = scan_injection("ten", {"queryClause": "limit"}, "limit")
        assert verdict.safe is True

    def test_no_clause_means_no_context_threats(self):
        verdict = scan_injection("name; DROP TABLE users", {}, "sort")
        assert not any(t.kind.startswith("CONTEXT_VIOLATION") for t in verdict.threats)

    def test_unknown_clause_is_ignored(self):
        verdict = scan_injection("name", {"queryClause": "groupBy"}, "sort")
        assert verdict.safe is True


# -----------------------------------------------------------------------
# Internal failures
# -----------------------------------------------------------------------


class TestScanErrors:
    def test_internal_failure_becomes_scan_error(self, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("pattern table corrupted")

        monkeypatch.setattr("inputguard.sql_scanner.match_signatures", boom)
        verdict = scan_injection("anything", {}, "q")
        assert verdict.safe is False
        assert verdict.threats[0].kind == "SCAN_ERROR"
        assert verdict.threats[0].severity is Severity.MEDIUM


# -----------------------------------------------------------------------
# Cleanup
# -----------------------------------------------------------------------


class TestSanitizeSql:
    def test_drop_table_payload(self):
        cleaned = sanitize_sql("admin'; DROP TABLE users; --")
        assert cleaned == "admin''  TABLE users"

    def test_removes_comments(self):
        cleaned = sanitize_sql("SELECT * FROM t /* hi */ WHERE 1")
        assert "/*" not in cleaned
        assert "SELECT" not in cleaned

    def test_hash_comment_after_quote(self):
        assert sanitize_sql("admin'# rest") == "admin''"

    def test_quotes_doubled_once(self):
        assert sanitize_sql("it's") == "it''s"
        assert sanitize_sql("it''s") == "it''s"
        assert sanitize_sql('say "hi"') == 'say ""hi""'

    def test_keeps_character_reference_terminators(self):
        assert sanitize_sql("a &amp; b; c") == "a &amp; b c"

    @pytest.mark.parametrize(
        "payload",
        [
            "admin'; DROP TABLE users; --",
            "' OR '1'='1",
            "x'''; EXEC xp_cmdshell('dir') /* c */",
            "a;;;b",
        ],
    )
    def test_idempotent(self, payload: str):
        once = sanitize_sql(payload)
        assert sanitize_sql(once) == once

    def test_empty_and_non_string(self):
        assert sanitize_sql("") == ""
        assert sanitize_sql(None) == ""


# -----------------------------------------------------------------------
# Parameterised queries
# -----------------------------------------------------------------------


class TestValidateParameters:
    def test_safe_parameters(self):
        params = ["john", "password123", "user@example.com"]
        result = validate_parameters(params, {"ip": "127.0.0.1"})
        assert result.safe is True
        assert result.validated_params == params
        assert result.threats == ()

    def test_injection_in_parameter(self):
        result = validate_parameters(["admin", "'; DROP TABLE users; --", "email"])
        assert result.safe is False
        assert result.threats
        assert "DROP" not in result.validated_params[1]
        assert result.validated_params[0] == "admin"
        assert result.threats[0].context == "param_1"

    def test_non_strings_pass_through(self):
        when = datetime(2026, 1, 1)
        result = validate_parameters([123, "safe_string", when])
        assert result.safe is True
        assert result.validated_params[0] == 123
        assert result.validated_params[2] is when

    def test_mapping_parameters(self):
        result = validate_parameters({"name": "x", "q": "' OR 1=1 --"})
        assert result.safe is False
        assert set(result.validated_params) == {"name", "q"}
        assert {t.context for t in result.threats} == {"q"}


class TestCreateSecureQuery:
    def test_parameterised_select_is_safe(self):
        query = "SELECT * FROM users WHERE username = ? AND email = ?"
        params = ["testuser", "test@example.com"]
        result = create_secure_query(query, params, {"ip": "127.0.0.1"})
        assert result.safe is True
        assert result.query == query
        assert result.params == params
        assert result.error is None

    def test_insert_template_is_safe(self):
        result = create_secure_query("INSERT INTO notices (title) VALUES (?)", ["Hello"])
        assert result.safe is True

    @pytest.mark.parametrize(
        "query",
        [
            "SELECT * FROM users WHERE id = 1; DROP TABLE users; --",
            "SELECT * FROM users WHERE 1=1 OR 1=1",
            "SELECT * FROM users UNION SELECT * FROM admin_users",
        ],
    )
    def test_unsafe_templates(self, query: str, event_log):
        result = create_secure_query(query, [], {"ip": "127.0.0.1"}, event_log=event_log)
        assert result.safe is False
        assert result.error == "Unsafe query template detected"
        assert result.query is None
        assert result.params is None
        assert event_log.kinds == ["SECURE_QUERY_CREATION_FAILED"]
        context, _, details = event_log.events[0]
        assert context.client_ip == "127.0.0.1"
        assert details["severity"] == "high"

    def test_unsafe_parameters(self, event_log):
        result = create_secure_query(
            "SELECT * FROM users WHERE name = ?", ["' OR '1'='1"], event_log=event_log
        )
        assert result.safe is False
        assert result.error == "Unsafe parameters detected"
        assert result.param_threats

    def test_empty_template(self, event_log):
        result = create_secure_query("   ", [], event_log=event_log)
        assert result.safe is False
        assert result.error == "Query template is empty"
