"""Tests for the read-only SQL classifier and row-limit injection."""

import pytest

from config import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from db import run_raw_query
from query_guard import apply_row_limit, classify_query, coerce_int, is_read_only_query, strip_sql_comments


# ---------------------------------------------------------------------------
# classify_query
# ---------------------------------------------------------------------------


class TestClassifyQuery:
    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM course",
            "select id from course",
            "   \n SELECT 1",
            "WITH recent AS (SELECT id FROM course) SELECT * FROM recent",
        ],
    )
    def test_allows_reads(self, sql: str) -> None:
        verdict = classify_query(sql)
        assert verdict.allowed
        assert verdict.reason is None

    @pytest.mark.parametrize("sql", [None, "", "   ", 42])
    def test_missing_sql(self, sql) -> None:
        verdict = classify_query(sql)
        assert not verdict.allowed
        assert verdict.reason == "SQL query is required"

    @pytest.mark.parametrize("sql", ["SHOW TABLES", "EXPLAIN SELECT 1", "DROP TABLE course"])
    def test_rejects_non_select_start(self, sql: str) -> None:
        verdict = classify_query(sql)
        assert not verdict.allowed
        assert verdict.reason == "Only SELECT queries are allowed"

    def test_rejects_stacked_write(self) -> None:
        verdict = classify_query("SELECT * FROM course; DROP TABLE course")
        assert not verdict.allowed
        assert verdict.reason == "Query contains forbidden keyword: DROP"

    def test_keyword_match_is_case_insensitive(self) -> None:
        verdict = classify_query("select 1; truncate course")
        assert verdict.reason == "Query contains forbidden keyword: TRUNCATE"

    def test_substring_match_rejects_column_names(self) -> None:
        """Keyword heuristic: created_at contains CREATE."""
        verdict = classify_query("SELECT created_at FROM course")
        assert not verdict.allowed
        assert verdict.reason == "Query contains forbidden keyword: CREATE"

    def test_is_read_only_query(self) -> None:
        assert is_read_only_query("SELECT 1")
        assert not is_read_only_query("INSERT INTO course VALUES (1)")


# ---------------------------------------------------------------------------
# Row limit
# ---------------------------------------------------------------------------


class TestApplyRowLimit:
    def test_appends_default_limit(self) -> None:
        assert apply_row_limit("SELECT * FROM course") == f"SELECT * FROM course\nLIMIT {DEFAULT_QUERY_LIMIT}"

    def test_strips_trailing_semicolon(self) -> None:
        assert apply_row_limit("SELECT 1 ;  ", 5) == "SELECT 1\nLIMIT 5"

    def test_strips_repeated_semicolons(self) -> None:
        assert apply_row_limit("SELECT 1 ; ;", 5) == "SELECT 1\nLIMIT 5"
        assert apply_row_limit("SELECT 1;\n;\t", 5) == "SELECT 1\nLIMIT 5"

    def test_keeps_existing_limit(self) -> None:
        sql = "SELECT * FROM course limit 3"
        assert apply_row_limit(sql, 50) == sql

    def test_limit_word_inside_identifier_is_not_a_clause(self) -> None:
        assert apply_row_limit("SELECT limits FROM quota", 7) == "SELECT limits FROM quota\nLIMIT 7"

    def test_string_limit_is_parsed(self) -> None:
        assert apply_row_limit("SELECT 1", "25").endswith("\nLIMIT 25")

    def test_limit_is_clamped(self) -> None:
        assert apply_row_limit("SELECT 1", 10**9).endswith(f"LIMIT {MAX_QUERY_LIMIT}")
        assert apply_row_limit("SELECT 1", 0).endswith("LIMIT 1")

    def test_garbage_limit_uses_default(self) -> None:
        assert apply_row_limit("SELECT 1", "1; DROP TABLE x").endswith(f"LIMIT {DEFAULT_QUERY_LIMIT}")


class TestRowLimitWithComments:
    def test_trailing_line_comment_cannot_swallow_limit(self) -> None:
        out = apply_row_limit("SELECT id FROM course -- every course", 1)
        assert out == "SELECT id FROM course\nLIMIT 1"

    def test_hash_comment(self) -> None:
        assert apply_row_limit("SELECT id FROM course # all", 2) == "SELECT id FROM course\nLIMIT 2"

    def test_semicolon_before_comment(self) -> None:
        assert apply_row_limit("SELECT 1; -- done", 3) == "SELECT 1\nLIMIT 3"

    def test_limit_inside_comment_is_ignored(self) -> None:
        assert apply_row_limit("SELECT id FROM course /* LIMIT 5 */", 4) == "SELECT id FROM course\nLIMIT 4"
        assert apply_row_limit("SELECT id FROM course -- LIMIT 5", 4) == "SELECT id FROM course\nLIMIT 4"

    def test_unterminated_block_comment(self) -> None:
        assert apply_row_limit("SELECT id FROM course /* LIMIT 5", 4) == "SELECT id FROM course\nLIMIT 4"

    def test_limit_inside_literal_is_ignored(self) -> None:
        out = apply_row_limit("SELECT id FROM course WHERE fullname = 'no LIMIT here'", 4)
        assert out == "SELECT id FROM course WHERE fullname = 'no LIMIT here'\nLIMIT 4"

    def test_backquoted_identifier_is_not_a_clause(self) -> None:
        assert apply_row_limit("SELECT `limit` FROM quota", 4) == "SELECT `limit` FROM quota\nLIMIT 4"

    def test_comment_markers_inside_literals_are_kept(self) -> None:
        sql = "SELECT 'a -- b', \"c # d\", '/* e */' FROM course"
        assert apply_row_limit(sql, 4) == f"{sql}\nLIMIT 4"

    def test_escaped_quotes_in_literal(self) -> None:
        sql = "SELECT 'it''s -- fine', 'x\\' LIMIT' FROM course"
        assert apply_row_limit(sql, 4) == f"{sql}\nLIMIT 4"

    def test_double_dash_needs_whitespace(self) -> None:
        """MySQL reads 1--1 as arithmetic, not a comment."""
        assert apply_row_limit("SELECT 1--1", 4) == "SELECT 1--1\nLIMIT 4"

    def test_real_limit_after_comment_is_kept(self) -> None:
        sql = "SELECT id FROM course -- first two\nLIMIT 2"
        assert apply_row_limit(sql, 50) == sql

    def test_strip_sql_comments(self) -> None:
        assert strip_sql_comments("SELECT 1 /* x */ -- y\n, '--z'").split() == ["SELECT", "1", ",", "'--z'"]

    def test_comment_suffix_runs_with_row_cap(self, sqlite_engine) -> None:
        result = run_raw_query(apply_row_limit("SELECT id FROM course -- every course", 1))
        assert result.success
        assert result.rows == [{"id": 1}]

    def test_block_comment_limit_runs_with_row_cap(self, sqlite_engine) -> None:
        result = run_raw_query(apply_row_limit("SELECT id FROM course ORDER BY id /* LIMIT 3 */", 2))
        assert result.success
        assert [r["id"] for r in result.rows] == [1, 2]


class TestCoerceInt:
    def test_parses_and_clamps(self) -> None:
        assert coerce_int("12", 5) == 12
        assert coerce_int(" 12 ", 5, maximum=10) == 10
        assert coerce_int(-4, 5) == 1
        assert coerce_int(0, 5, minimum=0) == 0

    def test_fallback(self) -> None:
        assert coerce_int(None, 5) == 5
        assert coerce_int("abc", 7) == 7
        assert coerce_int("2.5", 3) == 3
