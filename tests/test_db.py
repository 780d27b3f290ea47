"""Tests for the query executor against an in-memory SQLite database."""

from datetime import date, datetime
from decimal import Decimal

import pytest

import db
from db import (
    DB_NOT_CONFIGURED,
    QueryExecutionError,
    QueryResult,
    _normalize_value,
    db_health,
    require_rows,
    require_scalar,
    run_query,
    run_raw_query,
    table,
)


class TestRunQuery:
    def test_bound_parameters(self, sqlite_engine) -> None:
        result = run_query("SELECT id, fullname FROM course WHERE visible = :visible ORDER BY id", {"visible": 1})
        assert result.success
        assert result.columns == ["id", "fullname"]
        assert result.rows == [
            {"id": 1, "fullname": "Site home"},
            {"id": 2, "fullname": "Algebra 100%"},
        ]
        assert result.first() == {"id": 1, "fullname": "Site home"}

    def test_failure_is_returned_not_raised(self, sqlite_engine) -> None:
        result = run_query("SELECT * FROM nope")
        assert not result.success
        assert result.rows == []
        assert "no such table" in result.error

    def test_no_engine(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(db, "get_engine", lambda: None)
        result = run_query("SELECT 1")
        assert not result.success
        assert result.error == DB_NOT_CONFIGURED


class TestRunRawQuery:
    def test_literals_with_placeholder_characters(self, sqlite_engine) -> None:
        result = run_raw_query("SELECT '50%' AS pct, ':name' AS tag, fullname FROM course WHERE fullname LIKE '%100%%'")
        assert result.success
        assert result.rows == [{"pct": "50%", "tag": ":name", "fullname": "Algebra 100%"}]

    def test_columns_on_empty_result(self, sqlite_engine) -> None:
        result = run_raw_query("SELECT id, fullname FROM course WHERE id > 100")
        assert result.success
        assert result.rows == []
        assert result.columns == ["id", "fullname"]

    def test_syntax_error(self, sqlite_engine) -> None:
        result = run_raw_query("SELEC id FROM course")
        assert not result.success
        assert result.error

    def test_no_engine(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(db, "get_engine", lambda: None)
        assert run_raw_query("SELECT 1").error == DB_NOT_CONFIGURED


class TestNormalization:
    def test_decimal(self) -> None:
        assert _normalize_value(Decimal("12")) == 12
        assert isinstance(_normalize_value(Decimal("12")), int)
        assert _normalize_value(Decimal("12.50")) == 12.5

    def test_bytes_and_dates(self) -> None:
        assert _normalize_value(b"abc") == "abc"
        assert _normalize_value(date(2026, 10, 19)) == "2026-10-19"
        assert _normalize_value(datetime(2026, 10, 19, 8, 30)) == "2026-10-19T08:30:00"

    def test_passthrough(self) -> None:
        assert _normalize_value(None) is None
        assert _normalize_value(3) == 3
        assert _normalize_value("x") == "x"


class TestRequireHelpers:
    def test_require_rows_raises_with_details(self) -> None:
        with pytest.raises(QueryExecutionError) as exc_info:
            require_rows(QueryResult(success=False, error="boom"), "Failed to fetch courses")
        assert exc_info.value.message == "Failed to fetch courses"
        assert exc_info.value.details == "boom"

    def test_require_scalar(self) -> None:
        assert require_scalar(QueryResult(success=True, rows=[{"total": 25}]), "x") == 25
        assert require_scalar(QueryResult(success=True, rows=[]), "x") == 0
        assert require_scalar(QueryResult(success=True, rows=[{"total": None}]), "x") == 0


class TestTableAndHealth:
    def test_table_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        assert table("user") == "user"
        monkeypatch.setattr(db, "DB_PREFIX", "mdl_")
        assert table("user") == "mdl_user"

    def test_health_connected(self, sqlite_engine) -> None:
        health = db_health()
        assert health["enabled"] is True
        assert health["connected"] is True

    def test_health_disabled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(db, "get_engine", lambda: None)
        assert db_health() == {"enabled": False, "connected": False, "reason": DB_NOT_CONFIGURED}
