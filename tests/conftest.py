"""Shared pytest fixtures for the LMS dashboard tests."""

from __future__ import annotations

import os

# Settings are read once at import time; pin them before any project import.
os.environ["DB_ENABLED"] = "0"
os.environ["REDIS_URL"] = ""
os.environ["DB_PREFIX"] = ""
os.environ["REPORT_TZ_OFFSET_HOURS"] = "7"

from pathlib import Path  # noqa: E402
from typing import Any, Dict, List, Optional, Tuple  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, text  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import db  # noqa: E402
import lms_store  # noqa: E402
import report_stats_store  # noqa: E402
import reports_router  # noqa: E402
from db import QueryResult  # noqa: E402
from main import app  # noqa: E402
from report_store import ReportStore, get_report_store  # noqa: E402


class FakeExecutor:
    """Stands in for run_query / run_raw_query.

    Rules are checked in registration order; the first rule whose needles all
    occur in the SQL text wins. Unmatched SQL gets an empty successful result.
    """

    def __init__(self) -> None:
        self.rules: List[Tuple[Tuple[str, ...], QueryResult]] = []
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def on(self, *needles: str, rows: Optional[List[Dict[str, Any]]] = None, error: Optional[str] = None) -> "FakeExecutor":
        if error is not None:
            result = QueryResult(success=False, error=error)
        else:
            rows = list(rows or [])
            result = QueryResult(success=True, rows=rows, columns=list(rows[0].keys()) if rows else [])
        self.rules.append((needles, result))
        return self

    def __call__(self, sql: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        self.calls.append((sql, dict(params or {})))
        for needles, result in self.rules:
            if all(n in sql for n in needles):
                return QueryResult(
                    success=result.success,
                    rows=[dict(r) for r in result.rows],
                    columns=list(result.columns),
                    error=result.error,
                )
        return QueryResult(success=True)

    def calls_matching(self, needle: str) -> List[Tuple[str, Dict[str, Any]]]:
        return [c for c in self.calls if needle in c[0]]


@pytest.fixture
def fake_db(monkeypatch: pytest.MonkeyPatch) -> FakeExecutor:
    """Scripted executor behind every fixed report query."""
    fake = FakeExecutor()
    monkeypatch.setattr(lms_store, "run_query", fake)
    monkeypatch.setattr(report_stats_store, "run_query", fake)
    return fake


@pytest.fixture
def fake_raw(monkeypatch: pytest.MonkeyPatch) -> FakeExecutor:
    """Scripted executor behind ad-hoc and saved report execution."""
    fake = FakeExecutor()
    monkeypatch.setattr(reports_router, "run_raw_query", fake)
    return fake


@pytest.fixture
def reports_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "custom_reports.json"


@pytest.fixture
def report_store(reports_path: Path) -> ReportStore:
    return ReportStore(reports_path)


@pytest.fixture
def sqlite_engine(monkeypatch: pytest.MonkeyPatch):
    """In-memory SQLite engine with a small course table, wired into db.get_engine."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE course (id INTEGER PRIMARY KEY, fullname TEXT, visible INTEGER)"))
        conn.execute(
            text("INSERT INTO course (id, fullname, visible) VALUES (:id, :fullname, :visible)"),
            [
                {"id": 1, "fullname": "Site home", "visible": 1},
                {"id": 2, "fullname": "Algebra 100%", "visible": 1},
                {"id": 3, "fullname": "Biology", "visible": 0},
            ],
        )
    monkeypatch.setattr(db, "get_engine", lambda: engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def client(report_store: ReportStore, fake_db: FakeExecutor, fake_raw: FakeExecutor):
    app.dependency_overrides[get_report_store] = lambda: report_store
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
