"""report_store.py - saved custom SQL reports, persisted as one JSON array.

Record shape:
    {id, name, description, sql, createdAt, updatedAt}

Every mutation is read-full-collection / write-full-collection. An in-process
lock serializes that cycle; separate processes sharing the file still race
(last writer wins).

SQL is validated with query_guard on create/update only. Reads trust that
whatever is on disk was accepted at write time.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import tempfile
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import REPORTS_FILE
from query_guard import classify_query

logger = logging.getLogger("lms_dashboard.report_store")


class ReportStoreError(Exception):
    pass


class ReportValidationError(ReportStoreError, ValueError):
    pass


class ReportNotFoundError(ReportStoreError, LookupError):
    def __init__(self, report_id: str):
        super().__init__(f"Report not found: {report_id}")
        self.report_id = report_id


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_report_id() -> str:
    # Millisecond clock plus a random tail: sortable and collision-free in practice.
    return f"{int(time.time() * 1000):x}{secrets.token_hex(3)}"


def _clean(v: Optional[str]) -> str:
    return "" if v is None else str(v).strip()


class ReportStore:
    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)
        self._lock = threading.Lock()

    # ----------------------
    # File IO
    # ----------------------
    def _read(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.exception("Could not read reports file %s; treating as empty", self.path)
            return []
        if not isinstance(data, list):
            logger.warning("Reports file %s does not hold a JSON array; treating as empty", self.path)
            return []
        return [r for r in data if isinstance(r, dict)]

    def _write(self, reports: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".reports-", suffix=".json", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(reports, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    @staticmethod
    def _find(reports: List[Dict[str, Any]], report_id: str) -> int:
        for i, r in enumerate(reports):
            if str(r.get("id")) == str(report_id):
                return i
        return -1

    @staticmethod
    def _validate_sql(sql: str) -> None:
        verdict = classify_query(sql)
        if not verdict.allowed:
            raise ReportValidationError(verdict.reason or "Only SELECT queries are allowed")

    # ----------------------
    # Reads
    # ----------------------
    def list_reports(self) -> List[Dict[str, Any]]:
        return self._read()

    def get_report(self, report_id: str) -> Dict[str, Any]:
        reports = self._read()
        i = self._find(reports, report_id)
        if i < 0:
            raise ReportNotFoundError(report_id)
        return reports[i]

    # ----------------------
    # Mutations
    # ----------------------
    def create_report(self, name: Optional[str], sql: Optional[str], description: Optional[str] = "") -> Dict[str, Any]:
        name = _clean(name)
        sql = _clean(sql)
        if not name or not sql:
            raise ReportValidationError("Report name and SQL are required")
        self._validate_sql(sql)

        now = _now_iso()
        report = {
            "id": _new_report_id(),
            "name": name,
            "description": _clean(description),
            "sql": sql,
            "createdAt": now,
            "updatedAt": now,
        }
        with self._lock:
            reports = self._read()
            reports.append(report)
            self._write(reports)
        logger.info("Created report %s (%s)", report["id"], name)
        return report

    def update_report(
        self,
        report_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        sql: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            reports = self._read()
            i = self._find(reports, report_id)
            if i < 0:
                raise ReportNotFoundError(report_id)

            report = dict(reports[i])
            if name is not None:
                name = _clean(name)
                if not name:
                    raise ReportValidationError("Report name cannot be empty")
                report["name"] = name
            if description is not None:
                report["description"] = _clean(description)
            if sql is not None and _clean(sql):
                sql = _clean(sql)
                self._validate_sql(sql)
                report["sql"] = sql
            report["updatedAt"] = _now_iso()

            reports[i] = report
            self._write(reports)
        logger.info("Updated report %s", report_id)
        return report

    def delete_report(self, report_id: str) -> Dict[str, Any]:
        with self._lock:
            reports = self._read()
            i = self._find(reports, report_id)
            if i < 0:
                raise ReportNotFoundError(report_id)
            removed = reports.pop(i)
            self._write(reports)
        logger.info("Deleted report %s", report_id)
        return removed


_STORE: Optional[ReportStore] = None


def get_report_store() -> ReportStore:
    global _STORE
    if _STORE is None:
        _STORE = ReportStore(REPORTS_FILE)
    return _STORE
