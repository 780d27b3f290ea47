"""Custom SQL reports.

- CRUD over saved report definitions (JSON file, see report_store)
- ad-hoc execution of operator SQL: query_guard first, then a row LIMIT,
  then the executor
- execution/PDF export of a saved report

The database is never written to; query_guard rejects anything that does not
look like a read.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from db import QueryResult, run_raw_query
from pdf_service import render_query_result_pdf
from query_guard import apply_row_limit, classify_query
from report_store import ReportStore, get_report_store
from schemas import (
    ExecuteQueryRequest,
    ExecuteQueryResponse,
    ExecuteSavedRequest,
    ReportCreateRequest,
    ReportDeleteResponse,
    ReportListResponse,
    ReportResponse,
    ReportUpdateRequest,
)

logger = logging.getLogger("lms_dashboard.reports_router")

router = APIRouter(prefix="/api/reports", tags=["reports"])


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "success": False, "error": code, "message": message})


def _run_checked(sql: Optional[str], limit: Any) -> tuple[Optional[JSONResponse], Optional[QueryResult], int]:
    """(error_response, result, elapsed_ms). Exactly one of the first two is set."""
    verdict = classify_query(sql)
    if not verdict.allowed:
        return _error(400, "QUERY_NOT_ALLOWED", verdict.reason or "Only SELECT queries are allowed"), None, 0

    final_sql = apply_row_limit(sql, limit)
    t0 = time.perf_counter()
    result = run_raw_query(final_sql)
    elapsed_ms = int((time.perf_counter() - t0) * 1000)

    if not result.success:
        return _error(400, "QUERY_FAILED", result.error or "Query execution failed"), None, elapsed_ms
    return None, result, elapsed_ms


def _execution_payload(result: QueryResult, elapsed_ms: int) -> Dict[str, Any]:
    return {
        "ok": True,
        "success": True,
        "rowCount": len(result.rows),
        "executionTime": elapsed_ms,
        "columns": result.columns,
        "data": result.rows,
    }


def _filename(name: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9]+", "-", name or "").strip("-").lower()
    return f"{slug or 'report'}.pdf"


# ----------------------
# Ad-hoc execution
# ----------------------
@router.post("/execute", response_model=ExecuteQueryResponse)
def execute_query(payload: ExecuteQueryRequest):
    """Run operator SQL (SELECT/WITH only) with an injected LIMIT if missing."""
    err, result, elapsed_ms = _run_checked(payload.sql, payload.limit)
    if err is not None:
        return err
    return _execution_payload(result, elapsed_ms)


# ----------------------
# CRUD
# ----------------------
@router.get("", response_model=ReportListResponse)
def list_reports(store: ReportStore = Depends(get_report_store)):
    return {"ok": True, "reports": store.list_reports()}


@router.post("", response_model=ReportResponse, status_code=201)
def create_report(payload: ReportCreateRequest, store: ReportStore = Depends(get_report_store)):
    report = store.create_report(name=payload.name, sql=payload.sql, description=payload.description)
    return {"ok": True, "report": report}


@router.get("/{report_id}", response_model=ReportResponse)
def get_report(report_id: str, store: ReportStore = Depends(get_report_store)):
    return {"ok": True, "report": store.get_report(report_id)}


@router.put("/{report_id}", response_model=ReportResponse)
def update_report(report_id: str, payload: ReportUpdateRequest, store: ReportStore = Depends(get_report_store)):
    report = store.update_report(
        report_id,
        name=payload.name,
        description=payload.description,
        sql=payload.sql,
    )
    return {"ok": True, "report": report}


@router.delete("/{report_id}", response_model=ReportDeleteResponse)
def delete_report(report_id: str, store: ReportStore = Depends(get_report_store)):
    removed = store.delete_report(report_id)
    return {"ok": True, "deleted": removed["id"]}


# ----------------------
# Saved report execution / export
# ----------------------
@router.post("/{report_id}/execute", response_model=ExecuteQueryResponse)
def execute_saved_report(
    report_id: str,
    payload: Optional[ExecuteSavedRequest] = None,
    store: ReportStore = Depends(get_report_store),
):
    report = store.get_report(report_id)
    err, result, elapsed_ms = _run_checked(report.get("sql"), payload.limit if payload else None)
    if err is not None:
        return err
    return _execution_payload(result, elapsed_ms)


@router.get("/{report_id}/pdf")
def export_report_pdf(report_id: str, limit: Optional[str] = None, store: ReportStore = Depends(get_report_store)):
    report = store.get_report(report_id)
    err, result, _ = _run_checked(report.get("sql"), limit)
    if err is not None:
        return err

    pdf = render_query_result_pdf(
        report.get("name") or "Report",
        result.columns,
        result.rows,
        description=report.get("description") or "",
        sql=report.get("sql") or "",
    )
    logger.info("Exported report %s as PDF (%d rows)", report_id, len(result.rows))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{_filename(report.get("name") or "")}"'},
    )
