"""Date-ranged statistics reports.

Query params: startDate, endDate (YYYY-MM-DD). Defaults to the last 30 days.
Teacher compliance takes ``month`` (YYYY-MM) instead; the master lists accept
an optional ``category`` id.
Registered ahead of the custom-report routes so these paths win over /{report_id}.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException

import report_stats_store
from schemas import (
    ComplianceExportResponse,
    CourseActivityResponse,
    ExecutiveSummaryResponse,
    StudentActivityResponse,
    StudentDetailMasterResponse,
    StudentDetailResponse,
    TeacherActivityResponse,
    TeacherComplianceResponse,
    TeacherDetailMasterResponse,
    TeacherDetailResponse,
    UserStatisticsResponse,
)

router = APIRouter(prefix="/api/reports", tags=["statistics"])


def _range(start_date: Optional[str], end_date: Optional[str]) -> report_stats_store.DateRange:
    try:
        return report_stats_store.resolve_date_range(start_date, end_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/user-statistics", response_model=UserStatisticsResponse)
def user_statistics(startDate: Optional[str] = None, endDate: Optional[str] = None):
    return {"ok": True, **report_stats_store.user_statistics(_range(startDate, endDate))}


@router.get("/course-activity", response_model=CourseActivityResponse)
def course_activity(startDate: Optional[str] = None, endDate: Optional[str] = None):
    return {"ok": True, **report_stats_store.course_activity(_range(startDate, endDate))}


@router.get("/teacher-activity", response_model=TeacherActivityResponse)
def teacher_activity(startDate: Optional[str] = None, endDate: Optional[str] = None):
    return {"ok": True, **report_stats_store.teacher_activity(_range(startDate, endDate))}


@router.get("/student-activity", response_model=StudentActivityResponse)
def student_activity(startDate: Optional[str] = None, endDate: Optional[str] = None):
    return {"ok": True, **report_stats_store.student_activity(_range(startDate, endDate))}


@router.get("/teacher-compliance", response_model=TeacherComplianceResponse)
def teacher_compliance(month: Optional[str] = None):
    try:
        rng = report_stats_store.resolve_month(month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, **report_stats_store.teacher_compliance(rng)}


@router.get("/teacher-compliance/export", response_model=ComplianceExportResponse)
def teacher_compliance_export(startDate: Optional[str] = None, endDate: Optional[str] = None):
    if not (startDate or "").strip() or not (endDate or "").strip():
        raise HTTPException(status_code=400, detail="startDate and endDate are required")
    return {"ok": True, **report_stats_store.teacher_compliance_export(_range(startDate, endDate))}


@router.get("/executive-summary", response_model=ExecutiveSummaryResponse)
def executive_summary(startDate: Optional[str] = None, endDate: Optional[str] = None):
    return {"ok": True, **report_stats_store.executive_summary(_range(startDate, endDate))}


@router.get("/teacher-detail-master", response_model=TeacherDetailMasterResponse)
def teacher_detail_master(
    startDate: Optional[str] = None, endDate: Optional[str] = None, category: Optional[int] = None
):
    return {"ok": True, **report_stats_store.teacher_detail_master(_range(startDate, endDate), category=category)}


@router.get("/teacher-detail/{teacher_id}", response_model=TeacherDetailResponse)
def teacher_detail(teacher_id: int, startDate: Optional[str] = None, endDate: Optional[str] = None):
    data = report_stats_store.teacher_detail(teacher_id, _range(startDate, endDate))
    if data is None:
        raise HTTPException(status_code=404, detail="Teacher not found")
    return {"ok": True, **data}


@router.get("/student-detail-master", response_model=StudentDetailMasterResponse)
def student_detail_master(
    startDate: Optional[str] = None, endDate: Optional[str] = None, category: Optional[int] = None
):
    return {"ok": True, **report_stats_store.student_detail_master(_range(startDate, endDate), category=category)}


@router.get("/student-detail/{student_id}", response_model=StudentDetailResponse)
def student_detail(student_id: int, startDate: Optional[str] = None, endDate: Optional[str] = None):
    data = report_stats_store.student_detail(student_id, _range(startDate, endDate))
    if data is None:
        raise HTTPException(status_code=404, detail="Student not found")
    return {"ok": True, **data}
