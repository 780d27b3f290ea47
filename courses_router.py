from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException

import lms_store
from schemas import CourseDetailResponse, CourseListResponse

router = APIRouter(prefix="/api/courses", tags=["courses"])


@router.get("", response_model=CourseListResponse)
def list_courses(page: Optional[str] = None, limit: Optional[str] = None, search: Optional[str] = None):
    """Paginated course list with enrolment and completion counts."""
    return {"ok": True, **lms_store.list_courses(page=page, limit=limit, search=search)}


@router.get("/{course_id}", response_model=CourseDetailResponse)
def course_detail(course_id: int):
    course = lms_store.get_course(course_id)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return {"ok": True, "course": course}
