"""Dashboard overview endpoint (headline counters for the landing page)."""

from __future__ import annotations

from fastapi import APIRouter

import lms_store
from schemas import OverviewResponse

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/overview", response_model=OverviewResponse)
def overview():
    """Active users, visible courses, today's log events, active enrolments."""
    return {"ok": True, **lms_store.get_overview()}
