from __future__ import annotations

from typing import Optional

from fastapi import APIRouter

import lms_store
from schemas import LoginActivityResponse, RecentActivityResponse, RecentLogsResponse

router = APIRouter(prefix="/api/logs", tags=["logs"])


@router.get("/login-activity", response_model=LoginActivityResponse)
def login_activity(days: Optional[str] = None):
    """Daily login counts, one entry per day (max 30 days)."""
    return {"ok": True, **lms_store.login_activity(days=days)}


@router.get("/recent", response_model=RecentLogsResponse)
def recent_logs(limit: Optional[str] = None):
    return {"ok": True, "logs": lms_store.recent_logs(limit=limit)}


@router.get("/recent-activity", response_model=RecentActivityResponse)
def recent_activity(limit: Optional[str] = None):
    """Recent user activity rendered as feed messages."""
    return {"ok": True, "activities": lms_store.recent_activity(limit=limit)}
