from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException

import lms_store
from schemas import UserGradesResponse, UserSearchResponse

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/search", response_model=UserSearchResponse)
def search_users(q: Optional[str] = None, page: Optional[str] = None, limit: Optional[str] = None):
    """Search by username, name or email. Fewer than 2 characters -> empty page."""
    return {"ok": True, **lms_store.search_users(q, page=page, limit=limit)}


@router.get("/{user_id}/grades", response_model=UserGradesResponse)
def user_grades(user_id: int):
    data = lms_store.get_user_grades(user_id)
    if data is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"ok": True, **data}
