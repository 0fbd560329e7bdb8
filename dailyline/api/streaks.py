from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dailyline.core.auth import ensure_caller_owns, get_caller_id
from dailyline.features.continuity.service import get_continuity_service

router = APIRouter()


@router.get("/v1/streaks/current")
def get_current_streak(user_id: str = Query(..., min_length=1), caller_id: Optional[str] = Depends(get_caller_id)):
    """Return the current streak and grace state for a user."""
    ensure_caller_owns(caller_id, user_id)
    return get_continuity_service().get_state(user_id)


@router.get("/v1/streaks/week")
def get_grace_week(user_id: str = Query(..., min_length=1), caller_id: Optional[str] = Depends(get_caller_id)):
    """Monday..Sunday of the current week with grace usage per day."""
    ensure_caller_owns(caller_id, user_id)
    service = get_continuity_service()
    return {"days": service.weekly_grace_days(user_id), "state": service.get_state(user_id)}
