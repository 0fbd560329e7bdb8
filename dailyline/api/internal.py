"""Scheduler trigger endpoints (bearer CRON_SECRET)."""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from dailyline.core.cron_auth import require_cron_secret
from dailyline.features.continuity.service import get_continuity_service
from dailyline.features.notifications.scheduler import run_tick

router = APIRouter(prefix="/v1/internal", dependencies=[Depends(require_cron_secret)])


class TickRequest(BaseModel):
    now: Optional[datetime] = None


class SweepRequest(BaseModel):
    today: Optional[date] = None


class WeeklyResetRequest(BaseModel):
    now: Optional[datetime] = None


@router.post("/notifications/tick")
async def trigger_tick(body: Optional[TickRequest] = None):
    summary = await run_tick(body.now if body else None)
    return summary.as_dict()


@router.post("/continuity/daily-sweep")
def trigger_daily_sweep(body: Optional[SweepRequest] = None):
    report = get_continuity_service().run_daily_sweep(body.today if body else None)
    return report.as_dict()


@router.post("/continuity/weekly-reset")
def trigger_weekly_reset(body: Optional[WeeklyResetRequest] = None):
    return get_continuity_service().run_weekly_reset(body.now if body else None)
