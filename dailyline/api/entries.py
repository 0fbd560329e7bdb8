from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks
from pydantic import BaseModel, Field

from dailyline.features.notifications.entry_hook import dispatch_entry_created

router = APIRouter()


class EntryCreatedEvent(BaseModel):
    user_id: str = Field(..., min_length=1)
    entry_id: Optional[str] = None
    created_at: Optional[datetime] = None


@router.post("/v1/entries/events/created", status_code=202)
def handle_entry_created(event: EntryCreatedEvent, background_tasks: BackgroundTasks):
    """Fire-and-forget: side-effect failures never surface to the entry writer."""
    mode = dispatch_entry_created(
        event.user_id,
        event.created_at,
        event.entry_id,
        background_tasks=background_tasks,
    )
    return {"accepted": True, "mode": mode}
