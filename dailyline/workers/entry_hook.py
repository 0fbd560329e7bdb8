"""RQ job for entry-created side effects.

Start a worker with:
    rq worker entry-hooks --url $REDIS_URL
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from dailyline.core.logging import bound_request_id
from dailyline.features.notifications.entry_hook import handle_entry_created


def process_entry_created(user_id: str, created_at_iso: str, entry_id: Optional[str] = None) -> dict:
    with bound_request_id("entry"):
        return handle_entry_created(user_id, datetime.fromisoformat(created_at_iso), entry_id)
