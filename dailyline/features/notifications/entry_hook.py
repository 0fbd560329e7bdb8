"""
Entry-created side effects.

When a user records an entry:
1. the continuity engine applies the entry (reference-zone day)
2. the user's local day is flagged as recorded, cancelling pending follow-ups
3. that day's delivery log rows get entry_recorded_at back-filled

Each step has its own error channel (log + entry_hook_failures_total); none of
them may fail the entry creation that triggered it.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import BackgroundTasks

from dailyline.core.config import settings
from dailyline.core.idempotency import check_and_set, release_key
from dailyline.core.logging import log_event
from dailyline.core.metrics import entry_hook_failures_total
from dailyline.core.timeutils import ensure_utc, is_valid_timezone, local_date, local_day_bounds, reference_timezone, utc_now
from dailyline.features.continuity.service import ContinuityService, get_continuity_service
from dailyline.features.notifications.store import NotificationStore


def _step_failed(step: str, user_id: str, exc: Exception) -> None:
    entry_hook_failures_total.inc({"step": step})
    log_event(
        "error",
        "entry_hook.step_failed",
        user_id=user_id,
        event_type="entry_created",
        error_code=getattr(exc, "code", type(exc).__name__),
        extra={"step": step, "error": str(exc)},
    )


def _notification_timezone(store: NotificationStore, user_id: str) -> str:
    user_settings = store.get_settings(user_id)
    if user_settings and is_valid_timezone(user_settings.timezone):
        return user_settings.timezone
    return reference_timezone()


def handle_entry_created(
    user_id: str,
    created_at: Optional[datetime] = None,
    entry_id: Optional[str] = None,
    *,
    continuity: Optional[ContinuityService] = None,
    store: Optional[NotificationStore] = None,
) -> dict:
    """Run all entry side effects; never raises."""
    created_at = ensure_utc(created_at) or utc_now()
    continuity = continuity or get_continuity_service()
    store = store or NotificationStore()
    result = {"user_id": user_id, "duplicate": False, "continuity": False, "recorded": False, "backfilled": 0}

    key = f"entry_created:{entry_id}" if entry_id else None
    if key:
        try:
            if check_and_set(key, "entry_hook"):
                result["duplicate"] = True
                return result
        except Exception as exc:
            _step_failed("idempotency", user_id, exc)

    try:
        record = continuity.record_entry(user_id, created_at)
        result["continuity"] = True
        result["current_streak"] = record.current_streak
    except Exception as exc:
        _step_failed("continuity", user_id, exc)
        # A redelivery of this event must still reach the continuity engine
        if key:
            try:
                release_key(key)
            except Exception as release_exc:
                _step_failed("idempotency", user_id, release_exc)

    try:
        tz_name = _notification_timezone(store, user_id)
        day = local_date(created_at, tz_name)
        result["recorded"] = store.mark_recorded(user_id, day)
        start, end = local_day_bounds(day, tz_name)
        result["backfilled"] = store.backfill_entry_recorded(user_id, start, end, created_at)
    except Exception as exc:
        _step_failed("notifications", user_id, exc)

    return result


def dispatch_entry_created(
    user_id: str,
    created_at: Optional[datetime] = None,
    entry_id: Optional[str] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> str:
    """Hand the side effects off (RQ, background task, or inline). Returns the mode used."""
    created_at = ensure_utc(created_at) or utc_now()

    if settings.ENTRY_HOOK_QUEUE_ENABLED:
        try:
            from dailyline.queue_client import enqueue_entry_created

            enqueue_entry_created(user_id, created_at.isoformat(), entry_id)
            return "queued"
        except Exception as exc:
            # Queue unavailable: fall through to in-process handling
            _step_failed("enqueue", user_id, exc)

    if background_tasks is not None:
        background_tasks.add_task(handle_entry_created, user_id, created_at, entry_id)
        return "background"

    handle_entry_created(user_id, created_at, entry_id)
    return "inline"
