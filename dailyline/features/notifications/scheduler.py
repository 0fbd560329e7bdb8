"""
Per-minute reminder tick.

run_tick(now) loads enabled settings, recent delivery logs and recorded flags,
selects the due targets and fans each one out. Users are processed
concurrently up to TICK_CONCURRENCY; a failure for one user is counted and
logged without aborting the rest of the tick.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from dailyline.core.config import settings
from dailyline.core.jobs import record_job_run
from dailyline.core.logging import bound_request_id, log_event
from dailyline.core.metrics import reminders_total, tick_duration_seconds, tick_targets
from dailyline.core.timeutils import ensure_utc, minute_floor, utc_now
from dailyline.features.notifications.delivery import fan_out
from dailyline.features.notifications.messages import render_payload
from dailyline.features.notifications.store import NotificationStore
from dailyline.features.notifications.targeting import local_dates_for, lookback_start, select_targets
from dailyline.features.notifications.transport import PushTransport, WebPushTransport
from dailyline.models.notification import DeliveryResult, ReminderTarget, TickSummary, encode_stage

logger = logging.getLogger("dailyline")


def collect_targets(now: datetime, store: NotificationStore) -> List[ReminderTarget]:
    settings_list = store.list_enabled_settings()
    if not settings_list:
        return []
    logs_by_user = store.logs_since(lookback_start(now), user_ids=[s.user_id for s in settings_list])
    local_dates = local_dates_for(now, settings_list)
    recorded = store.recorded_flags(min(local_dates.values()), max(local_dates.values())) if local_dates else set()
    return select_targets(now, settings_list, logs_by_user, recorded)


async def _deliver_target(
    target: ReminderTarget,
    now: datetime,
    store: NotificationStore,
    transport: PushTransport,
) -> DeliveryResult:
    # Another tick for the same minute may have served this target since selection
    if store.query_logs(target.user_id, target.stage, minute_floor(now)):
        reminders_total.inc({"stage": encode_stage(target.stage), "result": "deduplicated"})
        return DeliveryResult.SKIPPED
    return await fan_out(
        target,
        render_payload(target.stage),
        store=store,
        transport=transport,
        sent_at=now,
    )


async def run_tick(
    now: Optional[datetime] = None,
    *,
    store: Optional[NotificationStore] = None,
    transport: Optional[PushTransport] = None,
    concurrency: Optional[int] = None,
) -> TickSummary:
    now = ensure_utc(now) if now else utc_now()
    store = store or NotificationStore()
    transport = transport or WebPushTransport()
    limit = asyncio.Semaphore(max(1, concurrency or settings.TICK_CONCURRENCY))
    summary = TickSummary()
    started = time.perf_counter()

    with bound_request_id("tick") as run_id:
        targets = collect_targets(now, store)
        tick_targets.set(len(targets))

        by_user: Dict[str, List[ReminderTarget]] = defaultdict(list)
        for target in targets:
            by_user[target.user_id].append(target)

        async def _run_user(user_targets: List[ReminderTarget]) -> None:
            async with limit:
                for target in user_targets:
                    try:
                        result = await _deliver_target(target, now, store, transport)
                    except Exception:
                        logger.exception(
                            "reminder.target_failed",
                            extra={"user_id": target.user_id, "stage": encode_stage(target.stage)},
                        )
                        reminders_total.inc({"stage": encode_stage(target.stage), "result": DeliveryResult.FAILED.value})
                        result = DeliveryResult.FAILED
                    summary.record(target.stage, result)

        await asyncio.gather(*(_run_user(user_targets) for user_targets in by_user.values()))

        elapsed = time.perf_counter() - started
        tick_duration_seconds.set(elapsed)
        log_event(
            "info",
            "reminder.tick_complete",
            event_type="tick",
            extra={"now": now.isoformat(), "targets": len(targets), "duration_s": round(elapsed, 3), **summary.as_dict()},
        )

    status = "success" if not (summary.main_failed or summary.follow_up_failed) else "partial"
    record_job_run("notifications.tick", now, status, {"run_id": run_id, "targets": len(targets), **summary.as_dict()})
    return summary
