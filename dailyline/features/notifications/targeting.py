"""
Reminder targeting.

Pure decision of which (user, stage) pairs are due at a given minute:

1. Main reminder when the user's local HH:mm equals primary_time on an active day.
2. Follow-up n when a main reminder was logged on the user's local day, the
   user has not recorded that day, fewer than follow_up_max_count follow-ups
   went out, and now >= main_sent_at + n * interval.
3. Anything already logged for the same (user, stage) in the current UTC
   minute is dropped, so overlapping ticks do not double-send.

No I/O: callers pass the settings, recent log rows and recorded flags.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple
from zoneinfo import ZoneInfoNotFoundError

from dailyline.core.timeutils import ensure_utc, local_datetime, minute_floor, sunday_based_weekday
from dailyline.models.notification import (
    MAIN_REMINDER,
    MAX_FOLLOW_UPS,
    DeliveryLogEntry,
    FollowUp,
    MainReminder,
    NotificationSettings,
    ReminderStage,
    ReminderTarget,
)

logger = logging.getLogger("dailyline")


def is_active_day(settings: NotificationSettings, local_day: date) -> bool:
    return not settings.active_days or sunday_based_weekday(local_day) in settings.active_days


def is_main_due(now: datetime, settings: NotificationSettings) -> bool:
    local = local_datetime(now, settings.timezone)
    return local.strftime("%H:%M") in settings.main_times() and is_active_day(settings, local.date())


def logs_on_local_day(logs: Iterable[DeliveryLogEntry], tz_name: str, local_day: date) -> List[DeliveryLogEntry]:
    return [log for log in logs if local_datetime(log.sent_at, tz_name).date() == local_day]


def next_follow_up(
    now: datetime,
    settings: NotificationSettings,
    today_logs: Sequence[DeliveryLogEntry],
    recorded_today: bool,
) -> Optional[FollowUp]:
    if not settings.follow_up_enabled or recorded_today:
        return None

    main_times = [log.sent_at for log in today_logs if isinstance(log.stage, MainReminder)]
    if not main_times:
        return None

    chase_count = sum(1 for log in today_logs if isinstance(log.stage, FollowUp))
    if chase_count >= min(settings.follow_up_max_count, MAX_FOLLOW_UPS):
        return None

    n = chase_count + 1
    main_sent_at = min(main_times)
    if ensure_utc(now) < main_sent_at + timedelta(minutes=n * settings.follow_up_interval_minutes):
        return None
    return FollowUp(n)


def sent_this_minute(logs: Iterable[DeliveryLogEntry], stage: ReminderStage, now: datetime) -> bool:
    minute = minute_floor(now)
    return any(log.stage == stage and minute_floor(log.sent_at) == minute for log in logs)


def select_targets(
    now: datetime,
    settings_list: Iterable[NotificationSettings],
    logs_by_user: Mapping[str, Sequence[DeliveryLogEntry]],
    recorded: Set[Tuple[str, date]],
) -> List[ReminderTarget]:
    """Targets due at `now`. Order is not significant."""
    now = ensure_utc(now)
    targets: List[ReminderTarget] = []

    for settings in settings_list:
        if not settings.enabled:
            continue
        try:
            local_today = local_datetime(now, settings.timezone).date()
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("targeting.invalid_timezone", extra={"user_id": settings.user_id, "timezone": settings.timezone})
            continue

        logs = logs_by_user.get(settings.user_id, ())
        candidates: List[ReminderStage] = []

        if is_main_due(now, settings):
            candidates.append(MAIN_REMINDER)

        follow_up = next_follow_up(
            now,
            settings,
            logs_on_local_day(logs, settings.timezone, local_today),
            (settings.user_id, local_today) in recorded,
        )
        if follow_up is not None:
            candidates.append(follow_up)

        for stage in candidates:
            if sent_this_minute(logs, stage, now):
                continue
            targets.append(ReminderTarget(user_id=settings.user_id, stage=stage))

    return targets


def lookback_start(now: datetime) -> datetime:
    """Earliest instant that can fall on any zone's current local day."""
    return ensure_utc(now) - timedelta(hours=28)


def local_dates_for(now: datetime, settings_list: Iterable[NotificationSettings]) -> Dict[str, date]:
    dates: Dict[str, date] = {}
    for settings in settings_list:
        try:
            dates[settings.user_id] = local_datetime(now, settings.timezone).date()
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return dates
