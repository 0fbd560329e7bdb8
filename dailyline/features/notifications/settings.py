"""Notification settings surface: defaults, validation and partial updates."""
from __future__ import annotations

import re
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, StrictBool, StrictInt

from dailyline.core.errors import ValidationError
from dailyline.core.timeutils import is_valid_timezone
from dailyline.features.notifications.store import NotificationStore
from dailyline.models.notification import MAX_FOLLOW_UPS, MAX_REMINDER_SLOTS, NotificationSettings, ReminderSlot

TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

MIN_INTERVAL_MINUTES = 15
MAX_INTERVAL_MINUTES = 180


class ReminderSlotInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    time: Optional[str] = None
    enabled: StrictBool


class SettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: Optional[StrictBool] = None
    timezone: Optional[str] = None
    primary_time: Optional[str] = None
    active_days: Optional[List[StrictInt]] = None
    follow_up_enabled: Optional[StrictBool] = None
    follow_up_interval_minutes: Optional[StrictInt] = None
    follow_up_max_count: Optional[StrictInt] = None
    reminders: Optional[List[ReminderSlotInput]] = None


def validate_primary_time(value: str) -> None:
    if not isinstance(value, str) or not TIME_RE.match(value):
        raise ValidationError("primary_time must be HH:mm between 00:00 and 23:59")


def validate_active_days(days: Iterable[int]) -> None:
    days = list(days)
    if len(set(days)) != len(days):
        raise ValidationError("active_days must not contain duplicates")
    if any(not isinstance(d, int) or isinstance(d, bool) or not 0 <= d <= 6 for d in days):
        raise ValidationError("active_days must be integers 0 (Sunday) to 6 (Saturday)")


def validate_reminders(slots: Sequence[ReminderSlot]) -> None:
    if len(slots) > MAX_REMINDER_SLOTS:
        raise ValidationError(f"reminders must have at most {MAX_REMINDER_SLOTS} items")
    for index, slot in enumerate(slots):
        if slot.time is not None and (not isinstance(slot.time, str) or not TIME_RE.match(slot.time)):
            raise ValidationError(f"reminders[{index}].time must be HH:mm between 00:00 and 23:59")
        if slot.enabled and slot.time is None:
            raise ValidationError(f"reminders[{index}].time is required when enabled is true")


def validate_settings(value: NotificationSettings) -> NotificationSettings:
    if not is_valid_timezone(value.timezone):
        raise ValidationError(f"unknown timezone: {value.timezone}")
    validate_primary_time(value.primary_time)
    validate_reminders(value.reminders)
    if not MIN_INTERVAL_MINUTES <= value.follow_up_interval_minutes <= MAX_INTERVAL_MINUTES:
        raise ValidationError(
            f"follow_up_interval_minutes must be between {MIN_INTERVAL_MINUTES} and {MAX_INTERVAL_MINUTES}"
        )
    if not 1 <= value.follow_up_max_count <= MAX_FOLLOW_UPS:
        raise ValidationError(f"follow_up_max_count must be between 1 and {MAX_FOLLOW_UPS}")
    return value


def get_settings(user_id: str, store: Optional[NotificationStore] = None) -> NotificationSettings:
    """Stored settings, or the defaults when the user never saved any."""
    store = store or NotificationStore()
    return store.get_settings(user_id) or NotificationSettings(user_id=user_id)


def update_settings(
    user_id: str,
    update: SettingsUpdate,
    store: Optional[NotificationStore] = None,
) -> NotificationSettings:
    store = store or NotificationStore()
    changes = update.model_dump(exclude_none=True)
    if "active_days" in changes:
        validate_active_days(changes["active_days"])
        changes["active_days"] = frozenset(changes["active_days"])
    if update.reminders is not None:
        changes["reminders"] = tuple(ReminderSlot(time=slot.time, enabled=slot.enabled) for slot in update.reminders)

    merged = validate_settings(replace(get_settings(user_id, store), **changes))
    return store.upsert_settings(merged)
