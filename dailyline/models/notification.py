from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

MAX_FOLLOW_UPS = 5

DEFAULT_TIMEZONE = "Asia/Tokyo"
DEFAULT_PRIMARY_TIME = "21:00"
DEFAULT_FOLLOW_UP_INTERVAL_MINUTES = 60
DEFAULT_FOLLOW_UP_MAX_COUNT = 2
MAX_REMINDER_SLOTS = 5

_FOLLOW_UP_RE = re.compile(r"^follow_up_([1-9]\d*)$")


# Reminder stage: closed variant MainReminder | FollowUp(n) --------------------
@dataclass(frozen=True)
class MainReminder:
    def __str__(self) -> str:
        return "main_reminder"


@dataclass(frozen=True)
class FollowUp:
    n: int

    def __post_init__(self):
        if not isinstance(self.n, int) or not 1 <= self.n <= MAX_FOLLOW_UPS:
            raise ValueError(f"follow-up number must be between 1 and {MAX_FOLLOW_UPS}, got {self.n!r}")

    def __str__(self) -> str:
        return f"follow_up_{self.n}"


ReminderStage = Union[MainReminder, FollowUp]

MAIN_REMINDER = MainReminder()


def encode_stage(stage: ReminderStage) -> str:
    """Stable storage/wire form of a stage."""
    if isinstance(stage, MainReminder):
        return "main_reminder"
    if isinstance(stage, FollowUp):
        return f"follow_up_{stage.n}"
    raise TypeError(f"unknown reminder stage: {stage!r}")


def decode_stage(value: str) -> ReminderStage:
    if value == "main_reminder":
        return MAIN_REMINDER
    match = _FOLLOW_UP_RE.match(value or "")
    if match:
        return FollowUp(int(match.group(1)))
    raise ValueError(f"unknown reminder stage: {value!r}")


def is_follow_up(stage: ReminderStage) -> bool:
    return isinstance(stage, FollowUp)


class DeliveryResult(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


# Records ---------------------------------------------------------------------
@dataclass(frozen=True)
class ReminderSlot:
    """One configured main-reminder time (local HH:mm)."""

    time: Optional[str] = None
    enabled: bool = True

    def as_dict(self) -> dict:
        return {"time": self.time, "enabled": self.enabled}


@dataclass(frozen=True)
class NotificationSettings:
    user_id: str
    enabled: bool = True
    timezone: str = DEFAULT_TIMEZONE
    primary_time: str = DEFAULT_PRIMARY_TIME
    active_days: frozenset[int] = field(default_factory=frozenset)
    follow_up_enabled: bool = True
    follow_up_interval_minutes: int = DEFAULT_FOLLOW_UP_INTERVAL_MINUTES
    follow_up_max_count: int = DEFAULT_FOLLOW_UP_MAX_COUNT
    reminders: Tuple[ReminderSlot, ...] = ()

    def main_times(self) -> List[str]:
        """Local HH:mm times the main reminder fires at; primary_time when no slots are configured."""
        if self.reminders:
            return [slot.time for slot in self.reminders if slot.enabled and slot.time]
        return [self.primary_time]

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "enabled": self.enabled,
            "timezone": self.timezone,
            "primary_time": self.primary_time,
            "active_days": sorted(self.active_days),
            "follow_up_enabled": self.follow_up_enabled,
            "follow_up_interval_minutes": self.follow_up_interval_minutes,
            "follow_up_max_count": self.follow_up_max_count,
            "reminders": [slot.as_dict() for slot in self.reminders],
        }


@dataclass(frozen=True)
class DeviceRegistration:
    id: str
    user_id: str
    endpoint: str
    p256dh_key: str
    auth_key: str
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class DeliveryLogEntry:
    user_id: str
    stage: ReminderStage
    sent_at: datetime
    result: DeliveryResult
    error_message: Optional[str] = None
    entry_recorded_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class ReminderTarget:
    user_id: str
    stage: ReminderStage


@dataclass(frozen=True)
class PushPayload:
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    icon: Optional[str] = None
    badge: Optional[str] = None

    def to_json(self) -> str:
        body: Dict[str, Any] = {"title": self.title, "body": self.body, "data": self.data}
        if self.icon:
            body["icon"] = self.icon
        if self.badge:
            body["badge"] = self.badge
        return json.dumps(body, ensure_ascii=False, separators=(",", ":"))


@dataclass(frozen=True)
class DeviceOutcome:
    device_id: str
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    should_remove: bool = False


@dataclass
class TickSummary:
    main_sent: int = 0
    main_skipped: int = 0
    main_failed: int = 0
    follow_up_sent: int = 0
    follow_up_skipped: int = 0
    follow_up_failed: int = 0

    def record(self, stage: ReminderStage, result: DeliveryResult) -> None:
        prefix = "follow_up" if is_follow_up(stage) else "main"
        suffix = {
            DeliveryResult.SUCCESS: "sent",
            DeliveryResult.SKIPPED: "skipped",
            DeliveryResult.FAILED: "failed",
        }[result]
        attr = f"{prefix}_{suffix}"
        setattr(self, attr, getattr(self, attr) + 1)

    def as_dict(self) -> dict:
        return {
            "main_sent": self.main_sent,
            "main_skipped": self.main_skipped,
            "main_failed": self.main_failed,
            "follow_up_sent": self.follow_up_sent,
            "follow_up_skipped": self.follow_up_skipped,
            "follow_up_failed": self.follow_up_failed,
        }
