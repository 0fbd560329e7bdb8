"""Static message catalog keyed by reminder stage."""
from __future__ import annotations

import random
import uuid
from typing import Dict, List, Optional

from dailyline.core.config import settings
from dailyline.models.notification import FollowUp, MainReminder, PushPayload, ReminderStage, encode_stage

NOTIFICATION_TITLE = "dailyline"

MAIN_MESSAGES: List[Dict[str, str]] = [
    {"title": NOTIFICATION_TITLE, "body": "How was your day today?"},
    {"title": NOTIFICATION_TITLE, "body": "Even one line is enough. Leave a note for today."},
]

FOLLOW_UP_FIRST_MESSAGES: List[Dict[str, str]] = [
    {"title": NOTIFICATION_TITLE, "body": "There's still time."},
    {"title": NOTIFICATION_TITLE, "body": "It only takes 30 seconds."},
]

# Second and later follow-ups
FOLLOW_UP_LAST_MESSAGES: List[Dict[str, str]] = [
    {"title": NOTIFICATION_TITLE, "body": "Last chance for today."},
    {"title": NOTIFICATION_TITLE, "body": "Want to use a grace day instead?"},
]


def messages_for(stage: ReminderStage) -> List[Dict[str, str]]:
    if isinstance(stage, MainReminder):
        return MAIN_MESSAGES
    if isinstance(stage, FollowUp):
        return FOLLOW_UP_FIRST_MESSAGES if stage.n == 1 else FOLLOW_UP_LAST_MESSAGES
    raise TypeError(f"unknown reminder stage: {stage!r}")


def notification_type(stage: ReminderStage) -> str:
    if isinstance(stage, MainReminder):
        return "main_reminder"
    if isinstance(stage, FollowUp):
        return "chase_reminder"
    raise TypeError(f"unknown reminder stage: {stage!r}")


def render_payload(stage: ReminderStage, rng: Optional[random.Random] = None) -> PushPayload:
    message = (rng or random).choice(messages_for(stage))
    return PushPayload(
        title=message["title"],
        body=message["body"],
        data={
            "url": settings.NOTIFICATION_URL,
            "type": notification_type(stage),
            "stage": encode_stage(stage),
            "notification_id": str(uuid.uuid4()),
        },
        icon=settings.NOTIFICATION_ICON or None,
        badge=settings.NOTIFICATION_BADGE or None,
    )
