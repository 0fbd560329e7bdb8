import json
import random

import pytest

from dailyline.features.notifications.messages import (
    FOLLOW_UP_FIRST_MESSAGES,
    FOLLOW_UP_LAST_MESSAGES,
    MAIN_MESSAGES,
    messages_for,
    render_payload,
)
from dailyline.models.notification import (
    MAIN_REMINDER,
    DeliveryResult,
    FollowUp,
    MainReminder,
    TickSummary,
    decode_stage,
    encode_stage,
)


def test_stage_wire_format():
    assert encode_stage(MAIN_REMINDER) == "main_reminder"
    assert encode_stage(FollowUp(3)) == "follow_up_3"
    assert decode_stage("main_reminder") == MainReminder()
    assert decode_stage("follow_up_5") == FollowUp(5)


@pytest.mark.parametrize("value", ["follow_up_0", "follow_up_6", "chase", "", "follow_up_x"])
def test_unknown_stage_rejected(value):
    with pytest.raises(ValueError):
        decode_stage(value)


def test_follow_up_number_is_bounded():
    with pytest.raises(ValueError):
        FollowUp(0)
    with pytest.raises(ValueError):
        FollowUp(6)


def test_message_pools_by_stage():
    assert messages_for(MAIN_REMINDER) is MAIN_MESSAGES
    assert messages_for(FollowUp(1)) is FOLLOW_UP_FIRST_MESSAGES
    assert messages_for(FollowUp(2)) is FOLLOW_UP_LAST_MESSAGES
    assert messages_for(FollowUp(5)) is FOLLOW_UP_LAST_MESSAGES
    with pytest.raises(TypeError):
        messages_for("main_reminder")


def test_rendered_payload_shape():
    payload = render_payload(MAIN_REMINDER, rng=random.Random(7))
    body = json.loads(payload.to_json())

    assert {"title": body["title"], "body": body["body"]} in MAIN_MESSAGES
    assert body["data"]["type"] == "main_reminder"
    assert body["data"]["url"] == "/"
    assert body["data"]["notification_id"]
    assert render_payload(MAIN_REMINDER).data["notification_id"] != payload.data["notification_id"]


def test_tick_summary_buckets():
    summary = TickSummary()
    summary.record(MAIN_REMINDER, DeliveryResult.SUCCESS)
    summary.record(MAIN_REMINDER, DeliveryResult.SKIPPED)
    summary.record(FollowUp(2), DeliveryResult.FAILED)
    summary.record(FollowUp(1), DeliveryResult.SUCCESS)

    assert summary.as_dict() == {
        "main_sent": 1,
        "main_skipped": 1,
        "main_failed": 0,
        "follow_up_sent": 1,
        "follow_up_skipped": 0,
        "follow_up_failed": 1,
    }
