from datetime import date, datetime, timezone
from unittest.mock import patch

from dailyline.core.config import settings
from dailyline.core.metrics import entry_hook_failures_total
from dailyline.features.continuity.service import get_continuity_service
from dailyline.features.notifications.entry_hook import dispatch_entry_created, handle_entry_created
from dailyline.features.notifications.store import NotificationStore
from dailyline.models.notification import MAIN_REMINDER, DeliveryLogEntry, DeliveryResult, NotificationSettings
from dailyline.tests.mocks import FailingContinuity

# 22:30 in Tokyo, 08:30 in New York
CREATED_AT = datetime(2026, 1, 11, 13, 30, tzinfo=timezone.utc)


def test_entry_updates_streak_flags_day_and_backfills_logs():
    store = NotificationStore()
    store.upsert_settings(NotificationSettings(user_id="u1", timezone="Asia/Tokyo"))
    log_id = store.append_log(
        DeliveryLogEntry(
            user_id="u1",
            stage=MAIN_REMINDER,
            sent_at=datetime(2026, 1, 11, 12, 0, tzinfo=timezone.utc),
            result=DeliveryResult.SUCCESS,
        )
    )

    result = handle_entry_created("u1", CREATED_AT, "entry-1")

    assert result["continuity"] is True
    assert result["current_streak"] == 1
    assert result["recorded"] is True
    assert result["backfilled"] == 1
    assert ("u1", date(2026, 1, 11)) in store.recorded_flags(date(2026, 1, 10), date(2026, 1, 12))
    [log] = store.recent_logs("u1")
    assert log.id == log_id
    assert log.entry_recorded_at == CREATED_AT


def test_recorded_day_follows_notification_timezone():
    store = NotificationStore()
    store.upsert_settings(NotificationSettings(user_id="u1", timezone="America/New_York"))

    handle_entry_created("u1", datetime(2026, 1, 11, 2, 0, tzinfo=timezone.utc))

    # 02:00 UTC is still Jan 10 in New York
    assert store.recorded_flags(date(2026, 1, 9), date(2026, 1, 12)) == {("u1", date(2026, 1, 10))}


def test_duplicate_entry_event_is_ignored():
    first = handle_entry_created("u1", CREATED_AT, "entry-1")
    second = handle_entry_created("u1", CREATED_AT, "entry-1")

    assert first["duplicate"] is False
    assert second["duplicate"] is True
    assert get_continuity_service().store.get("u1").current_streak == 1


def test_continuity_failure_is_logged_and_other_steps_run():
    store = NotificationStore()

    result = handle_entry_created("u1", CREATED_AT, continuity=FailingContinuity(), store=store)

    assert result["continuity"] is False
    assert result["recorded"] is True
    assert entry_hook_failures_total.value({"step": "continuity"}) == 1


def test_redelivery_after_continuity_failure_is_processed():
    failed = handle_entry_created("u1", CREATED_AT, "entry-7", continuity=FailingContinuity())
    retry = handle_entry_created("u1", CREATED_AT, "entry-7")

    assert failed["continuity"] is False
    assert retry["duplicate"] is False
    assert retry["continuity"] is True
    assert get_continuity_service().store.get("u1").current_streak == 1
    assert handle_entry_created("u1", CREATED_AT, "entry-7")["duplicate"] is True


def test_dispatch_runs_inline_without_queue_or_background():
    assert dispatch_entry_created("u1", CREATED_AT) == "inline"
    assert get_continuity_service().store.get("u1").current_streak == 1


def test_dispatch_enqueues_when_queue_enabled(monkeypatch):
    monkeypatch.setattr(settings, "ENTRY_HOOK_QUEUE_ENABLED", True)

    with patch("dailyline.queue_client.enqueue_entry_created", return_value="job-1") as enqueue:
        mode = dispatch_entry_created("u1", CREATED_AT, "entry-9")

    assert mode == "queued"
    enqueue.assert_called_once_with("u1", CREATED_AT.isoformat(), "entry-9")
    assert get_continuity_service().store.get("u1") is None


def test_dispatch_falls_back_when_queue_unavailable(monkeypatch):
    monkeypatch.setattr(settings, "ENTRY_HOOK_QUEUE_ENABLED", True)

    with patch("dailyline.queue_client.enqueue_entry_created", side_effect=ConnectionError("redis down")):
        mode = dispatch_entry_created("u1", CREATED_AT)

    assert mode == "inline"
    assert entry_hook_failures_total.value({"step": "enqueue"}) == 1
    assert get_continuity_service().store.get("u1").current_streak == 1
