from datetime import date, datetime, timedelta, timezone

import pytest

from dailyline.core.jobs import recent_job_runs
from dailyline.features.notifications.scheduler import run_tick
from dailyline.features.notifications.store import NotificationStore
from dailyline.models.notification import MAIN_REMINDER, DeliveryResult, FollowUp, NotificationSettings
from dailyline.tests.mocks import FakeTransport

# 21:00 in Tokyo on a Sunday
TICK = datetime(2026, 1, 11, 12, 0, tzinfo=timezone.utc)
SINCE = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _setup_user(store, user_id, endpoint=None, **settings):
    store.upsert_settings(NotificationSettings(user_id=user_id, timezone="Asia/Tokyo", primary_time="21:00", **settings))
    if endpoint:
        store.register_device(user_id, endpoint, "p256dh-key", "auth-key")


@pytest.mark.asyncio
async def test_tick_sends_main_reminders_and_summarises():
    store = NotificationStore()
    _setup_user(store, "u1", "https://push.example/u1")
    _setup_user(store, "u2", "https://push.example/u2")
    _setup_user(store, "u3")  # no devices
    _setup_user(store, "u4", "https://push.example/u4")
    transport = FakeTransport({"https://push.example/u4": 500})

    summary = await run_tick(TICK, store=store, transport=transport)

    assert summary.as_dict() == {
        "main_sent": 2,
        "main_skipped": 1,
        "main_failed": 1,
        "follow_up_sent": 0,
        "follow_up_skipped": 0,
        "follow_up_failed": 0,
    }
    runs = recent_job_runs("notifications.tick")
    assert runs[0]["status"] == "partial"
    assert runs[0]["stats"]["targets"] == 4


@pytest.mark.asyncio
async def test_overlapping_tick_in_same_minute_sends_nothing_new():
    store = NotificationStore()
    _setup_user(store, "u1", "https://push.example/u1")
    transport = FakeTransport()

    await run_tick(TICK, store=store, transport=transport)
    second = await run_tick(TICK + timedelta(seconds=30), store=store, transport=transport)

    assert second.main_sent == 0
    assert len(transport.sent) == 1
    assert len(store.query_logs("u1", MAIN_REMINDER, SINCE)) == 1


@pytest.mark.asyncio
async def test_follow_ups_chain_then_stop_at_max_count():
    store = NotificationStore()
    _setup_user(store, "u1", "https://push.example/u1", follow_up_interval_minutes=60, follow_up_max_count=2)
    transport = FakeTransport()

    await run_tick(TICK, store=store, transport=transport)
    first = await run_tick(TICK + timedelta(hours=1), store=store, transport=transport)
    second = await run_tick(TICK + timedelta(hours=2), store=store, transport=transport)
    third = await run_tick(TICK + timedelta(hours=3), store=store, transport=transport)

    assert first.follow_up_sent == 1
    assert second.follow_up_sent == 1
    assert third.follow_up_sent == 0
    assert len(store.query_logs("u1", FollowUp(1), SINCE)) == 1
    assert len(store.query_logs("u1", FollowUp(2), SINCE)) == 1


@pytest.mark.asyncio
async def test_recorded_flag_cancels_follow_up():
    store = NotificationStore()
    _setup_user(store, "u1", "https://push.example/u1")
    transport = FakeTransport()

    await run_tick(TICK, store=store, transport=transport)
    store.mark_recorded("u1", date(2026, 1, 11))
    summary = await run_tick(TICK + timedelta(hours=1), store=store, transport=transport)

    assert summary.follow_up_sent == 0
    assert len(transport.sent) == 1


class BrokenDeviceStore(NotificationStore):
    def __init__(self, broken_user):
        self.broken_user = broken_user

    def list_devices(self, user_id):
        if user_id == self.broken_user:
            raise RuntimeError("connection reset")
        return super().list_devices(user_id)


@pytest.mark.asyncio
async def test_one_user_failure_does_not_abort_tick():
    store = BrokenDeviceStore("u1")
    _setup_user(store, "u1", "https://push.example/u1")
    _setup_user(store, "u2", "https://push.example/u2")

    summary = await run_tick(TICK, store=store, transport=FakeTransport())

    assert summary.main_failed == 1
    assert summary.main_sent == 1
    assert [log.result for log in store.query_logs("u2", MAIN_REMINDER, SINCE)] == [DeliveryResult.SUCCESS]


@pytest.mark.asyncio
async def test_tick_with_no_settings_is_empty():
    summary = await run_tick(TICK, store=NotificationStore(), transport=FakeTransport())
    assert summary.as_dict() == dict.fromkeys(summary.as_dict(), 0)
