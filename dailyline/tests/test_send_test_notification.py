import json

import pytest

from dailyline.features.notifications.store import NotificationStore
from dailyline.scripts.send_test_notification import send_test_notification
from dailyline.tests.mocks import FakeTransport


@pytest.mark.asyncio
async def test_sends_to_every_device_without_logging():
    store = NotificationStore()
    store.register_device("u1", "https://push.example/a", "p256dh-key", "auth-key")
    store.register_device("u1", "https://push.example/gone", "p256dh-key", "auth-key")
    transport = FakeTransport({"https://push.example/gone": 410})

    outcomes = await send_test_notification("u1", store=store, transport=transport)

    assert sorted(o.success for o in outcomes) == [False, True]
    assert [d.endpoint for d in store.list_devices("u1")] == ["https://push.example/a"]
    assert store.recent_logs("u1") == []
    assert json.loads(transport.sent[0]["payload"])["data"]["type"] == "test"


@pytest.mark.asyncio
async def test_no_devices_sends_nothing():
    transport = FakeTransport()

    assert await send_test_notification("nobody", store=NotificationStore(), transport=transport) == []
    assert transport.sent == []
