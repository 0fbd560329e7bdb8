from fastapi.testclient import TestClient

from dailyline.core.config import settings
from dailyline.features.notifications.store import NotificationStore
from dailyline.main import app

client = TestClient(app)

SUBSCRIPTION = {
    "user_id": "u1",
    "endpoint": "https://fcm.googleapis.com/fcm/send/abc123",
    "keys": {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM", "auth": "tBHItJI5svbpez7KI4CCXg"},
    "user_agent": "pytest",
}


def test_settings_default_when_never_saved():
    resp = client.get("/v1/notifications/settings", params={"user_id": "u1"})

    assert resp.status_code == 200
    assert resp.json() == {
        "user_id": "u1",
        "enabled": True,
        "timezone": "Asia/Tokyo",
        "primary_time": "21:00",
        "active_days": [],
        "follow_up_enabled": True,
        "follow_up_interval_minutes": 60,
        "follow_up_max_count": 2,
        "reminders": [],
    }


def test_settings_partial_update_persists():
    resp = client.put(
        "/v1/notifications/settings",
        params={"user_id": "u1"},
        json={"timezone": "America/New_York", "primary_time": "07:30", "active_days": [5, 1, 3]},
    )

    assert resp.status_code == 200
    body = client.get("/v1/notifications/settings", params={"user_id": "u1"}).json()
    assert body["timezone"] == "America/New_York"
    assert body["primary_time"] == "07:30"
    assert body["active_days"] == [1, 3, 5]
    assert body["follow_up_max_count"] == 2


def test_reminder_slots_persist_and_can_be_cleared():
    slots = [{"time": "07:00", "enabled": True}, {"time": None, "enabled": False}, {"time": "21:30", "enabled": False}]

    resp = client.put("/v1/notifications/settings", params={"user_id": "u1"}, json={"reminders": slots})

    assert resp.status_code == 200
    assert client.get("/v1/notifications/settings", params={"user_id": "u1"}).json()["reminders"] == slots
    assert NotificationStore().get_settings("u1").main_times() == ["07:00"]

    client.put("/v1/notifications/settings", params={"user_id": "u1"}, json={"reminders": []})
    assert NotificationStore().get_settings("u1").main_times() == ["21:00"]


def _rejected(payload):
    resp = client.put("/v1/notifications/settings", params={"user_id": "u1"}, json=payload)
    assert resp.status_code == 400, resp.text
    assert resp.json()["error"]["code"] == "validation_error"
    return resp


def test_settings_validation_rules():
    _rejected({"primary_time": "24:00"})
    _rejected({"primary_time": "9:00"})
    _rejected({"timezone": "Invalid/Zone"})
    _rejected({"follow_up_interval_minutes": 10})
    _rejected({"follow_up_interval_minutes": 181})
    _rejected({"follow_up_max_count": 0})
    _rejected({"follow_up_max_count": 6})
    _rejected({"active_days": [1, 1]})
    _rejected({"active_days": [7]})
    _rejected({"reminders": [{"time": "07:00", "enabled": True}] * 6})
    _rejected({"reminders": [{"time": "7:00", "enabled": True}]})
    _rejected({"reminders": [{"time": None, "enabled": True}]})

    assert NotificationStore().get_settings("u1") is None


def test_settings_rejects_non_integer_interval():
    resp = client.put("/v1/notifications/settings", params={"user_id": "u1"}, json={"follow_up_interval_minutes": 30.5})
    assert resp.status_code == 422


def test_subscribe_then_duplicate_conflicts():
    first = client.post("/v1/notifications/subscriptions", json=SUBSCRIPTION)
    second = client.post("/v1/notifications/subscriptions", json=SUBSCRIPTION)

    assert first.status_code == 201
    assert first.json()["id"]
    assert second.status_code == 409
    assert second.json()["error"]["code"] == "conflict"
    assert len(NotificationStore().list_devices("u1")) == 1


def test_subscribe_rejects_non_https_endpoint():
    resp = client.post("/v1/notifications/subscriptions", json={**SUBSCRIPTION, "endpoint": "http://insecure.example/push"})
    assert resp.status_code == 400


def test_unsubscribe_is_idempotent():
    client.post("/v1/notifications/subscriptions", json=SUBSCRIPTION)
    body = {"user_id": "u1", "endpoint": SUBSCRIPTION["endpoint"]}

    first = client.request("DELETE", "/v1/notifications/subscriptions", json=body)
    second = client.request("DELETE", "/v1/notifications/subscriptions", json=body)

    assert first.status_code == 200
    assert first.json() == {"removed": True}
    assert second.status_code == 200
    assert second.json() == {"removed": False}
    assert NotificationStore().list_devices("u1") == []


def test_unsubscribe_only_touches_own_registration():
    client.post("/v1/notifications/subscriptions", json=SUBSCRIPTION)

    resp = client.request("DELETE", "/v1/notifications/subscriptions", json={"user_id": "intruder", "endpoint": SUBSCRIPTION["endpoint"]})

    assert resp.json() == {"removed": False}
    assert len(NotificationStore().list_devices("u1")) == 1


def test_caller_cannot_act_for_another_user():
    headers = {"X-User-Id": "intruder"}

    read = client.get("/v1/notifications/settings", params={"user_id": "u1"}, headers=headers)
    subscribe = client.post("/v1/notifications/subscriptions", json=SUBSCRIPTION, headers=headers)

    assert read.status_code == 403
    assert read.json()["error"]["code"] == "forbidden"
    assert subscribe.status_code == 403
    assert NotificationStore().list_devices("u1") == []


def test_matching_caller_is_accepted():
    resp = client.post("/v1/notifications/subscriptions", json=SUBSCRIPTION, headers={"X-User-Id": "u1"})
    assert resp.status_code == 201


def test_caller_identity_can_be_required(monkeypatch):
    monkeypatch.setattr(settings, "REQUIRE_CALLER_ID", True)

    resp = client.get("/v1/notifications/settings", params={"user_id": "u1"})

    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"
