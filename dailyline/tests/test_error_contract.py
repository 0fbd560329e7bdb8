"""Tests for normalized error responses."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from dailyline.core.errors import AppError, app_error_handler, unhandled_exception_handler
from dailyline.core.middleware.request_id import RequestIdMiddleware
from dailyline.main import app

SUBSCRIPTION = {
    "user_id": "u1",
    "endpoint": "https://push.example/u1",
    "keys": {"p256dh": "p256dh-key", "auth": "auth-key"},
}


def test_validation_error_has_standard_shape():
    client = TestClient(app)
    resp = client.put("/v1/notifications/settings", params={"user_id": "u1"}, json={"primary_time": "25:00"})
    assert resp.status_code == 400
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["request_id"] == rid


def test_conflict_error_normalized():
    client = TestClient(app)
    assert client.post("/v1/notifications/subscriptions", json=SUBSCRIPTION).status_code == 201

    resp = client.post("/v1/notifications/subscriptions", json=SUBSCRIPTION, headers={"x-request-id": "req-dup"})
    assert resp.status_code == 409
    body = resp.json()
    assert body["error"]["code"] == "conflict"
    assert body["error"]["request_id"] == "req-dup"


def test_unauthorized_error_normalized(cron_secret):
    client = TestClient(app)
    resp = client.post("/v1/internal/notifications/tick", json={})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_unknown_route_is_not_found():
    client = TestClient(app)
    resp = client.get("/v1/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_unhandled_exception_hides_details():
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    test_app.add_exception_handler(AppError, app_error_handler)
    test_app.add_exception_handler(Exception, unhandled_exception_handler)

    @test_app.get("/boom")
    async def boom():
        raise RuntimeError("database password is hunter2")

    client = TestClient(test_app, raise_server_exceptions=False)
    resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["code"] == "internal_error"
    assert "hunter2" not in resp.text
