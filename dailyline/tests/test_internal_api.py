from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from dailyline.core.config import settings
from dailyline.features.continuity.service import get_continuity_service
from dailyline.main import app
from dailyline.models.notification import TickSummary

client = TestClient(app)


def _auth(secret):
    return {"Authorization": f"Bearer {secret}"}


def test_internal_triggers_require_bearer_secret(cron_secret):
    for path in (
        "/v1/internal/notifications/tick",
        "/v1/internal/continuity/daily-sweep",
        "/v1/internal/continuity/weekly-reset",
    ):
        missing = client.post(path)
        wrong = client.post(path, headers=_auth("nope"))
        assert missing.status_code == 401
        assert wrong.status_code == 401
        assert wrong.json()["error"]["code"] == "unauthorized"


def test_internal_triggers_disabled_without_secret(monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", None)
    resp = client.post("/v1/internal/continuity/daily-sweep", headers=_auth("anything"))
    assert resp.status_code == 401


def test_tick_endpoint_returns_summary(cron_secret):
    summary = TickSummary(main_sent=3, follow_up_failed=1)
    with patch("dailyline.api.internal.run_tick", new=AsyncMock(return_value=summary)) as tick:
        resp = client.post(
            "/v1/internal/notifications/tick",
            headers=_auth(cron_secret),
            json={"now": "2026-01-11T12:00:00Z"},
        )

    assert resp.status_code == 200
    assert resp.json() == summary.as_dict()
    assert tick.await_args.args[0].isoformat().startswith("2026-01-11T12:00:00")


def test_daily_sweep_and_weekly_reset_endpoints(cron_secret):
    service = get_continuity_service()
    # Monday 2026-03-02 in Tokyo; Tuesday is missed
    service.record_entry("u1", datetime(2026, 3, 2, 3, 0, tzinfo=timezone.utc))

    sweep = client.post("/v1/internal/continuity/daily-sweep", headers=_auth(cron_secret), json={"today": "2026-03-04"})
    assert sweep.status_code == 200
    assert sweep.json()["evaluated"] == 1
    assert sweep.json()["consumed"] == 1

    reset = client.post(
        "/v1/internal/continuity/weekly-reset",
        headers=_auth(cron_secret),
        json={"now": "2026-03-09T01:00:00Z"},
    )
    assert reset.status_code == 200
    assert reset.json()["reset"] == 1
    assert service.store.get("u1").grace_remaining == 2
