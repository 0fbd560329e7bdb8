from datetime import datetime, timedelta, timezone

import pytest

from dailyline.core.idempotency import check_and_set
from dailyline.features.notifications.store import NotificationStore
from dailyline.models.notification import MAIN_REMINDER, DeliveryLogEntry, DeliveryResult
from dailyline.workers.log_cleanup import cleanup_old_logs


def _log(store, age_days):
    sent_at = datetime.now(timezone.utc) - timedelta(days=age_days)
    return store.append_log(
        DeliveryLogEntry(user_id="u1", stage=MAIN_REMINDER, sent_at=sent_at, result=DeliveryResult.SUCCESS)
    )


def test_dry_run_counts_without_deleting():
    store = NotificationStore()
    _log(store, 40)
    _log(store, 1)

    result = cleanup_old_logs(retention_days=30, dry_run=True, store=store)

    assert result["deleted_logs"] == 1
    assert len(store.recent_logs("u1")) == 2


def test_cleanup_keeps_recent_logs():
    store = NotificationStore()
    _log(store, 40)
    recent_id = _log(store, 1)

    result = cleanup_old_logs(retention_days=30, store=store)

    assert result["deleted_logs"] == 1
    assert [log.id for log in store.recent_logs("u1")] == [recent_id]


def test_fresh_idempotency_keys_survive_cleanup():
    check_and_set("entry_created:e1", "entry_created")

    cleanup_old_logs(retention_days=30)

    assert check_and_set("entry_created:e1", "entry_created") is True


def test_retention_must_be_positive():
    with pytest.raises(ValueError):
        NotificationStore().cleanup_old_logs(0)
