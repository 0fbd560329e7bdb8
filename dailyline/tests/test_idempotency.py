"""
dailyline/tests/test_idempotency.py
Tests for idempotency key management (entry-hook dedup).
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import update

from dailyline.core.database import get_db_session, idempotency_keys
from dailyline.core.idempotency import check_and_set, prune_keys, release_key


def test_check_and_set_first_time():
    """First time seeing key returns False (not duplicate)."""
    assert check_and_set("key-1", "test_op") is False


def test_check_and_set_duplicate():
    """Second time seeing key returns True (duplicate)."""
    check_and_set("key-2", "test_op")
    assert check_and_set("key-2", "test_op") is True


def test_check_and_set_different_keys():
    check_and_set("key-3", "test_op")
    assert check_and_set("key-4", "test_op") is False


def test_release_key_allows_reprocessing():
    check_and_set("key-5", "test_op")

    assert release_key("key-5") is True
    assert check_and_set("key-5", "test_op") is False


def test_release_unknown_key():
    assert release_key("key-nonexistent") is False


def test_prune_keys_removes_only_old_entries():
    check_and_set("old-key", "test_op")
    check_and_set("new-key", "test_op")
    with get_db_session() as session:
        session.execute(
            update(idempotency_keys)
            .where(idempotency_keys.c.key == "old-key")
            .values(created_at=datetime.now(timezone.utc) - timedelta(days=30))
        )

    assert prune_keys(older_than_days=7) == 1
    assert check_and_set("new-key", "test_op") is True
    assert check_and_set("old-key", "test_op") is False
