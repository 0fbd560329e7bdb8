"""
dailyline/core/idempotency.py
Idempotency key management for at-least-once event sources (entry hook, queue retries).
"""

from datetime import datetime, timedelta, timezone
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError

from dailyline.core.database import get_db_session, get_session_factory, idempotency_keys


def check_and_set(key: str, operation: str = "generic") -> bool:
    """
    Check if idempotency key exists, and set it if not (atomic).

    Args:
        key: Idempotency key string
        operation: Operation type (stored as scope, for debugging/monitoring)

    Returns:
        True if key was already seen (duplicate event)
        False if key is new (first time seeing it)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        session.execute(
            idempotency_keys.insert().values(
                key=key,
                scope=operation,
                created_at=datetime.now(timezone.utc),
            )
        )
        session.commit()
        return False  # First time (insert succeeded)
    except IntegrityError:
        # Duplicate key - primary key violation
        session.rollback()
        return True  # Already seen
    finally:
        session.close()


def release_key(key: str) -> bool:
    """
    Forget a key so a redelivered event is processed again.

    Used when the work the key guarded failed after it was claimed.
    Returns True if the key existed.
    """
    with get_db_session() as session:
        result = session.execute(
            delete(idempotency_keys).where(idempotency_keys.c.key == key)
        )
        return bool(result.rowcount)


def prune_keys(older_than_days: int = 7) -> int:
    """Delete keys older than the given age; returns the number removed."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
    with get_db_session() as session:
        result = session.execute(
            delete(idempotency_keys).where(idempotency_keys.c.created_at < cutoff)
        )
        return result.rowcount or 0
