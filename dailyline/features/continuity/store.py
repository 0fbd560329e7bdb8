"""Persistence for continuity records.

Every mutation goes through `locked(user_id)`: the row is created lazily,
selected FOR UPDATE and written back inside the same transaction, so the
entry hook and the scheduled sweeps never interleave a read-modify-write.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Iterator, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from dailyline.core.database import continuity_records, get_db_session
from dailyline.core.errors import StateStoreError
from dailyline.core.timeutils import reference_today, week_start
from dailyline.models.continuity import MAX_WEEKLY_GRACE, ContinuityRecord, utc_now


def _parse_dates(raw) -> frozenset[date]:
    return frozenset(date.fromisoformat(value) for value in (raw or []))


def _row_to_record(row) -> ContinuityRecord:
    return ContinuityRecord(
        user_id=row.user_id,
        current_streak=row.current_streak,
        longest_streak=row.longest_streak,
        last_entry_date=row.last_entry_date,
        grace_remaining=row.grace_remaining,
        grace_used_dates=_parse_dates(row.grace_used_dates),
        bonus_grace=row.bonus_grace,
        grace_covered_through=row.grace_covered_through,
        last_swept_date=row.last_swept_date,
        grace_week_start=row.grace_week_start,
    )


def _record_values(record: ContinuityRecord) -> dict:
    return {
        "current_streak": record.current_streak,
        "longest_streak": record.longest_streak,
        "last_entry_date": record.last_entry_date,
        "grace_remaining": record.grace_remaining,
        "grace_used_dates": sorted(d.isoformat() for d in record.grace_used_dates),
        "bonus_grace": record.bonus_grace,
        "grace_covered_through": record.grace_covered_through,
        "last_swept_date": record.last_swept_date,
        "grace_week_start": record.grace_week_start,
        "updated_at": utc_now(),
    }


def _insert_if_missing(session: Session, user_id: str, weekly_tokens: int, grace_week: date) -> None:
    now = utc_now()
    values = {
        "user_id": user_id,
        "current_streak": 0,
        "longest_streak": 0,
        "grace_remaining": weekly_tokens,
        "grace_used_dates": [],
        "bonus_grace": 0,
        "grace_week_start": grace_week,
        "created_at": now,
        "updated_at": now,
    }
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        exists = session.execute(
            select(continuity_records.c.user_id).where(continuity_records.c.user_id == user_id)
        ).first()
        if exists is None:
            try:
                with session.begin_nested():
                    session.execute(continuity_records.insert().values(**values))
            except IntegrityError:
                pass  # created concurrently
        return

    session.execute(
        insert(continuity_records).values(**values).on_conflict_do_nothing(index_elements=["user_id"])
    )


class LockedRecord:
    """Handle on a row held FOR UPDATE for the duration of a `locked()` block."""

    def __init__(self, session: Session, record: ContinuityRecord):
        self._session = session
        self.record = record
        self.saved = False

    def save(self, record: ContinuityRecord) -> None:
        if record.user_id != self.record.user_id:
            raise ValueError("cannot save a record for a different user under this lock")
        if record.longest_streak < record.current_streak:
            raise ValueError("longest_streak must be >= current_streak")
        if record == self.record:
            return
        self._session.execute(
            update(continuity_records)
            .where(continuity_records.c.user_id == record.user_id)
            .values(**_record_values(record))
        )
        self.record = record
        self.saved = True


class ContinuityStore:
    def __init__(self, weekly_tokens: int = MAX_WEEKLY_GRACE):
        self.weekly_tokens = weekly_tokens

    @contextmanager
    def locked(self, user_id: str, today: Optional[date] = None) -> Iterator[LockedRecord]:
        """Get-for-update / save pair forming one transaction boundary.

        A record created here starts with a full pool for the week of `today`
        (reference today by default), so that week's reset leaves it alone.
        """
        grace_week = week_start(today or reference_today())
        try:
            with get_db_session() as session:
                _insert_if_missing(session, user_id, self.weekly_tokens, grace_week)
                row = session.execute(
                    select(continuity_records)
                    .where(continuity_records.c.user_id == user_id)
                    .with_for_update()
                ).one()
                yield LockedRecord(session, _row_to_record(row))
        except DBAPIError as exc:
            raise StateStoreError(f"continuity record for {user_id} unavailable: {exc.orig}") from exc

    def get(self, user_id: str) -> Optional[ContinuityRecord]:
        with get_db_session() as session:
            row = session.execute(
                select(continuity_records).where(continuity_records.c.user_id == user_id)
            ).first()
            return _row_to_record(row) if row else None

    def list_user_ids(self) -> List[str]:
        with get_db_session() as session:
            rows = session.execute(
                select(continuity_records.c.user_id).order_by(continuity_records.c.user_id)
            ).fetchall()
            return [row.user_id for row in rows]
