"""
Continuity Engine

Pure, deterministic streak and grace-token transitions.
No I/O, no clock reads: every transition receives the reference-zone date it
applies to and returns a new record.

Transitions:
- apply_entry: an entry was recorded on `today`
- apply_daily_sweep: reconcile a missed `today - 1` (consume a grace token or break)
- apply_weekly_reset: refill the weekly pool for the week starting `week_start`

Weekly pool is drained before purchased bonus credits.
All transitions preserve longest_streak >= current_streak.
"""

from datetime import date, timedelta
from typing import Optional

from dailyline.models.continuity import (
    MAX_WEEKLY_GRACE,
    ContinuityRecord,
    SweepOutcome,
)


class ContinuityEngine:
    """Pure continuity state machine."""

    def __init__(self, weekly_tokens: int = MAX_WEEKLY_GRACE):
        self.weekly_tokens = weekly_tokens

    def new_record(self, user_id: str, week_start: Optional[date] = None) -> ContinuityRecord:
        """Fresh record whose pool already belongs to the week it was created in."""
        return ContinuityRecord(user_id=user_id, grace_remaining=self.weekly_tokens, grace_week_start=week_start)

    # Entry -------------------------------------------------------------
    def apply_entry(self, record: ContinuityRecord, today: date) -> ContinuityRecord:
        if record.last_entry_date == today:
            return record

        yesterday = today - timedelta(days=1)

        if record.current_streak == 0:
            current = 1
        elif record.last_entry_date == yesterday or record.grace_covered_through == yesterday:
            # Either consecutive, or every missed day since the last entry was covered by a token
            current = record.current_streak + 1
        else:
            # Gap the daily sweep has not reconciled yet
            current = 1

        return record.evolve(
            current_streak=current,
            longest_streak=max(record.longest_streak, current),
            last_entry_date=today,
        )

    # Daily sweep -------------------------------------------------------
    def apply_daily_sweep(self, record: ContinuityRecord, today: date) -> SweepOutcome:
        yesterday = today - timedelta(days=1)

        if record.last_swept_date is not None and record.last_swept_date >= today:
            return SweepOutcome(record=record, action="already_swept")

        swept = record.evolve(last_swept_date=today)

        missed = record.last_entry_date is not None and record.last_entry_date < yesterday
        if not missed or record.current_streak == 0:
            return SweepOutcome(record=swept, action="none")

        if yesterday in record.grace_used_dates:
            return SweepOutcome(record=swept, action="already_swept")

        used = record.grace_used_dates | {yesterday}
        if record.grace_remaining > 0:
            return SweepOutcome(
                record=swept.evolve(
                    grace_remaining=record.grace_remaining - 1,
                    grace_used_dates=used,
                    grace_covered_through=yesterday,
                ),
                action="consumed",
            )
        if record.bonus_grace > 0:
            return SweepOutcome(
                record=swept.evolve(
                    bonus_grace=record.bonus_grace - 1,
                    grace_used_dates=used,
                    grace_covered_through=yesterday,
                ),
                action="consumed_bonus",
            )

        return SweepOutcome(record=swept.evolve(current_streak=0), action="broken")

    # Weekly reset ------------------------------------------------------
    def apply_weekly_reset(self, record: ContinuityRecord, week_start: date) -> ContinuityRecord:
        if record.grace_week_start == week_start:
            return record
        return record.evolve(
            grace_remaining=self.weekly_tokens,
            grace_used_dates=frozenset(),
            grace_week_start=week_start,
        )

    # Read model --------------------------------------------------------
    @staticmethod
    def status(record: ContinuityRecord, today: date) -> str:
        if record.last_entry_date is None:
            return "none"
        if record.current_streak == 0:
            return "broken"
        yesterday = today - timedelta(days=1)
        if record.last_entry_date >= yesterday:
            return "active"
        return "protected"

    @staticmethod
    def next_action_hint(record: ContinuityRecord, today: date) -> str:
        if record.last_entry_date == today:
            return "Recorded today. See you tomorrow."
        if record.current_streak == 0:
            return "Write one line today to start a new streak."
        if record.grace_covered_through is not None and record.grace_covered_through >= today - timedelta(days=1):
            return "A grace token kept your streak alive. Record today to extend it."
        return f"Record today to reach {record.current_streak + 1} days."
