from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import List, Optional

from dailyline.core.config import settings
from dailyline.core.errors import StateStoreError, ValidationError
from dailyline.core.jobs import record_job_run
from dailyline.core.logging import bound_request_id, log_event
from dailyline.core.metrics import continuity_transitions_total
from dailyline.core.timeutils import ensure_utc, reference_date, reference_today, utc_now, week_start
from dailyline.features.continuity.engine import ContinuityEngine
from dailyline.features.continuity.store import ContinuityStore
from dailyline.models.continuity import ContinuityRecord, SweepReport


class ContinuityService:
    """Applies engine transitions to stored records, one locked transaction per user."""

    def __init__(self, store: Optional[ContinuityStore] = None, engine: Optional[ContinuityEngine] = None):
        tokens = settings.WEEKLY_GRACE_TOKENS
        self.engine = engine or ContinuityEngine(weekly_tokens=tokens)
        self.store = store or ContinuityStore(weekly_tokens=self.engine.weekly_tokens)

    def record_entry(self, user_id: str, created_at: Optional[datetime] = None) -> ContinuityRecord:
        if not user_id:
            raise ValidationError("user_id is required")
        today = reference_date(ensure_utc(created_at) or utc_now())

        with self.store.locked(user_id, today) as handle:
            before = handle.record
            updated = self.engine.apply_entry(before, today)
            handle.save(updated)

        if updated != before:
            kind = "extended" if updated.current_streak > 1 else "started"
            continuity_transitions_total.inc({"kind": kind})
            log_event(
                "info",
                "continuity.entry_applied",
                user_id=user_id,
                event_type="entry",
                extra={"day": today.isoformat(), "current_streak": updated.current_streak},
            )
        return updated

    def run_daily_sweep(self, today: Optional[date] = None) -> SweepReport:
        """Reconcile yesterday for every user: consume a grace token or break the streak."""
        day = today or reference_today()
        report = SweepReport(day=day)
        started_at = utc_now()

        with bound_request_id("sweep"):
            for user_id in self.store.list_user_ids():
                report.evaluated += 1
                try:
                    with self.store.locked(user_id) as handle:
                        outcome = self.engine.apply_daily_sweep(handle.record, day)
                        handle.save(outcome.record)
                except StateStoreError as exc:
                    report.failed += 1
                    log_event("error", "continuity.sweep_failed", user_id=user_id, error_code=exc.code, extra={"error": exc.message})
                    continue

                if outcome.action in ("consumed", "consumed_bonus"):
                    report.consumed += 1
                    continuity_transitions_total.inc({"kind": outcome.action})
                    log_event("info", "continuity.grace_consumed", user_id=user_id, extra={"missed_day": (day - timedelta(days=1)).isoformat(), "source": outcome.action})
                elif outcome.action == "broken":
                    report.broken += 1
                    continuity_transitions_total.inc({"kind": "broken"})
                    log_event("info", "continuity.streak_broken", user_id=user_id, extra={"day": day.isoformat()})

            log_event("info", "continuity.daily_sweep_complete", event_type="daily_sweep", extra=report.as_dict())

        record_job_run("continuity.daily_sweep", started_at, "success" if not report.failed else "partial", report.as_dict())
        return report

    def run_weekly_reset(self, now: Optional[datetime] = None) -> dict:
        monday = week_start(reference_today(now))
        started_at = utc_now()
        reset = 0
        failed = 0

        with bound_request_id("weekly"):
            for user_id in self.store.list_user_ids():
                try:
                    with self.store.locked(user_id) as handle:
                        handle.save(self.engine.apply_weekly_reset(handle.record, monday))
                        changed = handle.saved
                except StateStoreError as exc:
                    failed += 1
                    log_event("error", "continuity.weekly_reset_failed", user_id=user_id, error_code=exc.code, extra={"error": exc.message})
                    continue
                if changed:
                    reset += 1
                    continuity_transitions_total.inc({"kind": "weekly_reset"})

            stats = {"week_start": monday.isoformat(), "reset": reset, "failed": failed}
            log_event("info", "continuity.weekly_reset_complete", event_type="weekly_reset", extra=stats)

        record_job_run("continuity.weekly_reset", started_at, "success" if not failed else "partial", stats)
        return stats

    def grant_bonus_grace(self, user_id: str, quantity: int) -> ContinuityRecord:
        """Credit purchased grace tokens; consumed only after the weekly pool is empty."""
        if quantity <= 0:
            raise ValidationError("quantity must be positive")
        with self.store.locked(user_id) as handle:
            updated = handle.record.evolve(bonus_grace=handle.record.bonus_grace + quantity)
            handle.save(updated)
        log_event("info", "continuity.bonus_granted", user_id=user_id, extra={"quantity": quantity})
        return updated

    # Read model ----------------------------------------------------------
    def get_state(self, user_id: str, now: Optional[datetime] = None) -> dict:
        today = reference_today(now)
        record = self.store.get(user_id) or self.engine.new_record(user_id)
        return {
            "user_id": record.user_id,
            "current_streak": record.current_streak,
            "longest_streak": record.longest_streak,
            "last_entry_date": record.last_entry_date.isoformat() if record.last_entry_date else None,
            "grace_remaining": record.grace_remaining,
            "grace_used_count": len(record.grace_used_dates),
            "bonus_grace": record.bonus_grace,
            "total_grace_available": record.total_grace_available,
            "status": self.engine.status(record, today),
            "next_action_hint": self.engine.next_action_hint(record, today),
        }

    def weekly_grace_days(self, user_id: str, now: Optional[datetime] = None) -> List[dict]:
        """Monday..Sunday of the current reference week with grace usage per day."""
        today = reference_today(now)
        monday = week_start(today)
        record = self.store.get(user_id) or self.engine.new_record(user_id)
        days = []
        for offset in range(7):
            day = monday + timedelta(days=offset)
            days.append({
                "date": day.isoformat(),
                "grace_used": day in record.grace_used_dates,
                "is_today": day == today,
                "is_future": day > today,
            })
        return days


_service: Optional[ContinuityService] = None


def get_continuity_service() -> ContinuityService:
    global _service
    if _service is None:
        _service = ContinuityService()
    return _service


def reset_continuity_service() -> None:
    global _service
    _service = None
