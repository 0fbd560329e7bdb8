from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Literal, Optional

MAX_WEEKLY_GRACE = 2

ContinuityStatus = Literal["none", "active", "protected", "broken"]


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ContinuityRecord:
    """
    Per-user streak and grace-token state. Day-level dates are in the fixed
    reference timezone; no direct DB concerns.

    Invariant: longest_streak >= current_streak.
    """

    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_entry_date: Optional[date] = None
    grace_remaining: int = MAX_WEEKLY_GRACE
    grace_used_dates: frozenset[date] = field(default_factory=frozenset)
    bonus_grace: int = 0
    # Bookkeeping for idempotent sweeps and grace-bridged continuation
    grace_covered_through: Optional[date] = None
    last_swept_date: Optional[date] = None
    grace_week_start: Optional[date] = None

    def evolve(self, **changes) -> "ContinuityRecord":
        return replace(self, **changes)

    @property
    def total_grace_available(self) -> int:
        return self.grace_remaining + self.bonus_grace


@dataclass(frozen=True)
class SweepOutcome:
    """Result of evaluating one record during the daily sweep."""

    record: ContinuityRecord
    action: Literal["none", "consumed", "consumed_bonus", "broken", "already_swept"]


@dataclass
class SweepReport:
    day: date
    evaluated: int = 0
    consumed: int = 0
    broken: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return {
            "day": self.day.isoformat(),
            "evaluated": self.evaluated,
            "consumed": self.consumed,
            "broken": self.broken,
            "failed": self.failed,
        }
