"""Continuity sweeps.

Usage:
    python -m dailyline.workers.continuity_sweep --daily              # just after 00:00 reference time
    python -m dailyline.workers.continuity_sweep --daily --date 2026-03-02
    python -m dailyline.workers.continuity_sweep --weekly             # Mondays 00:00 reference time

Both sweeps are safe to re-run.
"""
from __future__ import annotations

import argparse
import json
from datetime import date

from dailyline.core.config import settings
from dailyline.core.database import create_all_tables
from dailyline.core.logging import configure_logging
from dailyline.features.continuity.service import get_continuity_service


def main() -> None:
    parser = argparse.ArgumentParser(description="Continuity sweep worker")
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--daily", action="store_true", help="Consume grace or break streaks for yesterday")
    mode.add_argument("--weekly", action="store_true", help="Refill the weekly grace pool")
    parser.add_argument("--date", type=date.fromisoformat, help="Reference-zone date to treat as today (daily only)")
    args = parser.parse_args()

    configure_logging(settings.ENV)
    create_all_tables()
    service = get_continuity_service()

    if args.daily:
        report = service.run_daily_sweep(args.date)
        print(json.dumps(report.as_dict()))
        return

    print(json.dumps(service.run_weekly_reset()))


if __name__ == "__main__":
    main()
