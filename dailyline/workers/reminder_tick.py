"""Reminder tick worker.

Usage:
    python -m dailyline.workers.reminder_tick --once
    python -m dailyline.workers.reminder_tick --loop

Each loop iteration runs one tick and then sleeps until the next minute
boundary (TICK_LOOP_SECONDS controls the cadence).
"""
from __future__ import annotations

import argparse
import asyncio
import json
import time
from datetime import datetime
from typing import Optional

from dailyline.core.config import settings
from dailyline.core.database import create_all_tables
from dailyline.core.logging import configure_logging
from dailyline.features.notifications.scheduler import run_tick


def _parse_now(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _sleep_seconds(interval: int) -> float:
    return interval - (time.time() % interval)


def main() -> None:
    parser = argparse.ArgumentParser(description="Reminder tick worker")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    parser.add_argument("--loop", action="store_true", help="Run a tick every minute")
    parser.add_argument("--now", help="ISO timestamp to evaluate instead of the current time (with --once)")
    parser.add_argument(
        "--sleep",
        type=int,
        default=settings.TICK_LOOP_SECONDS,
        help="Tick interval in seconds (when --loop)",
    )
    args = parser.parse_args()

    configure_logging(settings.ENV)
    create_all_tables()

    if args.once:
        summary = asyncio.run(run_tick(_parse_now(args.now)))
        print(json.dumps(summary.as_dict()))
        return

    print(f"[reminder-tick] Starting loop (interval={args.sleep}s). CTRL+C to stop.")
    try:
        while True:
            time.sleep(_sleep_seconds(args.sleep))
            summary = asyncio.run(run_tick())
            sent = summary.main_sent + summary.follow_up_sent
            if sent:
                print(f"[reminder-tick] Sent {sent} reminders")
    except KeyboardInterrupt:
        print("[reminder-tick] Stopped")


if __name__ == "__main__":
    main()
