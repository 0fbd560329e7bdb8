"""Retention cleanup for delivery logs and idempotency keys."""
from __future__ import annotations

import argparse
import logging
from typing import Optional

from dailyline.core.config import settings
from dailyline.core.idempotency import prune_keys
from dailyline.features.notifications.store import NotificationStore

logger = logging.getLogger("dailyline.cleanup")

IDEMPOTENCY_RETENTION_DAYS = 7


def cleanup_old_logs(
    *,
    retention_days: Optional[int] = None,
    dry_run: bool = False,
    store: Optional[NotificationStore] = None,
) -> dict:
    days = retention_days if retention_days is not None else settings.NOTIFICATION_LOG_RETENTION_DAYS
    store = store or NotificationStore()

    deleted_logs = store.cleanup_old_logs(days, dry_run=dry_run)
    pruned_keys = 0 if dry_run else prune_keys(IDEMPOTENCY_RETENTION_DAYS)

    logger.info(
        "[cleanup] delivery log retention",
        extra={"retention_days": days, "dry_run": dry_run, "logs": deleted_logs, "idempotency_keys": pruned_keys},
    )
    return {"retention_days": days, "dry_run": dry_run, "deleted_logs": deleted_logs, "pruned_keys": pruned_keys}


def main() -> None:
    parser = argparse.ArgumentParser(description="Delivery log retention cleanup")
    parser.add_argument("--retention-days", type=int, default=None)
    parser.add_argument("--dry-run", action="store_true", help="Count candidates without deleting")
    args = parser.parse_args()
    print(cleanup_old_logs(retention_days=args.retention_days, dry_run=args.dry_run))


if __name__ == "__main__":
    main()
