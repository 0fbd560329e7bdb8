"""
Notification state: settings, device registrations, delivery log, and the
per-day "recorded" flags that cancel pending follow-ups.
"""
from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.exc import IntegrityError

from dailyline.core.database import (
    delivery_logs,
    device_registrations,
    follow_up_cancellations,
    get_db_session,
    notification_settings,
)
from dailyline.core.errors import ConflictError
from dailyline.core.timeutils import ensure_utc, utc_now
from dailyline.models.notification import (
    DeliveryLogEntry,
    DeliveryResult,
    DeviceRegistration,
    NotificationSettings,
    ReminderSlot,
    ReminderStage,
    decode_stage,
    encode_stage,
)


def _row_to_settings(row) -> NotificationSettings:
    return NotificationSettings(
        user_id=row.user_id,
        enabled=bool(row.enabled),
        timezone=row.timezone,
        primary_time=row.primary_time,
        active_days=frozenset(int(d) for d in (row.active_days or [])),
        follow_up_enabled=bool(row.follow_up_enabled),
        follow_up_interval_minutes=row.follow_up_interval_minutes,
        follow_up_max_count=row.follow_up_max_count,
        reminders=tuple(
            ReminderSlot(time=slot.get("time"), enabled=bool(slot.get("enabled", True)))
            for slot in (row.reminders or [])
        ),
    )


def _row_to_device(row) -> DeviceRegistration:
    return DeviceRegistration(
        id=row.id,
        user_id=row.user_id,
        endpoint=row.endpoint,
        p256dh_key=row.p256dh_key,
        auth_key=row.auth_key,
        user_agent=row.user_agent,
        created_at=ensure_utc(row.created_at),
    )


def _row_to_log(row) -> DeliveryLogEntry:
    return DeliveryLogEntry(
        id=row.id,
        user_id=row.user_id,
        stage=decode_stage(row.stage),
        sent_at=ensure_utc(row.sent_at),
        result=DeliveryResult(row.result),
        error_message=row.error_message,
        entry_recorded_at=ensure_utc(row.entry_recorded_at),
    )


class NotificationStore:
    # Settings ------------------------------------------------------------
    def list_enabled_settings(self) -> List[NotificationSettings]:
        with get_db_session() as session:
            rows = session.execute(
                select(notification_settings).where(notification_settings.c.enabled.is_(True))
            ).fetchall()
            return [_row_to_settings(row) for row in rows]

    def get_settings(self, user_id: str) -> Optional[NotificationSettings]:
        with get_db_session() as session:
            row = session.execute(
                select(notification_settings).where(notification_settings.c.user_id == user_id)
            ).first()
            return _row_to_settings(row) if row else None

    def upsert_settings(self, value: NotificationSettings) -> NotificationSettings:
        values = {
            "enabled": value.enabled,
            "timezone": value.timezone,
            "primary_time": value.primary_time,
            "active_days": sorted(value.active_days),
            "follow_up_enabled": value.follow_up_enabled,
            "follow_up_interval_minutes": value.follow_up_interval_minutes,
            "follow_up_max_count": value.follow_up_max_count,
            "reminders": [slot.as_dict() for slot in value.reminders],
            "updated_at": utc_now(),
        }
        with get_db_session() as session:
            result = session.execute(
                update(notification_settings)
                .where(notification_settings.c.user_id == value.user_id)
                .values(**values)
            )
            if not result.rowcount:
                session.execute(insert(notification_settings).values(user_id=value.user_id, **values))
        return value

    # Devices -------------------------------------------------------------
    def list_devices(self, user_id: str) -> List[DeviceRegistration]:
        with get_db_session() as session:
            rows = session.execute(
                select(device_registrations)
                .where(device_registrations.c.user_id == user_id)
                .order_by(device_registrations.c.created_at)
            ).fetchall()
            return [_row_to_device(row) for row in rows]

    def register_device(
        self,
        user_id: str,
        endpoint: str,
        p256dh_key: str,
        auth_key: str,
        user_agent: Optional[str] = None,
    ) -> str:
        """Insert a registration; raises ConflictError if the endpoint is already registered."""
        device_id = str(uuid.uuid4())
        try:
            with get_db_session() as session:
                session.execute(
                    insert(device_registrations).values(
                        id=device_id,
                        user_id=user_id,
                        endpoint=endpoint,
                        p256dh_key=p256dh_key,
                        auth_key=auth_key,
                        user_agent=user_agent,
                        created_at=utc_now(),
                    )
                )
        except IntegrityError as exc:
            raise ConflictError("endpoint is already registered") from exc
        return device_id

    def unregister_device(self, user_id: str, endpoint: str) -> bool:
        """Remove the user's registration for endpoint. Missing rows are not an error."""
        with get_db_session() as session:
            result = session.execute(
                delete(device_registrations).where(
                    and_(
                        device_registrations.c.user_id == user_id,
                        device_registrations.c.endpoint == endpoint,
                    )
                )
            )
            return bool(result.rowcount)

    def delete_device(self, device_id: str) -> bool:
        with get_db_session() as session:
            result = session.execute(
                delete(device_registrations).where(device_registrations.c.id == device_id)
            )
            return bool(result.rowcount)

    # Delivery log --------------------------------------------------------
    def append_log(self, entry: DeliveryLogEntry) -> int:
        with get_db_session() as session:
            result = session.execute(
                insert(delivery_logs).values(
                    user_id=entry.user_id,
                    stage=encode_stage(entry.stage),
                    sent_at=ensure_utc(entry.sent_at),
                    result=entry.result.value,
                    error_message=entry.error_message,
                    entry_recorded_at=entry.entry_recorded_at,
                    created_at=utc_now(),
                )
            )
            return result.inserted_primary_key[0]

    def query_logs(self, user_id: str, stage: ReminderStage, since: datetime) -> List[DeliveryLogEntry]:
        with get_db_session() as session:
            rows = session.execute(
                select(delivery_logs)
                .where(
                    and_(
                        delivery_logs.c.user_id == user_id,
                        delivery_logs.c.stage == encode_stage(stage),
                        delivery_logs.c.sent_at >= ensure_utc(since),
                    )
                )
                .order_by(delivery_logs.c.sent_at)
            ).fetchall()
            return [_row_to_log(row) for row in rows]

    def logs_since(self, since: datetime, user_ids: Optional[Iterable[str]] = None) -> Dict[str, List[DeliveryLogEntry]]:
        """Delivery log rows at or after `since`, grouped by user."""
        stmt = select(delivery_logs).where(delivery_logs.c.sent_at >= ensure_utc(since))
        if user_ids is not None:
            ids = list(user_ids)
            if not ids:
                return {}
            stmt = stmt.where(delivery_logs.c.user_id.in_(ids))
        grouped: Dict[str, List[DeliveryLogEntry]] = defaultdict(list)
        with get_db_session() as session:
            for row in session.execute(stmt.order_by(delivery_logs.c.sent_at)).fetchall():
                grouped[row.user_id].append(_row_to_log(row))
        return dict(grouped)

    def recent_logs(self, user_id: str, limit: int = 20) -> List[DeliveryLogEntry]:
        with get_db_session() as session:
            rows = session.execute(
                select(delivery_logs)
                .where(delivery_logs.c.user_id == user_id)
                .order_by(delivery_logs.c.sent_at.desc(), delivery_logs.c.id.desc())
                .limit(limit)
            ).fetchall()
            return [_row_to_log(row) for row in rows]

    def backfill_entry_recorded(self, user_id: str, start: datetime, end: datetime, recorded_at: datetime) -> int:
        """Stamp entry_recorded_at on the user's log rows in [start, end) that have none yet."""
        with get_db_session() as session:
            result = session.execute(
                update(delivery_logs)
                .where(
                    and_(
                        delivery_logs.c.user_id == user_id,
                        delivery_logs.c.sent_at >= ensure_utc(start),
                        delivery_logs.c.sent_at < ensure_utc(end),
                        delivery_logs.c.entry_recorded_at.is_(None),
                    )
                )
                .values(entry_recorded_at=ensure_utc(recorded_at))
            )
            return result.rowcount or 0

    def cleanup_old_logs(self, retention_days: int, now: Optional[datetime] = None, dry_run: bool = False) -> int:
        if retention_days < 1:
            raise ValueError("retention_days must be >= 1")
        cutoff = ensure_utc(now or utc_now()) - timedelta(days=retention_days)
        condition = delivery_logs.c.sent_at < cutoff
        with get_db_session() as session:
            if dry_run:
                return len(session.execute(select(delivery_logs.c.id).where(condition)).fetchall())
            result = session.execute(delete(delivery_logs).where(condition))
            return result.rowcount or 0

    # Recorded-today flags ------------------------------------------------
    def mark_recorded(self, user_id: str, target_date: date) -> bool:
        """Flag target_date as recorded. Returns False if it already was."""
        try:
            with get_db_session() as session:
                session.execute(
                    insert(follow_up_cancellations).values(
                        user_id=user_id,
                        target_date=target_date,
                        cancelled_at=utc_now(),
                    )
                )
        except IntegrityError:
            return False
        return True

    def recorded_flags(self, start: date, end: date) -> Set[Tuple[str, date]]:
        """(user_id, local date) pairs flagged between start and end inclusive."""
        with get_db_session() as session:
            rows = session.execute(
                select(follow_up_cancellations.c.user_id, follow_up_cancellations.c.target_date).where(
                    and_(
                        follow_up_cancellations.c.target_date >= start,
                        follow_up_cancellations.c.target_date <= end,
                    )
                )
            ).fetchall()
            return {(row.user_id, row.target_date) for row in rows}
