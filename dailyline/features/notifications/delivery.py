"""
Delivery fan-out.

One target -> every registered device of the user, concurrently.
Per device: 2xx is a success, 410 deletes the registration, anything else is a
failure that keeps it. Exactly one delivery log row is written per target:
success if any device accepted, failed if none did, skipped with no devices.
Nothing is retried here; the next tick or follow-up is the retry.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from dailyline.core.errors import DeliveryError, PermanentDeliveryError
from dailyline.core.logging import log_event
from dailyline.core.metrics import devices_pruned_total, push_sends_total, reminders_total
from dailyline.features.notifications.store import NotificationStore
from dailyline.features.notifications.transport import PushTransport
from dailyline.models.notification import (
    DeliveryLogEntry,
    DeliveryResult,
    DeviceOutcome,
    DeviceRegistration,
    PushPayload,
    ReminderTarget,
    encode_stage,
)

logger = logging.getLogger("dailyline")

NO_DEVICES = "no registered devices"


async def send_to_device(transport: PushTransport, device: DeviceRegistration, body: str) -> DeviceOutcome:
    try:
        response = await transport.send(device, body)
    except PermanentDeliveryError as exc:
        push_sends_total.inc({"outcome": "gone"})
        return DeviceOutcome(device.id, False, exc.http_status, exc.message, should_remove=True)
    except DeliveryError as exc:
        push_sends_total.inc({"outcome": "failed"})
        return DeviceOutcome(device.id, False, exc.http_status, exc.message)
    except Exception as exc:
        logger.exception("push.transport_error", extra={"device_id": device.id})
        push_sends_total.inc({"outcome": "failed"})
        return DeviceOutcome(device.id, False, None, str(exc))
    push_sends_total.inc({"outcome": "success"})
    return DeviceOutcome(device.id, True, response.status_code)


def aggregate(outcomes: List[DeviceOutcome]) -> DeliveryResult:
    if not outcomes:
        return DeliveryResult.SKIPPED
    if any(outcome.success for outcome in outcomes):
        return DeliveryResult.SUCCESS
    return DeliveryResult.FAILED


def _error_summary(outcomes: List[DeviceOutcome]) -> Optional[str]:
    errors = [f"{o.status_code or 'error'}: {o.error}" for o in outcomes if not o.success]
    return "; ".join(errors)[:1000] if errors else None


async def fan_out(
    target: ReminderTarget,
    payload: PushPayload,
    *,
    store: NotificationStore,
    transport: PushTransport,
    sent_at: datetime,
) -> DeliveryResult:
    stage = encode_stage(target.stage)
    devices = store.list_devices(target.user_id)
    if not devices:
        store.append_log(
            DeliveryLogEntry(
                user_id=target.user_id,
                stage=target.stage,
                sent_at=sent_at,
                result=DeliveryResult.SKIPPED,
                error_message=NO_DEVICES,
            )
        )
        reminders_total.inc({"stage": stage, "result": DeliveryResult.SKIPPED.value})
        return DeliveryResult.SKIPPED

    body = payload.to_json()
    outcomes = list(await asyncio.gather(*(send_to_device(transport, device, body) for device in devices)))

    for outcome in outcomes:
        if outcome.should_remove:
            store.delete_device(outcome.device_id)
            devices_pruned_total.inc()
            log_event("info", "push.device_pruned", user_id=target.user_id, stage=stage, extra={"device_id": outcome.device_id})

    result = aggregate(outcomes)
    store.append_log(
        DeliveryLogEntry(
            user_id=target.user_id,
            stage=target.stage,
            sent_at=sent_at,
            result=result,
            error_message=_error_summary(outcomes) if result is DeliveryResult.FAILED else None,
        )
    )
    reminders_total.inc({"stage": stage, "result": result.value})
    log_event(
        "info" if result is DeliveryResult.SUCCESS else "warning",
        "reminder.delivered",
        user_id=target.user_id,
        stage=stage,
        extra={
            "result": result.value,
            "devices": len(outcomes),
            "succeeded": sum(1 for o in outcomes if o.success),
        },
    )
    return result
