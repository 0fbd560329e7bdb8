#!/usr/bin/env python3
"""
Send one test notification to a user's registered devices.

Usage:
    python -m dailyline.scripts.send_test_notification --user-id <id>

Uses the configured VAPID keys. Nothing is written to the delivery log;
registrations answering 410 Gone are removed like in a regular tick.
"""
import argparse
import asyncio
import json
from typing import List, Optional

from dailyline.core.config import settings
from dailyline.core.logging import configure_logging
from dailyline.features.notifications.delivery import send_to_device
from dailyline.features.notifications.messages import NOTIFICATION_TITLE
from dailyline.features.notifications.store import NotificationStore
from dailyline.features.notifications.transport import PushTransport, WebPushTransport
from dailyline.models.notification import DeviceOutcome, PushPayload

TEST_BODY = "This is a test notification from dailyline."


def build_test_payload() -> PushPayload:
    return PushPayload(
        title=NOTIFICATION_TITLE,
        body=TEST_BODY,
        data={"url": settings.NOTIFICATION_URL, "type": "test"},
        icon=settings.NOTIFICATION_ICON or None,
    )


async def send_test_notification(
    user_id: str,
    *,
    store: Optional[NotificationStore] = None,
    transport: Optional[PushTransport] = None,
) -> List[DeviceOutcome]:
    store = store or NotificationStore()
    devices = store.list_devices(user_id)
    if not devices:
        return []
    transport = transport or WebPushTransport()
    body = build_test_payload().to_json()
    outcomes = await asyncio.gather(*(send_to_device(transport, device, body) for device in devices))
    for outcome in outcomes:
        if outcome.should_remove:
            store.delete_device(outcome.device_id)
    return list(outcomes)


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a test push notification")
    parser.add_argument("--user-id", required=True)
    args = parser.parse_args()

    configure_logging(settings.ENV)
    outcomes = asyncio.run(send_test_notification(args.user_id))
    if not outcomes:
        print(f"No registered devices for {args.user_id}")
        return
    print(json.dumps([
        {"device_id": o.device_id, "success": o.success, "status_code": o.status_code, "error": o.error}
        for o in outcomes
    ], indent=2))


if __name__ == "__main__":
    main()
