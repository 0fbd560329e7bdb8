"""Device registration surface (Web Push subscriptions)."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from dailyline.core.errors import ValidationError
from dailyline.core.logging import log_event
from dailyline.features.notifications.store import NotificationStore


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class SubscriptionInput(BaseModel):
    user_id: str = Field(..., min_length=1)
    endpoint: str = Field(..., min_length=1)
    keys: SubscriptionKeys
    user_agent: Optional[str] = Field(None, max_length=255)


class UnsubscribeInput(BaseModel):
    user_id: str = Field(..., min_length=1)
    endpoint: str = Field(..., min_length=1)


def register_device(
    user_id: str,
    endpoint: str,
    keys: SubscriptionKeys,
    user_agent: Optional[str] = None,
    store: Optional[NotificationStore] = None,
) -> str:
    """Register a device; ConflictError if the endpoint is already registered."""
    if not endpoint.startswith("https://"):
        raise ValidationError("endpoint must be an https:// URL")
    store = store or NotificationStore()
    device_id = store.register_device(user_id, endpoint, keys.p256dh, keys.auth, user_agent)
    log_event("info", "push.device_registered", user_id=user_id, extra={"device_id": device_id})
    return device_id


def unregister_device(user_id: str, endpoint: str, store: Optional[NotificationStore] = None) -> bool:
    """Idempotent: removing an unknown endpoint is not an error."""
    store = store or NotificationStore()
    removed = store.unregister_device(user_id, endpoint)
    if removed:
        log_event("info", "push.device_unregistered", user_id=user_id)
    return removed
