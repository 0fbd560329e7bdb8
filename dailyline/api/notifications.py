from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dailyline.core.auth import ensure_caller_owns, get_caller_id
from dailyline.features.notifications.settings import SettingsUpdate, get_settings, update_settings
from dailyline.features.notifications.subscriptions import (
    SubscriptionInput,
    UnsubscribeInput,
    register_device,
    unregister_device,
)

router = APIRouter(prefix="/v1/notifications")


@router.get("/settings")
def read_settings(user_id: str = Query(..., min_length=1), caller_id: Optional[str] = Depends(get_caller_id)):
    ensure_caller_owns(caller_id, user_id)
    return get_settings(user_id).as_dict()


@router.put("/settings")
def write_settings(
    update: SettingsUpdate,
    user_id: str = Query(..., min_length=1),
    caller_id: Optional[str] = Depends(get_caller_id),
):
    ensure_caller_owns(caller_id, user_id)
    return update_settings(user_id, update).as_dict()


@router.post("/subscriptions", status_code=201)
def subscribe(payload: SubscriptionInput, caller_id: Optional[str] = Depends(get_caller_id)):
    ensure_caller_owns(caller_id, payload.user_id)
    device_id = register_device(payload.user_id, payload.endpoint, payload.keys, payload.user_agent)
    return {"id": device_id}


@router.delete("/subscriptions")
def unsubscribe(payload: UnsubscribeInput, caller_id: Optional[str] = Depends(get_caller_id)):
    ensure_caller_owns(caller_id, payload.user_id)
    removed = unregister_device(payload.user_id, payload.endpoint)
    return {"removed": removed}
