"""
Web Push transport (VAPID) built on pywebpush.

`send()` returns a PushResponse on a 2xx answer and raises
PermanentDeliveryError for 410 Gone or TransientDeliveryError for anything else.
The blocking HTTP call runs in a worker thread so device sends can overlap.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol

from pywebpush import WebPushException, webpush
from requests.exceptions import RequestException

from dailyline.core.config import settings, validate_vapid_config, vapid_config
from dailyline.core.errors import PermanentDeliveryError, TransientDeliveryError
from dailyline.models.notification import DeviceRegistration

GONE = 410


@dataclass(frozen=True)
class PushResponse:
    status_code: int


class PushTransport(Protocol):
    async def send(self, device: DeviceRegistration, payload: str) -> PushResponse:
        ...


def raise_for_status(status_code: Optional[int], message: str) -> None:
    if status_code is not None and 200 <= status_code < 300:
        return
    if status_code == GONE:
        raise PermanentDeliveryError(message, http_status=status_code)
    raise TransientDeliveryError(message, http_status=status_code)


def subscription_info(device: DeviceRegistration) -> dict:
    return {
        "endpoint": device.endpoint,
        "keys": {"p256dh": device.p256dh_key, "auth": device.auth_key},
    }


class WebPushTransport:
    def __init__(
        self,
        public_key: Optional[str] = None,
        private_key: Optional[str] = None,
        subject: Optional[str] = None,
        timeout: Optional[int] = None,
        ttl: Optional[int] = None,
    ):
        config = vapid_config()
        self.public_key = public_key or config["public_key"]
        self.private_key = private_key or config["private_key"]
        self.subject = subject or config["subject"]
        self.timeout = timeout or settings.PUSH_TIMEOUT_SECONDS
        self.ttl = ttl or settings.PUSH_TTL_SECONDS

        problems = validate_vapid_config(
            {"public_key": self.public_key, "private_key": self.private_key, "subject": self.subject}
        )
        if problems:
            raise RuntimeError("Web Push is not configured: " + "; ".join(problems))

    def _send_blocking(self, device: DeviceRegistration, payload: str) -> PushResponse:
        try:
            response = webpush(
                subscription_info=subscription_info(device),
                data=payload,
                vapid_private_key=self.private_key,
                # webpush() adds aud/exp to the claims dict, so it must be fresh per call
                vapid_claims={"sub": self.subject},
                timeout=self.timeout,
                ttl=self.ttl,
            )
        except WebPushException as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise_for_status(status, str(exc))
            raise TransientDeliveryError(str(exc)) from exc
        except RequestException as exc:
            raise TransientDeliveryError(f"push service unreachable: {exc}") from exc

        raise_for_status(response.status_code, f"push service answered {response.status_code}")
        return PushResponse(status_code=response.status_code)

    async def send(self, device: DeviceRegistration, payload: str) -> PushResponse:
        return await asyncio.to_thread(self._send_blocking, device, payload)
