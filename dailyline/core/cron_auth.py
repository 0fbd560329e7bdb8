"""
Bearer-secret authentication for scheduler triggers.

External cron (or a platform scheduler) calls /v1/internal/* with
`Authorization: Bearer <CRON_SECRET>`. With no CRON_SECRET configured every
call is rejected.
"""
import hmac

from fastapi import Request

from dailyline.core.config import settings
from dailyline.core.errors import UnauthorizedError


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def require_cron_secret(request: Request) -> None:
    """FastAPI dependency guarding internal trigger endpoints."""
    expected = settings.CRON_SECRET
    if not expected:
        raise UnauthorizedError("internal triggers are disabled (CRON_SECRET not set)")

    token = _bearer_token(request)
    if not token or not hmac.compare_digest(token.encode(), expected.encode()):
        raise UnauthorizedError("invalid or missing bearer token")
