"""
Caller identity for user-scoped routes.

Session authentication happens in front of this service; the gateway forwards
the authenticated user as `X-User-Id`. Routes take the caller through
`get_caller_id` and check it against the user they act on, so swapping this
dependency for token verification is the only change needed to authenticate
here.
"""
from typing import Optional

from fastapi import Header

from dailyline.core.config import settings
from dailyline.core.errors import ForbiddenError, UnauthorizedError


def get_caller_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> Optional[str]:
    caller = (x_user_id or "").strip() or None
    if caller is None and settings.REQUIRE_CALLER_ID:
        raise UnauthorizedError("missing caller identity")
    return caller


def ensure_caller_owns(caller_id: Optional[str], user_id: str) -> None:
    """Reject acting on another user's data when a caller identity is present."""
    if caller_id is not None and caller_id != user_id:
        raise ForbiddenError("cannot act on behalf of another user")
