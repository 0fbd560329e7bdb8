"""
RQ queue client for entry-hook jobs.

The connection is opened on first use so importing this module never touches Redis.
"""
from typing import Optional

from redis import Redis
from rq import Queue

from dailyline.core.config import settings

ENTRY_HOOK_QUEUE = "entry-hooks"
ENTRY_HOOK_JOB = "dailyline.workers.entry_hook.process_entry_created"

_queue: Optional[Queue] = None


def get_queue() -> Queue:
    global _queue
    if _queue is None:
        redis_conn = Redis.from_url(settings.REDIS_URL)
        _queue = Queue(ENTRY_HOOK_QUEUE, connection=redis_conn)
    return _queue


def enqueue_entry_created(user_id: str, created_at_iso: str, entry_id: Optional[str] = None) -> str:
    """
    Enqueue the entry-created side effects.

    Args:
        user_id: Owner of the new entry
        created_at_iso: Entry creation instant (ISO 8601, UTC)
        entry_id: Entry id, used as the idempotency key when present

    Returns:
        Job ID
    """
    job = get_queue().enqueue(
        ENTRY_HOOK_JOB,
        user_id,
        created_at_iso,
        entry_id,
        job_timeout="2m",
        result_ttl=3600,
        failure_ttl=86400,
    )
    return job.id
