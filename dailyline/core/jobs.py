"""Bookkeeping for scheduled runs (ticks, sweeps, cleanups) in `job_runs`."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, select

from dailyline.core.database import get_db_session, job_runs


def record_job_run(
    job_name: str,
    started_at: datetime,
    status: str,
    stats: Optional[Dict[str, Any]] = None,
) -> None:
    with get_db_session() as session:
        session.execute(
            insert(job_runs).values(
                job_name=job_name,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                status=status,
                stats_json=stats or {},
            )
        )


def recent_job_runs(job_name: str, limit: int = 10) -> List[dict]:
    with get_db_session() as session:
        rows = session.execute(
            select(job_runs)
            .where(job_runs.c.job_name == job_name)
            .order_by(job_runs.c.started_at.desc(), job_runs.c.id.desc())
            .limit(limit)
        ).fetchall()
        return [
            {
                "job_name": row.job_name,
                "started_at": row.started_at,
                "finished_at": row.finished_at,
                "status": row.status,
                "stats": row.stats_json or {},
            }
            for row in rows
        ]
