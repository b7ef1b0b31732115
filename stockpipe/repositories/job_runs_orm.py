"""Job run ledger using SQLAlchemy ORM.

One row per (job name, business date) records whether that run succeeded,
so a scheduler restart or a manual trigger does not redo finished work.

Usage:
    from stockpipe.repositories import job_runs_orm

    if await job_runs_orm.is_succeeded("closing_pipeline", day):
        return
    await job_runs_orm.start_run("closing_pipeline", day)
    ...
    await job_runs_orm.finish_run("closing_pipeline", day, "success", duration_ms=1200)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from stockpipe.core.logging import get_logger
from stockpipe.database.connection import get_session
from stockpipe.database.orm import JobRun


logger = get_logger("repositories.job_runs_orm")

STATUS_RUNNING = "running"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


async def get_run(job_name: str, business_date: date) -> JobRun | None:
    async with get_session() as session:
        return await session.scalar(
            select(JobRun).where(
                JobRun.job_name == job_name,
                JobRun.business_date == business_date,
            )
        )


async def is_succeeded(job_name: str, business_date: date) -> bool:
    run = await get_run(job_name, business_date)
    return run is not None and run.status == STATUS_SUCCESS


async def _start_run(job_name: str, business_date: date, now: datetime) -> JobRun:
    async with get_session() as session:
        run = await session.scalar(
            select(JobRun).where(
                JobRun.job_name == job_name,
                JobRun.business_date == business_date,
            )
        )
        if run is None:
            run = JobRun(job_name=job_name, business_date=business_date, attempts=0)
            session.add(run)
        run.status = STATUS_RUNNING
        run.attempts = (run.attempts or 0) + 1
        run.started_at = now
        run.finished_at = None
        run.duration_ms = None
        run.error = None
        await session.commit()
        return run


async def start_run(job_name: str, business_date: date) -> JobRun:
    """Mark (job, date) as running and count the attempt."""
    now = datetime.now(timezone.utc)
    try:
        return await _start_run(job_name, business_date, now)
    except IntegrityError:
        # Concurrent trigger inserted the row first
        logger.debug(f"Job run {job_name}/{business_date} created concurrently, retrying")
    return await _start_run(job_name, business_date, now)


async def finish_run(
    job_name: str,
    business_date: date,
    status: str,
    duration_ms: int,
    summary: str | None = None,
    error: str | None = None,
) -> None:
    """Record the outcome of a run started with ``start_run``."""
    async with get_session() as session:
        run = await session.scalar(
            select(JobRun).where(
                JobRun.job_name == job_name,
                JobRun.business_date == business_date,
            )
        )
        if run is None:
            logger.warning(f"No job run row for {job_name}/{business_date}; creating one")
            run = JobRun(job_name=job_name, business_date=business_date, attempts=1)
            session.add(run)
        run.status = status
        run.finished_at = datetime.now(timezone.utc)
        run.duration_ms = duration_ms
        run.summary = summary
        run.error = error[:2000] if error else None
        await session.commit()


async def list_runs(job_name: str | None = None, limit: int = 50) -> Sequence[JobRun]:
    """Most recent runs first."""
    async with get_session() as session:
        stmt = select(JobRun).order_by(JobRun.business_date.desc(), JobRun.id.desc()).limit(limit)
        if job_name is not None:
            stmt = stmt.where(JobRun.job_name == job_name)
        result = await session.execute(stmt)
        return result.scalars().all()
