"""Job execution with a per (job, business date) run ledger, retry and error handling."""

from __future__ import annotations

import asyncio
from datetime import date

from stockpipe.core.config import settings
from stockpipe.core.exceptions import JobError
from stockpipe.core.logging import get_logger, job_run_var
from stockpipe.repositories import job_runs_orm

from .registry import JobContext, get_job
from .utils import elapsed_ms, job_timer, market_today


logger = get_logger("jobs.executor")

SKIPPED_MESSAGE = "Skipped: already succeeded"


async def execute_job(name: str, business_date: date | None = None, force: bool = False) -> str:
    """
    Execute a job for one business date.

    A (job, date) pair that already succeeded is skipped unless forced, so
    a restart or a manual trigger never redoes finished work.

    Args:
        name: Job name
        business_date: Date the job runs for (default: today, market local time)
        force: Run even if the date already succeeded

    Returns:
        Job result message

    Raises:
        JobError: If the job is unknown or its execution fails
    """
    job_func = get_job(name)
    if job_func is None:
        raise JobError(message=f"Unknown job: {name}", error_code="UNKNOWN_JOB", status_code=404)

    business_date = business_date or market_today()

    if not force and await job_runs_orm.is_succeeded(name, business_date):
        logger.info(f"Job {name} for {business_date} already succeeded, skipping")
        return SKIPPED_MESSAGE

    await job_runs_orm.start_run(name, business_date)
    token = job_run_var.set(f"{name}:{business_date.isoformat()}")
    start_time = job_timer()

    try:
        result = await job_func(JobContext(business_date=business_date, settings=settings))
    except Exception as e:
        duration_ms = elapsed_ms(start_time)
        logger.exception(f"Job {name} for {business_date} failed after {duration_ms}ms")
        try:
            await job_runs_orm.finish_run(
                name, business_date, job_runs_orm.STATUS_FAILED, duration_ms, error=f"{type(e).__name__}: {e}"
            )
        except Exception as record_error:
            logger.error(f"Could not record failure of {name} for {business_date}: {record_error}")
        raise JobError(
            message=f"Job execution failed: {e!s}",
            error_code="JOB_EXECUTION_FAILED",
            details={"job_name": name, "business_date": business_date.isoformat(), "duration_ms": duration_ms},
        ) from e
    finally:
        job_run_var.reset(token)

    duration_ms = elapsed_ms(start_time)
    message = str(result) if result else "Completed"
    await job_runs_orm.finish_run(
        name, business_date, job_runs_orm.STATUS_SUCCESS, duration_ms, summary=message
    )
    logger.info(f"Job {name} for {business_date} executed in {duration_ms}ms: {message}")
    return message


async def execute_job_with_retry(
    name: str,
    business_date: date | None = None,
    force: bool = False,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    backoff_factor: float = 2.0,
) -> str:
    """
    Execute a job with exponential backoff retry.

    Args:
        name: Job name
        business_date: Date the job runs for
        force: Run even if the date already succeeded
        max_retries: Maximum retry attempts
        retry_delay: Initial delay between retries (seconds)
        backoff_factor: Multiplier for delay after each retry

    Raises:
        JobError: If the job is unknown or all retries are exhausted
    """
    business_date = business_date or market_today()
    last_error: JobError | None = None

    for attempt in range(max_retries + 1):
        try:
            return await execute_job(name, business_date, force=force)
        except JobError as e:
            if e.error_code == "UNKNOWN_JOB":
                raise
            last_error = e

            if attempt < max_retries:
                delay = retry_delay * (backoff_factor**attempt)
                logger.warning(
                    f"Job {name} failed (attempt {attempt + 1}/{max_retries + 1}), "
                    f"retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
            else:
                logger.error(f"Job {name} failed after {max_retries + 1} attempts")

    raise JobError(
        message=f"Job failed after {max_retries + 1} attempts: {last_error}",
        error_code="JOB_RETRIES_EXHAUSTED",
        details={"job_name": name, "business_date": business_date.isoformat(), "attempts": max_retries + 1},
    )
