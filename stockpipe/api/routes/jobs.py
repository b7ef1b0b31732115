"""Scheduled job routes."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Path, Query

from stockpipe.jobs.executor import execute_job
from stockpipe.jobs.job_defaults import build_schedule_config
from stockpipe.jobs.scheduler import get_scheduler
from stockpipe.repositories import job_runs_orm
from stockpipe.schemas.common import MessageResponse
from stockpipe.schemas.jobs import JobRunRequest, JobRunResponse, JobStatusResponse


router = APIRouter()


@router.get(
    "",
    response_model=List[JobStatusResponse],
    summary="List scheduled jobs",
    description="Configured jobs in time-of-day order with their next run.",
)
async def list_jobs() -> List[JobStatusResponse]:
    scheduler = get_scheduler()
    if scheduler is not None:
        return [JobStatusResponse(**status) for status in scheduler.get_jobs_status()]
    return [
        JobStatusResponse(name=job.name, at=job.at_label, description=job.description)
        for job in build_schedule_config().ordered()
    ]


@router.get(
    "/runs",
    response_model=List[JobRunResponse],
    summary="Recent job runs",
)
async def list_job_runs(
    name: str | None = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=500),
) -> List[JobRunResponse]:
    runs = await job_runs_orm.list_runs(job_name=name, limit=limit)
    return [JobRunResponse.model_validate(run) for run in runs]


@router.post(
    "/{name}/run",
    response_model=MessageResponse,
    summary="Run a job now",
    description="Run a job for a business date; a date that already succeeded is skipped unless forced.",
)
async def run_job(
    name: str = Path(..., min_length=1, max_length=100),
    request: JobRunRequest | None = None,
) -> MessageResponse:
    request = request or JobRunRequest()
    message = await execute_job(name.strip().lower(), request.business_date, force=request.force)
    return MessageResponse(message=message)
