"""Scheduled job schemas."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class JobStatusResponse(BaseModel):
    """A scheduled job and its next run."""

    name: str = Field(..., description="Job name")
    at: str = Field(..., description="Time of day (HH:MM, market local time)")
    description: str = Field("", description="What the job does")
    next_run: datetime | None = Field(None, description="Next scheduled run time")


class JobRunResponse(BaseModel):
    """One recorded run of a job for a business date."""

    job_name: str
    business_date: date
    status: str
    attempts: int
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: int | None = None
    summary: str | None = None
    error: str | None = None

    model_config = {"from_attributes": True}


class JobRunRequest(BaseModel):
    business_date: date | None = Field(None, description="Business date (default: today, market local time)")
    force: bool = Field(False, description="Run even if the date already succeeded")
