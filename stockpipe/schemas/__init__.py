"""Pydantic request/response schemas."""

from .common import ErrorResponse, HealthResponse, MessageResponse
from .jobs import JobRunRequest, JobRunResponse, JobStatusResponse
from .stocks import (
    CurrentQuote,
    CurrentQuotesResponse,
    Holiday,
    HolidayScheduleResponse,
    SecurityInfoUpdate,
)


__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "MessageResponse",
    "JobRunRequest",
    "JobRunResponse",
    "JobStatusResponse",
    "CurrentQuote",
    "CurrentQuotesResponse",
    "Holiday",
    "HolidayScheduleResponse",
    "SecurityInfoUpdate",
]
