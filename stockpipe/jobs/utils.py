"""Shared utilities for job definitions."""

from __future__ import annotations

import time
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from stockpipe.core.config import settings
from stockpipe.core.logging import get_logger


logger = get_logger("jobs.utils")


def log_job_success(job_name: str, message: str, **metrics: Any) -> None:
    """Log a structured job success message with metrics.

    Args:
        job_name: Name of the job (e.g., "closing_pipeline")
        message: Human-readable summary message
        **metrics: Key-value pairs of metrics to include in structured log

    Example:
        log_job_success("monthly_revenue", "Merged 1800 revenue rows",
            targets=1800, failed=3, duration_ms=1234)
    """
    log_data = {
        "job": job_name,
        "status": "success",
        **metrics,
    }
    metrics_str = " ".join(f"{k}={v}" for k, v in metrics.items())
    logger.info(f"{job_name} completed: {message} | {metrics_str}", extra={"extra_fields": log_data})


def market_today(timezone: str | None = None) -> date:
    """Today's date in the market's time zone."""
    return datetime.now(ZoneInfo(timezone or settings.scheduler_timezone)).date()


def job_timer() -> float:
    """Start a job timer.

    Usage:
        job_start = job_timer()
        # ... do work ...
        duration_ms = elapsed_ms(job_start)
    """
    return time.monotonic()


def elapsed_ms(start: float) -> int:
    """Elapsed time since ``start`` in milliseconds."""
    return int((time.monotonic() - start) * 1000)
