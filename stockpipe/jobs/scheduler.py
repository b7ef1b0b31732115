"""Job scheduler using APScheduler with async support."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from stockpipe.core.config import settings
from stockpipe.core.exceptions import JobError
from stockpipe.core.logging import get_logger

from .executor import execute_job
from .job_defaults import JobSchedule, ScheduleConfig, build_schedule_config
from .registry import get_job


logger = get_logger("jobs.scheduler")

# Global scheduler instance
_scheduler: Optional["JobScheduler"] = None


class JobScheduler:
    """Runs every configured job once a day at its time of day."""

    def __init__(self, config: ScheduleConfig | None = None):
        self.config = config or build_schedule_config(settings)
        self._scheduler = AsyncIOScheduler(
            timezone=self.config.timezone,
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,  # Only one instance per job at a time
                "misfire_grace_time": self.config.misfire_grace_seconds,
            },
        )
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Schedule every configured job and start the scheduler."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        if not settings.scheduler_enabled:
            logger.info("Scheduler disabled via SCHEDULER_ENABLED=false")
            return

        self._load_jobs()
        self._scheduler.start()
        self._running = True
        logger.info(f"Job scheduler started ({len(self._scheduler.get_jobs())} jobs, {self.config.timezone})")

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        self._scheduler.shutdown(wait=True)
        self._running = False
        logger.info("Job scheduler stopped")

    def _load_jobs(self) -> None:
        for schedule in self.config.ordered():
            if get_job(schedule.name) is None:
                logger.warning(f"No job registered for schedule {schedule.name}")
                continue

            self._scheduler.add_job(
                self._wrap_job(schedule.name),
                trigger=CronTrigger(
                    hour=schedule.at.hour,
                    minute=schedule.at.minute,
                    timezone=self.config.timezone,
                ),
                id=schedule.name,
                name=schedule.description or schedule.name,
                replace_existing=True,
            )
            logger.info(f"Scheduled job: {schedule.name} ({schedule.at_label})")

    def _wrap_job(self, name: str):
        """Wrap a job so a failure ends only this run."""

        async def wrapper() -> None:
            try:
                await execute_job(name)
            except JobError as e:
                # Already logged and recorded by the executor
                logger.error(f"Scheduled run of {name} failed: {e.message}")

        return wrapper

    def ordered_jobs(self) -> list[JobSchedule]:
        """Configured jobs by time of day."""
        return self.config.ordered()

    async def run_job_now(self, name: str, business_date: date | None = None, force: bool = False) -> str:
        """Manually trigger a job execution."""
        if self.config.get(name) is None and get_job(name) is None:
            raise JobError(message=f"Unknown job: {name}", error_code="UNKNOWN_JOB", status_code=404)
        return await execute_job(name, business_date, force=force)

    def get_next_run_time(self, name: str) -> Optional[datetime]:
        """Get next scheduled run time for a job."""
        job = self._scheduler.get_job(name)
        if job and self._running:
            return job.next_run_time
        return None

    def get_jobs_status(self) -> list[dict[str, Any]]:
        """Status of all configured jobs in time-of-day order."""
        return [
            {
                "name": schedule.name,
                "at": schedule.at_label,
                "description": schedule.description,
                "next_run": self.get_next_run_time(schedule.name),
            }
            for schedule in self.ordered_jobs()
        ]


def get_scheduler() -> Optional[JobScheduler]:
    """Get the global scheduler instance."""
    return _scheduler


async def start_scheduler(config: ScheduleConfig | None = None) -> JobScheduler:
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = JobScheduler(config)
    await _scheduler.start()
    return _scheduler


async def stop_scheduler() -> None:
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
