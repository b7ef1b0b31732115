"""Background job scheduler and job definitions."""

from .scheduler import (
    JobScheduler,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)
from .registry import (
    JobContext,
    register_job,
    get_job,
    get_all_jobs,
)
from .executor import (
    execute_job,
    execute_job_with_retry,
)
from .job_defaults import (
    JobSchedule,
    ScheduleConfig,
    build_schedule_config,
)
from . import definitions  # noqa: F401  (registers jobs)


__all__ = [
    "JobScheduler",
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
    "JobContext",
    "register_job",
    "get_job",
    "get_all_jobs",
    "execute_job",
    "execute_job_with_retry",
    "JobSchedule",
    "ScheduleConfig",
    "build_schedule_config",
]
