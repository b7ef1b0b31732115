"""Default job timetable.

Times are market local (``settings.scheduler_timezone``). The closing
pipeline runs after the market closes; reference data refreshes run at
night when sources are quiet.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time

from stockpipe.core.config import Settings, settings as default_settings


@dataclass(frozen=True)
class JobSchedule:
    """When one job runs each day."""

    name: str
    at: time
    description: str = ""

    @property
    def at_label(self) -> str:
        return self.at.strftime("%H:%M")


@dataclass(frozen=True)
class ScheduleConfig:
    """Immutable scheduler configuration, built once at startup."""

    timezone: str
    jobs: tuple[JobSchedule, ...]
    misfire_grace_seconds: int = 300

    def get(self, name: str) -> JobSchedule | None:
        return next((job for job in self.jobs if job.name == name), None)

    def ordered(self) -> list[JobSchedule]:
        """Jobs by time of day; jobs at the same time keep their declared order."""
        return sorted(self.jobs, key=lambda job: job.at)


DEFAULT_SCHEDULES: tuple[JobSchedule, ...] = (
    JobSchedule("emerging_nav_refresh", time(1, 0), "Refresh net asset value per share of emerging securities"),
    JobSchedule("payout_ratio", time(2, 30), "Backfill dividend payout ratios"),
    JobSchedule("quarterly_eps", time(3, 0), "Refresh last-quarter and trailing four-quarter EPS"),
    JobSchedule("quarterly_financial_statements", time(4, 0), "Fetch quarterly financial statements"),
    JobSchedule("annual_financial_statements", time(5, 0), "Fetch annual financial statements"),
    JobSchedule("monthly_revenue", time(5, 0), "Fetch monthly revenue"),
    JobSchedule("security_list", time(5, 0), "Refresh the security master list"),
    JobSchedule(
        "closing_pipeline",
        time(15, 0),
        "Quotes, metrics, estimates, yield rank, price stats and portfolio snapshots",
    ),
    JobSchedule("dividend_backfill", time(21, 0), "Backfill dividends and ex-dividend dates"),
    JobSchedule("foreign_holdings", time(22, 0), "Refresh foreign holding shares and percentage"),
)


def build_schedule_config(settings: Settings | None = None) -> ScheduleConfig:
    """Default timetable minus the jobs disabled in settings."""
    settings = settings or default_settings
    disabled = set(settings.disabled_jobs)
    return ScheduleConfig(
        timezone=settings.scheduler_timezone,
        jobs=tuple(job for job in DEFAULT_SCHEDULES if job.name not in disabled),
        misfire_grace_seconds=settings.scheduler_misfire_grace_seconds,
    )
