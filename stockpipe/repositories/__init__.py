"""Data access layer repositories.

Each repository module provides async functions for database operations.
All code uses SQLAlchemy ORM models from `stockpipe.database.orm` with the
`get_session()` context manager.

- securities_orm: security master reads
- quotes_orm: quote history reads, derived quote columns
- fundamentals_orm: dividends and financial statements
- metrics_orm: estimates, yield ranks, daily price stats
- portfolio_orm: member lots and daily snapshots
- holidays_orm: holiday calendar
- job_runs_orm: per (job, business date) run ledger
"""

from . import fundamentals_orm
from . import holidays_orm
from . import job_runs_orm
from . import metrics_orm
from . import portfolio_orm
from . import quotes_orm
from . import securities_orm

__all__ = [
    "fundamentals_orm",
    "holidays_orm",
    "job_runs_orm",
    "metrics_orm",
    "portfolio_orm",
    "quotes_orm",
    "securities_orm",
]
