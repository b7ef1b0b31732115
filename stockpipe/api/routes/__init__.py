"""API route modules."""

from . import health, jobs, stocks


__all__ = ["health", "jobs", "stocks"]
