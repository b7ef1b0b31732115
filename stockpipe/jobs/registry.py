"""Job registry for mapping job names to functions."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date
from typing import Any

from stockpipe.core.config import Settings
from stockpipe.core.logging import get_logger


logger = get_logger("jobs.registry")


@dataclass(frozen=True)
class JobContext:
    """What a job receives: the business date it runs for and the settings."""

    business_date: date
    settings: Settings


JobFunc = Callable[[JobContext], Awaitable[Any]]

# Global job registry
_registry: dict[str, JobFunc] = {}


def register_job(name: str) -> Callable[[JobFunc], JobFunc]:
    """
    Decorator to register a job function.

    Usage:
        @register_job("closing_pipeline")
        async def closing_pipeline_job(ctx: JobContext) -> str:
            ...
    """

    def decorator(func: JobFunc) -> JobFunc:
        _registry[name] = func
        logger.debug(f"Registered job: {name}")
        return func

    return decorator


def get_job(name: str) -> JobFunc | None:
    """Get a registered job function by name."""
    return _registry.get(name)


def get_all_jobs() -> dict[str, JobFunc]:
    """Get all registered jobs."""
    return _registry.copy()


def list_job_names() -> list[str]:
    """List all registered job names."""
    return list(_registry.keys())


def unregister_job(name: str) -> None:
    _registry.pop(name, None)
