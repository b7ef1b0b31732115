"""Core infrastructure: settings, logging, exceptions, locks."""

from .config import Settings, get_settings, settings
from .exceptions import (
    AppException,
    ComputationSkipped,
    ConflictError,
    FetchError,
    JobError,
    NotFoundError,
    ValidationError,
)
from .locks import KeyedLock, security_locks
from .logging import get_logger, setup_logging


__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "AppException",
    "ComputationSkipped",
    "ConflictError",
    "FetchError",
    "JobError",
    "NotFoundError",
    "ValidationError",
    "KeyedLock",
    "security_locks",
    "get_logger",
    "setup_logging",
]
