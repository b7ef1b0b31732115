"""Concurrent fetch orchestration over source adapters.

Fans a source adapter out over many targets (security codes, dates, ...)
with a bounded worker pool. Every target is retried independently with
exponential backoff and a per-attempt timeout; a target that exhausts its
attempts is reported as failed and the batch carries on.

The orchestrator never writes to the store. Callers that want to merge as
results arrive pass a ``handler``; a failing handler fails only its target.

Usage:
    orchestrator = FetchOrchestrator(concurrency=4)
    report = await orchestrator.run(adapter, ["2330", "2317"])
    merger_report = await merger.merge(report.records)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import pydantic

from stockpipe.core.config import settings
from stockpipe.core.exceptions import ValidationError
from stockpipe.core.logging import get_logger
from stockpipe.domain.records import NormalizedRecord
from stockpipe.sources.base import SourceAdapter

from .resilience import (
    CircuitBreaker,
    CircuitOpenError,
    RetryExhaustedError,
    retry_async,
)


logger = get_logger("services.fetch")

Handler = Callable[[Hashable, Sequence[NormalizedRecord]], Awaitable[Any]]


@dataclass
class FetchReport:
    """Outcome of one orchestrated fetch, partitioned by target."""

    source: str
    succeeded: dict[Hashable, list[NormalizedRecord]] = field(default_factory=dict)
    failed: dict[Hashable, str] = field(default_factory=dict)
    attempts: dict[Hashable, int] = field(default_factory=dict)
    duration_ms: int = 0

    @property
    def records(self) -> list[NormalizedRecord]:
        """All fetched records, flattened in target order."""
        return [record for records in self.succeeded.values() for record in records]

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "records": len(self.records),
            "duration_ms": self.duration_ms,
        }


def _failure_reason(error: BaseException | None, timeout: float | None) -> str:
    if error is None:
        return "unknown error"
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return f"timed out after {timeout}s"
    return f"{type(error).__name__}: {error}"


class FetchOrchestrator:
    """Bounded-concurrency fetcher with per-item retry and failure isolation."""

    def __init__(
        self,
        concurrency: int | None = None,
        attempt_timeout: float | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        jitter: float = 0.1,
        use_circuit_breaker: bool = True,
    ):
        self.concurrency = concurrency or settings.fetch_concurrency
        self.attempt_timeout = attempt_timeout or settings.fetch_timeout
        self.max_attempts = max_attempts or settings.fetch_retries
        self.base_delay = settings.fetch_retry_base_delay if base_delay is None else base_delay
        self.max_delay = settings.fetch_retry_max_delay if max_delay is None else max_delay
        self.jitter = jitter
        self.use_circuit_breaker = use_circuit_breaker
        self._breakers: dict[str, CircuitBreaker] = {}

    def breaker_for(self, source: str) -> CircuitBreaker:
        """Circuit breaker shared by every fetch from ``source``."""
        if source not in self._breakers:
            self._breakers[source] = CircuitBreaker(
                failure_threshold=settings.circuit_failure_threshold,
                recovery_timeout=settings.circuit_recovery_timeout,
                name=source,
                # Malformed records do not count against the source
                excluded_exceptions=(pydantic.ValidationError, ValidationError),
            )
        return self._breakers[source]

    async def run(
        self,
        adapter: SourceAdapter,
        targets: Iterable[Hashable],
        handler: Handler | None = None,
    ) -> FetchReport:
        """Fetch every target from ``adapter``.

        Args:
            adapter: Source to fetch from
            targets: Targets to fetch (duplicates are fetched once)
            handler: Optional coroutine called with (target, records) on success

        Returns:
            FetchReport with succeeded records and failure reasons per target
        """
        unique_targets = list(dict.fromkeys(targets))
        report = FetchReport(source=adapter.name)
        semaphore = asyncio.Semaphore(self.concurrency)
        start = time.monotonic()

        async def worker(target: Hashable) -> None:
            async with semaphore:
                await self._fetch_one(adapter, target, report, handler)

        await asyncio.gather(*(worker(target) for target in unique_targets))

        # Keep the caller's target order in the report
        report.succeeded = {
            target: report.succeeded[target]
            for target in unique_targets
            if target in report.succeeded
        }
        report.duration_ms = int((time.monotonic() - start) * 1000)

        if report.failed:
            logger.warning(
                f"{adapter.name}: {len(report.succeeded)}/{len(unique_targets)} targets fetched, "
                f"{len(report.failed)} failed",
                extra={"extra_fields": self._failure_fields(adapter.name, report)},
            )
        else:
            logger.info(
                f"{adapter.name}: fetched {len(unique_targets)} targets in {report.duration_ms}ms",
                extra={"extra_fields": report.summary()},
            )
        return report

    def _failure_fields(self, source: str, report: FetchReport) -> dict[str, Any]:
        fields = report.summary()
        if source in self._breakers:
            fields["circuit"] = self._breakers[source].get_stats()
        return fields

    async def _fetch_one(
        self,
        adapter: SourceAdapter,
        target: Hashable,
        report: FetchReport,
        handler: Handler | None,
    ) -> None:
        breaker = self.breaker_for(adapter.name) if self.use_circuit_breaker else None
        attempts = 0

        async def attempt() -> Sequence[NormalizedRecord]:
            nonlocal attempts
            attempts += 1
            return await adapter.fetch(target)

        try:
            if breaker is not None:
                await breaker.guard()
            records = list(
                await retry_async(
                    attempt,
                    max_attempts=self.max_attempts,
                    base_delay=self.base_delay,
                    max_delay=self.max_delay,
                    jitter=self.jitter,
                    attempt_timeout=self.attempt_timeout,
                )
            )
        except CircuitOpenError as e:
            report.failed[target] = e.message
            return
        except RetryExhaustedError as e:
            if breaker is not None:
                breaker.record_failure(e.last_error)
            report.failed[target] = _failure_reason(e.last_error, self.attempt_timeout)
            logger.warning(f"{adapter.name}: giving up on {target} after {attempts} attempts: {report.failed[target]}")
            return
        except Exception as e:
            # Not retryable: a bug or malformed payload in the adapter
            if breaker is not None:
                breaker.record_failure(e)
            report.failed[target] = _failure_reason(e, self.attempt_timeout)
            logger.warning(f"{adapter.name}: {target} failed without retry: {report.failed[target]}")
            return
        finally:
            report.attempts[target] = attempts

        if breaker is not None:
            breaker.record_success()

        if handler is not None:
            try:
                await handler(target, records)
            except Exception as e:
                report.failed[target] = f"handler {_failure_reason(e, None)}"
                logger.exception(f"{adapter.name}: handler failed for {target}")
                return

        report.succeeded[target] = records
