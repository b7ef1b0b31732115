"""Closing pipeline: the end-of-day sequence for one business date.

Steps, in order:

1. ``quotes``: fetch and merge the day's quotes
2. ``metrics``: moving averages, year extremes, P/B, all-time extremes
3. ``estimates``: valuation bands
4. ``yield_rank``: cross-sectional dividend yield ranking
5. ``price_stats``: market breadth
6. ``portfolio``: member snapshots

A failing step is logged and recorded and the next step still runs. An
unreachable store aborts the run and re-raises.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from stockpipe.core.exceptions import FetchError
from stockpipe.core.logging import get_logger
from stockpipe.database.connection import is_connection_error
from stockpipe.repositories import quotes_orm, securities_orm
from stockpipe.sources.base import SourceAdapter

from .ingestion import IngestionService
from .metrics import MetricsReport, MetricsService
from .portfolio import PortfolioService


logger = get_logger("services.pipeline")

STEP_OK = "ok"
STEP_FAILED = "failed"
STEP_SKIPPED = "skipped"


@dataclass
class StepResult:
    name: str
    status: str
    duration_ms: int = 0
    detail: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass
class PipelineReport:
    business_date: date
    steps: list[StepResult] = field(default_factory=list)
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return not self.aborted and all(step.status != STEP_FAILED for step in self.steps)

    def step(self, name: str) -> StepResult | None:
        return next((s for s in self.steps if s.name == name), None)

    def summary(self) -> dict[str, Any]:
        return {
            "business_date": self.business_date.isoformat(),
            "aborted": self.aborted,
            "steps": {s.name: s.status for s in self.steps},
        }


class ClosingPipeline:
    """Runs the closing steps for one business date."""

    def __init__(
        self,
        quote_adapter: SourceAdapter | None = None,
        ingestion: IngestionService | None = None,
        metrics: MetricsService | None = None,
        portfolio: PortfolioService | None = None,
    ):
        self._quote_adapter = quote_adapter
        self._ingestion = ingestion or IngestionService()
        self._metrics = metrics or MetricsService()
        self._portfolio = portfolio or PortfolioService()

    async def run(self, business_date: date, codes: Sequence[str] | None = None) -> PipelineReport:
        """Run every closing step for ``business_date``.

        Args:
            business_date: Trading day to close
            codes: Restrict per-security steps to these codes

        Raises:
            Exception: Whatever made the store unreachable; ``report.aborted``
                is set before re-raising
        """
        report = PipelineReport(business_date=business_date)
        metrics_report = MetricsReport(business_date=business_date)
        quoted: list[str] = []

        async def quotes() -> dict[str, Any]:
            if self._quote_adapter is None:
                raise _StepSkipped("no quote source configured")
            targets = list(codes) if codes is not None else await securities_orm.list_security_codes()
            ingested = await self._ingestion.ingest(self._quote_adapter, targets)
            if targets and not ingested.fetch.succeeded:
                raise FetchError(message=f"no quotes fetched for {len(targets)} securities")
            return ingested.summary()

        async def load_quoted() -> None:
            quoted.extend(
                q.security_code
                for q in await quotes_orm.list_quotes_on(business_date)
                if codes is None or q.security_code in codes
            )

        async def metrics() -> dict[str, Any]:
            await load_quoted()
            if not quoted:
                raise _StepSkipped(f"no quotes on {business_date}")
            await self._metrics.recompute_securities(business_date, quoted, metrics_report)
            return {"recomputed": metrics_report.recomputed, "failed": len(metrics_report.failed)}

        async def estimates() -> dict[str, Any]:
            if not quoted:
                raise _StepSkipped(f"no quotes on {business_date}")
            await self._metrics.compute_estimates(business_date, quoted, metrics_report)
            return {"estimates": metrics_report.estimates, "skipped": len(metrics_report.skipped)}

        async def yield_rank() -> dict[str, Any]:
            return {"ranked": len(await self._metrics.compute_yield_ranks(business_date))}

        async def price_stats() -> dict[str, Any]:
            return {"markets": sorted(await self._metrics.compute_price_stats(business_date))}

        async def portfolio() -> dict[str, Any]:
            return (await self._portfolio.snapshot(business_date)).summary()

        steps: list[tuple[str, Callable[[], Awaitable[dict[str, Any]]]]] = [
            ("quotes", quotes),
            ("metrics", metrics),
            ("estimates", estimates),
            ("yield_rank", yield_rank),
            ("price_stats", price_stats),
            ("portfolio", portfolio),
        ]

        for name, func in steps:
            await self._run_step(report, name, func)

        log = logger.info if report.ok else logger.warning
        log(
            f"Closing pipeline for {business_date}: "
            + ", ".join(f"{s.name}={s.status}" for s in report.steps),
            extra={"extra_fields": report.summary()},
        )
        return report

    async def _run_step(
        self,
        report: PipelineReport,
        name: str,
        func: Callable[[], Awaitable[dict[str, Any]]],
    ) -> None:
        start = time.monotonic()
        try:
            detail = await func()
            result = StepResult(name=name, status=STEP_OK, detail=detail)
        except _StepSkipped as e:
            result = StepResult(name=name, status=STEP_SKIPPED, detail={"reason": str(e)})
        except Exception as e:
            result = StepResult(name=name, status=STEP_FAILED, error=f"{type(e).__name__}: {e}")
            if is_connection_error(e):
                result.duration_ms = int((time.monotonic() - start) * 1000)
                report.steps.append(result)
                report.aborted = True
                logger.error(f"Closing pipeline aborted at {name}: store unreachable: {e}")
                raise
            logger.exception(f"Closing step {name} failed for {report.business_date}")
        result.duration_ms = int((time.monotonic() - start) * 1000)
        report.steps.append(result)


class _StepSkipped(Exception):
    """A step with nothing to do."""
