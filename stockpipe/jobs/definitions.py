"""Job definitions.

Every scheduled job pulls one kind of data through a registered source
adapter and merges it, except the closing pipeline, which also runs the
metrics and portfolio engines. A job whose source adapter is not registered
logs and returns without failing, so a deployment can enable sources one at
a time. A job where every target failed, or a closing run with a failed
step, raises so its date is not recorded as done.

Source adapters are looked up by name:

    emerging_nav, payout_ratio, quarterly_eps,
    quarterly_financial_statements, annual_financial_statements,
    monthly_revenue, security_list, daily_quotes, dividends,
    foreign_holdings
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence

from stockpipe.core.exceptions import FetchError, JobError
from stockpipe.core.logging import get_logger
from stockpipe.repositories import securities_orm
from stockpipe.services.fetch_orchestrator import FetchOrchestrator
from stockpipe.services.ingestion import IngestionService
from stockpipe.services.pipeline import ClosingPipeline
from stockpipe.sources.base import get_adapter

from .registry import JobContext, register_job
from .utils import elapsed_ms, job_timer, log_job_success


logger = get_logger("jobs.definitions")

EMERGING_MARKET = 5
QUOTE_SOURCE = "daily_quotes"


def _orchestrator(ctx: JobContext) -> FetchOrchestrator:
    return FetchOrchestrator(
        concurrency=ctx.settings.fetch_concurrency,
        attempt_timeout=ctx.settings.fetch_timeout,
        max_attempts=ctx.settings.fetch_retries,
        base_delay=ctx.settings.fetch_retry_base_delay,
        max_delay=ctx.settings.fetch_retry_max_delay,
    )


async def _ingest(
    job_name: str,
    ctx: JobContext,
    source: str,
    targets: Sequence[Hashable],
) -> str:
    """Fetch ``targets`` from the adapter named ``source`` and merge them."""
    adapter = get_adapter(source)
    if adapter is None:
        logger.warning(f"{job_name}: no source adapter registered as {source!r}, nothing to do")
        return f"No source adapter {source!r}"
    if not targets:
        return "No targets"

    job_start = job_timer()
    report = await IngestionService(orchestrator=_orchestrator(ctx)).ingest(adapter, targets)
    if not report.fetch.succeeded:
        # Nothing fetched is never a successful run
        raise FetchError(
            message=f"{job_name}: all {len(targets)} targets failed from {source!r}",
            details={"failed": len(report.fetch.failed)},
        )
    message = (
        f"{len(report.fetch.succeeded)}/{len(targets)} targets fetched, "
        f"{report.merge.applied} rows written"
    )
    log_job_success(
        job_name,
        message,
        targets=len(targets),
        failed=len(report.fetch.failed),
        inserted=report.merge.inserted,
        updated=report.merge.updated,
        rejected=len(report.merge.rejected),
        conflicts=len(report.merge.conflicts),
        duration_ms=elapsed_ms(job_start),
    )
    return message


async def _security_codes() -> list[str]:
    return await securities_orm.list_security_codes()


# =============================================================================
# REFERENCE DATA
# =============================================================================

@register_job("emerging_nav_refresh")
async def emerging_nav_refresh_job(ctx: JobContext) -> str:
    """Net asset value per share of emerging-market securities."""
    securities = await securities_orm.list_securities(market_id=EMERGING_MARKET)
    return await _ingest("emerging_nav_refresh", ctx, "emerging_nav", [s.code for s in securities])


@register_job("payout_ratio")
async def payout_ratio_job(ctx: JobContext) -> str:
    return await _ingest("payout_ratio", ctx, "payout_ratio", await _security_codes())


@register_job("quarterly_eps")
async def quarterly_eps_job(ctx: JobContext) -> str:
    return await _ingest("quarterly_eps", ctx, "quarterly_eps", await _security_codes())


@register_job("quarterly_financial_statements")
async def quarterly_financial_statements_job(ctx: JobContext) -> str:
    return await _ingest(
        "quarterly_financial_statements", ctx, "quarterly_financial_statements", await _security_codes()
    )


@register_job("annual_financial_statements")
async def annual_financial_statements_job(ctx: JobContext) -> str:
    return await _ingest(
        "annual_financial_statements", ctx, "annual_financial_statements", await _security_codes()
    )


@register_job("monthly_revenue")
async def monthly_revenue_job(ctx: JobContext) -> str:
    """Monthly revenue; months at or before a security's cursor are skipped by the merger."""
    return await _ingest("monthly_revenue", ctx, "monthly_revenue", await _security_codes())


@register_job("security_list")
async def security_list_job(ctx: JobContext) -> str:
    """Market-wide security master list, one target per business date."""
    return await _ingest("security_list", ctx, "security_list", [ctx.business_date])


@register_job("dividend_backfill")
async def dividend_backfill_job(ctx: JobContext) -> str:
    return await _ingest("dividend_backfill", ctx, "dividends", await _security_codes())


@register_job("foreign_holdings")
async def foreign_holdings_job(ctx: JobContext) -> str:
    return await _ingest("foreign_holdings", ctx, "foreign_holdings", [ctx.business_date])


# =============================================================================
# CLOSING
# =============================================================================

@register_job("closing_pipeline")
async def closing_pipeline_job(ctx: JobContext) -> str:
    """Quotes, metrics, estimates, yield rank, price stats and portfolio snapshots."""
    job_start = job_timer()
    pipeline = ClosingPipeline(
        quote_adapter=get_adapter(QUOTE_SOURCE),
        ingestion=IngestionService(orchestrator=_orchestrator(ctx)),
    )
    report = await pipeline.run(ctx.business_date)

    statuses = ", ".join(f"{step.name}={step.status}" for step in report.steps)
    if not report.ok:
        failed = [step.name for step in report.steps if step.status == "failed"]
        raise JobError(
            message=f"Closing pipeline for {ctx.business_date} failed at {', '.join(failed)}: {statuses}",
            error_code="PIPELINE_STEP_FAILED",
            details=report.summary(),
        )
    log_job_success(
        "closing_pipeline",
        statuses,
        business_date=ctx.business_date.isoformat(),
        duration_ms=elapsed_ms(job_start),
    )
    return statuses
