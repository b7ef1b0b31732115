"""Tests for the closing pipeline."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from stockpipe.domain.records import EntityKind, QuoteRecord
from stockpipe.repositories import quotes_orm
from stockpipe.services.fetch_orchestrator import FetchOrchestrator
from stockpipe.services.ingestion import IngestionService
from stockpipe.services.metrics import MetricsService
from stockpipe.services.pipeline import STEP_FAILED, STEP_OK, STEP_SKIPPED, ClosingPipeline
from stockpipe.services.portfolio import PortfolioService
from stockpipe.sources.static import StaticSourceAdapter

from factories import add_rows, quote, security


DAY = date(2024, 3, 29)
STEPS = ["quotes", "metrics", "estimates", "yield_rank", "price_stats", "portfolio"]


def _ingestion() -> IngestionService:
    return IngestionService(
        orchestrator=FetchOrchestrator(concurrency=1, base_delay=0, max_attempts=1, use_circuit_breaker=False)
    )


def _mock_metrics() -> MagicMock:
    metrics = MagicMock(spec=MetricsService)
    metrics.recompute_securities = AsyncMock()
    metrics.compute_estimates = AsyncMock()
    metrics.compute_yield_ranks = AsyncMock(return_value=[])
    metrics.compute_price_stats = AsyncMock(return_value={0: {}})
    return metrics


def _mock_portfolio() -> MagicMock:
    portfolio = MagicMock(spec=PortfolioService)
    portfolio.snapshot = AsyncMock(return_value=MagicMock(summary=MagicMock(return_value={"members": 0})))
    return portfolio


class TestClosingPipeline:
    """Tests for ClosingPipeline.run."""

    async def test_runs_every_step_in_order(self, db):
        await add_rows(security("2330"), security("2317"))
        adapter = StaticSourceAdapter(
            "daily_quotes",
            EntityKind.DAILY_QUOTE,
            {
                "2330": [QuoteRecord(security_code="2330", date=DAY, close=Decimal("780"), change=Decimal("5"))],
                "2317": [QuoteRecord(security_code="2317", date=DAY, close=Decimal("150"), change=Decimal("-1"))],
            },
        )
        pipeline = ClosingPipeline(
            quote_adapter=adapter,
            ingestion=_ingestion(),
            metrics=MetricsService(concurrency=1),
            portfolio=PortfolioService(concurrency=1),
        )

        report = await pipeline.run(DAY)

        assert [step.name for step in report.steps] == STEPS
        assert all(step.status == STEP_OK for step in report.steps)
        assert report.ok
        assert len(await quotes_orm.list_quotes_on(DAY)) == 2
        assert report.step("price_stats").detail == {"markets": [0, 2, 4]}

    async def test_quote_outage_fails_quotes_step(self, db):
        await add_rows(security("2330"))
        adapter = StaticSourceAdapter("daily_quotes", EntityKind.DAILY_QUOTE, {})
        pipeline = ClosingPipeline(
            quote_adapter=adapter, ingestion=_ingestion(), metrics=_mock_metrics(), portfolio=_mock_portfolio()
        )

        report = await pipeline.run(DAY)

        assert report.step("quotes").status == STEP_FAILED
        assert "no quotes fetched" in report.step("quotes").error
        assert report.step("metrics").status == STEP_SKIPPED
        assert not report.ok

    async def test_no_quote_source_skips_dependent_steps(self, db):
        pipeline = ClosingPipeline(quote_adapter=None, metrics=_mock_metrics(), portfolio=_mock_portfolio())

        report = await pipeline.run(DAY)

        assert report.step("quotes").status == STEP_SKIPPED
        assert report.step("metrics").status == STEP_SKIPPED
        assert report.step("estimates").status == STEP_SKIPPED
        assert report.step("yield_rank").status == STEP_OK
        assert report.ok

    async def test_failed_step_does_not_stop_the_rest(self, db):
        await add_rows(quote("2330", DAY, 100))
        metrics = _mock_metrics()
        metrics.compute_yield_ranks = AsyncMock(side_effect=RuntimeError("boom"))
        portfolio = _mock_portfolio()

        report = await ClosingPipeline(metrics=metrics, portfolio=portfolio).run(DAY)

        assert report.step("yield_rank").status == STEP_FAILED
        assert "boom" in report.step("yield_rank").error
        assert report.step("price_stats").status == STEP_OK
        assert report.step("portfolio").status == STEP_OK
        metrics.recompute_securities.assert_awaited_once()
        assert not report.ok

    async def test_store_outage_aborts(self, db):
        await add_rows(quote("2330", DAY, 100))
        metrics = _mock_metrics()
        metrics.compute_price_stats = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, ConnectionRefusedError())
        )
        portfolio = _mock_portfolio()

        with pytest.raises(OperationalError):
            await ClosingPipeline(metrics=metrics, portfolio=portfolio).run(DAY)

        portfolio.snapshot.assert_not_awaited()
