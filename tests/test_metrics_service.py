"""Tests for the metrics engine against an in-memory store."""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

from stockpipe.core.exceptions import ComputationSkipped
from stockpipe.core.locks import KeyedLock
from stockpipe.database.orm import Dividend, FinancialStatement
from stockpipe.domain.records import SecurityRecord
from stockpipe.merge.merger import UpsertMerger
from stockpipe.repositories import fundamentals_orm, metrics_orm, quotes_orm
from stockpipe.services.metrics import MetricsService, years_before

from factories import add_rows, annual_dividend, quote, quote_series, security


DAY = date(2024, 3, 29)


def _service(**overrides) -> MetricsService:
    return MetricsService(concurrency=1, **overrides)


class TestYearsBefore:
    def test_leap_day(self):
        assert years_before(date(2024, 2, 29), 1) == date(2023, 2, 28)

    def test_plain(self):
        assert years_before(DAY, 10) == date(2014, 3, 29)


class TestRecomputeSecurity:
    """Tests for MetricsService.recompute_security."""

    async def test_moving_averages_and_extremes(self, db):
        await add_rows(
            security("2330", book_value_per_share=Decimal("10")),
            *quote_series("2330", DAY, list(range(1, 31))),
        )

        changed = await _service().recompute_security("2330", DAY)

        assert changed is True
        stored = await quotes_orm.get_quote("2330", DAY)
        assert stored.moving_average_5 == Decimal("28")
        assert stored.moving_average_10 == Decimal("25.5")
        assert stored.moving_average_20 == Decimal("20.5")
        # Fewer than 60 quotes
        assert stored.moving_average_60 == Decimal("0")
        assert stored.price_to_book_ratio == Decimal("3")
        assert stored.maximum_price_in_year == Decimal("30")
        assert stored.maximum_price_in_year_date_on == DAY
        assert stored.minimum_price_in_year == Decimal("1")

    async def test_rerun_is_unchanged(self, db):
        await add_rows(security("2330"), *quote_series("2330", DAY, list(range(1, 31))))
        service = _service()

        await service.recompute_security("2330", DAY)
        assert await service.recompute_security("2330", DAY) is False

    async def test_all_time_record_written(self, db):
        from stockpipe.database.connection import get_session
        from stockpipe.database.orm import QuoteHistoryRecord
        from sqlalchemy import select

        await add_rows(
            security("2330", book_value_per_share=Decimal("10")),
            *quote_series("2330", DAY, [10, 15, 8, 20]),
        )
        await _service().recompute_security("2330", DAY)

        async with get_session() as session:
            record = await session.scalar(
                select(QuoteHistoryRecord).where(QuoteHistoryRecord.security_code == "2330")
            )
        assert record.maximum_price == Decimal("20")
        assert record.maximum_price_date_on == DAY
        assert record.minimum_price == Decimal("8")
        assert record.minimum_price_date_on == DAY - timedelta(days=1)
        assert record.maximum_price_to_book_ratio == Decimal("2")

    async def test_gapped_history_uses_last_rows(self, db):
        """Averages and extremes count quote rows, not calendar days."""
        await add_rows(
            security("2330"),
            *(quote("2330", DAY - timedelta(days=2 * i), 50) for i in range(240)),
        )

        await _service().recompute_security("2330", DAY)

        stored = await quotes_orm.get_quote("2330", DAY)
        assert stored.moving_average_240 == Decimal("50")
        assert stored.moving_average_120 == Decimal("50")
        assert stored.minimum_price_in_year_date_on == DAY - timedelta(days=2 * 239)

    async def test_first_all_time_record_covers_full_history(self, db):
        await add_rows(
            security("2330"),
            quote("2330", date(2010, 1, 4), 500),
            *quote_series("2330", DAY, [50] * 240),
        )

        await _service().recompute_security("2330", DAY)

        record = await metrics_orm.get_quote_history_record("2330")
        assert record.maximum_price == Decimal("500")
        assert record.maximum_price_date_on == date(2010, 1, 4)
        stored = await quotes_orm.get_quote("2330", DAY)
        assert stored.maximum_price_in_year == Decimal("50")

    async def test_no_quote_skips(self, db):
        with pytest.raises(ComputationSkipped) as exc_info:
            await _service().recompute_security("2330", DAY)
        assert exc_info.value.code == "no_quote"


class TestComputeEstimate:
    """Tests for MetricsService.compute_estimate."""

    async def test_insufficient_history_skips(self, db):
        await add_rows(security("2330"), *quote_series("2330", DAY, [10.0] * 10))

        with pytest.raises(ComputationSkipped) as exc_info:
            await _service().compute_estimate("2330", DAY)
        assert exc_info.value.code == "insufficient_history"
        assert await metrics_orm.get_estimate("2330", DAY) is None

    async def test_waits_for_security_lock(self, db):
        """An estimate does not read inputs while a merge holds the security."""
        await add_rows(security("2330"), *quote_series("2330", DAY, list(range(1, 31))))
        locks = KeyedLock("test")
        service = _service(locks=locks)

        async with locks.hold("2330"):
            task = asyncio.create_task(service.compute_estimate("2330", DAY))
            await asyncio.sleep(0.05)
            assert not task.done()
            assert await metrics_orm.get_estimate("2330", DAY) is None

        await task
        assert await metrics_orm.get_estimate("2330", DAY) is not None

    async def test_price_only_band(self, db):
        """Without fundamentals only the price estimator contributes."""
        await add_rows(security("2330"), *quote_series("2330", DAY, list(range(1, 31))))

        bands = await _service().compute_estimate("2330", DAY)

        assert bands.price.cheap == pytest.approx(6.8)
        assert bands.combined.fair == pytest.approx(15.5 * 0.2)
        stored = await metrics_orm.get_estimate("2330", DAY)
        assert float(stored.fair) == pytest.approx(3.1)
        assert stored.year_count == 1

    async def test_fundamentals_feed_estimators(self, db):
        statements = [
            FinancialStatement(security_code="2330", year=2023, quarter=q, earnings_per_share=Decimal("1"))
            for q in ("Q1", "Q2", "Q3", "Q4")
        ]
        await add_rows(
            security("2330", book_value_per_share=Decimal("10")),
            *quote_series("2330", DAY, list(range(1, 31))),
            annual_dividend("2330", 2022, 2, payout_ratio=Decimal("50")),
            annual_dividend("2330", 2023, 4, payout_ratio=Decimal("50")),
            *statements,
        )

        bands = await _service().compute_estimate("2330", DAY)

        # Average dividend 3 -> 45 / 60 / 90
        assert bands.dividend.fair == pytest.approx(60.0)
        # Trailing EPS 4 x 50% payout -> 2 -> 30 / 40 / 60
        assert bands.eps.fair == pytest.approx(40.0)

    async def test_security_trailing_eps_preferred(self, db):
        await add_rows(
            security("2330", last_four_eps=Decimal("10")),
            *quote_series("2330", DAY, list(range(1, 31))),
        )

        bands = await _service().compute_estimate("2330", DAY)

        # 10 x default 70% payout x 20
        assert bands.eps.fair == pytest.approx(140.0)


def _statement(year: int, quarter: str, eps) -> FinancialStatement:
    return FinancialStatement(
        security_code="2330", year=year, quarter=quarter, earnings_per_share=Decimal(str(eps))
    )


class TestTrailingFourQuarterEps:
    def test_consecutive_across_years(self):
        statements = [
            _statement(2022, "Q4", 1),
            _statement(2023, "Q1", 2),
            _statement(2023, "Q2", 3),
            _statement(2023, "Q3", 4),
            _statement(2023, "Q4", 5),
        ]
        assert fundamentals_orm.trailing_four_quarter_eps(statements) == pytest.approx(14.0)

    def test_missing_quarter(self):
        """A gap in the latest four quarters gives no trailing EPS."""
        statements = [
            _statement(2022, "Q4", 1),
            _statement(2023, "Q1", 2),
            _statement(2023, "Q2", 3),
            _statement(2023, "Q4", 5),
        ]
        assert fundamentals_orm.trailing_four_quarter_eps(statements) is None

    def test_fewer_than_four(self):
        assert fundamentals_orm.trailing_four_quarter_eps([_statement(2023, "Q1", 2)]) is None

    async def test_gap_disables_eps_estimator(self, db):
        await add_rows(
            security("2330"),
            *quote_series("2330", DAY, list(range(1, 31))),
            _statement(2022, "Q4", 1),
            _statement(2023, "Q1", 1),
            _statement(2023, "Q2", 1),
            _statement(2023, "Q4", 1),
        )

        bands = await _service().compute_estimate("2330", DAY)

        assert bands.eps.fair == 0


class TestYieldRanks:
    """Tests for MetricsService.compute_yield_ranks."""

    async def test_rank_and_stale_removal(self, db):
        await add_rows(
            security("1101"),
            security("2317"),
            security("2330"),
            security("2412"),
            *quote_series("1101", DAY, [40.0] * 252),
            quote("2317", DAY, 100),
            quote("2330", DAY, 50),
            # Too old for the 30 day window
            quote("2412", DAY - timedelta(days=45), 120),
            annual_dividend("1101", 2023, 2),
            annual_dividend("2317", 2022, 3),
            annual_dividend("2317", 2023, 5),
            annual_dividend("2330", 2023, 4),
            annual_dividend("2412", 2023, 5),
            # Declared after the ranking date, ignored
            annual_dividend("2330", 2025, 40),
        )
        service = _service(yield_quote_max_age_days=30)

        ranked = await service.compute_yield_ranks(DAY)

        assert [(r.security_code, r.rank) for r in ranked] == [("2330", 1), ("1101", 2), ("2317", 2)]
        stored = await metrics_orm.list_yield_ranks(DAY)
        assert [row.security_code for row in stored] == ["2330", "1101", "2317"]
        assert float(stored[0].dividend_yield) == pytest.approx(0.08)

        latest_quote = (await quotes_orm.get_latest_quotes(["1101"]))["1101"]
        assert stored[1].daily_quote_id == latest_quote.id

        # Suspending a security drops its row on the next run
        await UpsertMerger().merge_one(SecurityRecord(code="2330", suspended=True))
        await service.compute_yield_ranks(DAY)
        stored = await metrics_orm.list_yield_ranks(DAY)
        assert [row.security_code for row in stored] == ["1101", "2317"]

    async def test_period_dividends_not_ranked(self, db):
        await add_rows(
            security("2330"),
            quote("2330", DAY, 50),
            Dividend(security_code="2330", year=2023, quarter="Q4", cash_dividend=Decimal("3"), sum=Decimal("3")),
        )
        assert await _service().compute_yield_ranks(DAY) == []


class TestPriceStats:
    """Tests for MetricsService.compute_price_stats."""

    async def test_per_market_rows(self, db):
        await add_rows(
            security("2330", market_id=2),
            security("6488", market_id=4),
            quote("2330", DAY, 100, change=1),
            quote("6488", DAY, 200, change=-1),
        )

        result = await _service().compute_price_stats(DAY)

        assert sorted(result) == [0, 2, 4]
        assert result[0]["total"] == 2
        assert result[2]["up"] == 1
        assert result[4]["down"] == 1
        stored = await metrics_orm.get_price_stats(DAY, 0)
        assert stored.total == 2

    async def test_no_quotes_writes_nothing(self, db):
        assert await _service().compute_price_stats(DAY) == {}
        assert await metrics_orm.get_price_stats(DAY, 0) is None


class TestRunForDate:
    async def test_full_day(self, db):
        await add_rows(
            security("2330", book_value_per_share=Decimal("20")),
            security("2317"),
            *quote_series("2330", DAY, [float(100 + i % 7) for i in range(252)]),
            quote("2317", DAY, 100),
            annual_dividend("2330", 2023, 5),
        )

        report = await _service().run_for_date(DAY)

        assert report.recomputed == 2
        assert report.estimates == 1
        assert [code for code, _ in report.skipped] == ["2317"]
        assert report.yield_ranks == 1
        assert sorted(report.price_stats) == [0, 2, 4]
        assert not report.failed

        stored = await quotes_orm.get_quote("2330", DAY)
        assert stored.moving_average_240 > 0
