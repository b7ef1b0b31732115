"""Metrics engine: derived per-security and cross-sectional analytics.

Reads the canonical store, runs the pure computations in
``stockpipe.analytics`` and writes the derived tables:

- per security and day: moving averages, trailing-year extremes and P/B on
  the quote row, plus the all-time ``QuoteHistoryRecord``
- per security and day: the valuation ``Estimate``
- per day: ``YieldRank`` rows and ``DailyStockPriceStats`` per market

Per-security recompute holds the security lock, so it never interleaves
with a quote merge of the same security. A missing input never fails the
whole run: ``ComputationSkipped`` and per-security errors are collected in
the report. Store connection errors propagate.

Usage:
    service = MetricsService()
    report = await service.run_for_date(date(2024, 3, 29))
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from stockpipe.analytics.breadth import BREADTH_WINDOWS, STATS_MARKETS, BreadthRow, price_stats
from stockpipe.analytics.indicators import (
    YEAR_WINDOW,
    history_frame,
    moving_averages,
    price_to_book,
    year_extremes,
)
from stockpipe.analytics.valuation import Band, ValuationBands, valuation_bands
from stockpipe.analytics.yields import RankedYield, YieldCandidate, rank_yields
from stockpipe.core.config import settings
from stockpipe.core.exceptions import ComputationSkipped
from stockpipe.core.locks import KeyedLock, security_locks
from stockpipe.core.logging import get_logger
from stockpipe.database.connection import is_connection_error
from stockpipe.merge.merger import UpsertMerger
from stockpipe.repositories import (
    fundamentals_orm,
    metrics_orm,
    quotes_orm,
    securities_orm,
)


logger = get_logger("services.metrics")

# Fewer quotes than this in the lookback window skips the estimate
MIN_ESTIMATE_HISTORY = 20

PBR_SCALE = Decimal("0.0001")


def _history_row(quote: Any, day: date, pbr: float) -> dict[str, Any]:
    return {
        "date": quote.date,
        "close": quote.close,
        "price_to_book_ratio": pbr if quote.date == day else quote.price_to_book_ratio,
    }


def years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year - years, day=28)


@dataclass
class MetricsReport:
    """Outcome of one metrics run."""

    business_date: date
    recomputed: int = 0
    estimates: int = 0
    yield_ranks: int = 0
    price_stats: dict[int, dict[str, int]] = field(default_factory=dict)
    skipped: list[tuple[str, str]] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        return {
            "business_date": self.business_date.isoformat(),
            "recomputed": self.recomputed,
            "estimates": self.estimates,
            "yield_ranks": self.yield_ranks,
            "price_stats_markets": sorted(self.price_stats),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
        }


class MetricsService:
    """Computes and stores derived analytics for a business date."""

    def __init__(
        self,
        merger: UpsertMerger | None = None,
        locks: KeyedLock = security_locks,
        lookback_years: int | None = None,
        yield_quote_max_age_days: int | None = None,
        concurrency: int | None = None,
    ):
        self._merger = merger or UpsertMerger(locks=locks)
        self._locks = locks
        self._lookback_years = lookback_years or settings.valuation_lookback_years
        self._yield_max_age = yield_quote_max_age_days or settings.yield_quote_max_age_days
        self._concurrency = max(1, concurrency or settings.fetch_concurrency)

    # =========================================================================
    # PER SECURITY
    # =========================================================================

    async def recompute_security(self, code: str, day: date) -> bool:
        """Write moving averages, year extremes and P/B onto the quote of ``day``.

        Also folds the loaded history into the all-time extremes record.

        Returns:
            True if the quote row changed

        Raises:
            ComputationSkipped: No quote for ``day``
        """
        async with self._locks.hold(code):
            quote = await quotes_orm.get_quote(code, day)
            if quote is None:
                raise ComputationSkipped("no_quote", f"no quote for {code} on {day}")

            security = await securities_orm.get_security(code)
            book_value = security.book_value_per_share if security else None
            pbr = price_to_book(quote.close, book_value)

            recent = await quotes_orm.get_recent_quotes(code, until=day, limit=YEAR_WINDOW)
            rows = [_history_row(q, day, pbr) for q in recent]
            frame = history_frame(rows)

            values: dict[str, Any] = {
                f"moving_average_{window}": average
                for window, average in moving_averages(frame["close"]).items()
            }
            values.update(year_extremes(frame).as_quote_fields())
            values["price_to_book_ratio"] = pbr

            changed = await quotes_orm.update_quote_metrics(code, day, values)

            # First record of a security starts from its whole history
            if await metrics_orm.get_quote_history_record(code) is None:
                rows = [_history_row(q, day, pbr) for q in await quotes_orm.get_quote_history(code, until=day)]
            points = [
                (
                    row["date"],
                    Decimal(row["close"]),
                    Decimal(str(row["price_to_book_ratio"])).quantize(PBR_SCALE),
                )
                for row in rows
            ]
            await self._merger.merge_history_extremes(code, points)

        logger.debug(f"Recomputed {code} on {day} (changed={changed})")
        return changed

    async def compute_estimate(self, code: str, day: date) -> ValuationBands:
        """Compute and store the valuation band of ``code`` on ``day``.

        Missing fundamentals give zero estimator bands. Holds the security
        lock while reading inputs and writing the band.

        Raises:
            ComputationSkipped: No quote on ``day`` or too little price history
        """
        async with self._locks.hold(code):
            return await self._compute_estimate(code, day)

    async def _compute_estimate(self, code: str, day: date) -> ValuationBands:
        quote = await quotes_orm.get_quote(code, day)
        if quote is None or quote.close <= 0:
            raise ComputationSkipped("no_quote", f"no quote for {code} on {day}")

        since = years_before(day, self._lookback_years)
        history = await quotes_orm.get_quote_history(code, until=day, since=since)
        if len(history) < MIN_ESTIMATE_HISTORY:
            raise ComputationSkipped(
                "insufficient_history",
                f"{code} has {len(history)} quotes since {since}, need {MIN_ESTIMATE_HISTORY}",
            )

        security = await securities_orm.get_security(code)
        dividends = await fundamentals_orm.list_dividends(code, since_year=since.year)
        statements = await fundamentals_orm.list_quarterly_statements(code, since_year=since.year)

        trailing_eps: float | None = None
        if security is not None and security.last_four_eps > 0:
            trailing_eps = float(security.last_four_eps)
        else:
            trailing_eps = fundamentals_orm.trailing_four_quarter_eps(statements)

        bands = valuation_bands(
            close=float(quote.close),
            closes=[float(q.close) for q in history],
            yearly_dividends=fundamentals_orm.yearly_dividend_sums(dividends),
            trailing_four_quarter_eps=trailing_eps,
            payout_ratios=[float(d.payout_ratio) for d in dividends],
            historical_pbr=[float(q.price_to_book_ratio) for q in history],
            book_value_per_share=float(security.book_value_per_share) if security else None,
            historical_per=[float(q.price_earning_ratio) for q in history],
            quarterly_eps=fundamentals_orm.quarterly_eps_by_year(statements),
            year_count=len({q.date.year for q in history}),
        )
        await metrics_orm.upsert_estimate(code, day, bands.as_estimate_fields())
        return bands

    # =========================================================================
    # CROSS-SECTIONAL
    # =========================================================================

    async def compute_yield_ranks(self, day: date) -> list[RankedYield]:
        """Rank every active security by dividend yield on ``day``.

        A security needs a quote within the max age window and an annual
        dividend row. The stored rows carry the quote and dividend ids they
        were computed from.
        """
        codes = await securities_orm.list_security_codes()
        quotes = await quotes_orm.get_latest_quotes(
            codes,
            on_or_before=day,
            since=day - timedelta(days=self._yield_max_age),
        )
        dividends = await fundamentals_orm.get_latest_annual_dividends(codes, until_year=day.year)

        candidates = [
            YieldCandidate(
                security_code=code,
                daily_quote_id=quotes[code].id,
                dividend_id=dividends[code].id,
                cash_dividend=float(dividends[code].cash_dividend),
                close=float(quotes[code].close),
            )
            for code in codes
            if code in quotes and code in dividends
        ]
        ranked = rank_yields(candidates)
        await metrics_orm.replace_yield_ranks(
            day,
            (
                {
                    "security_code": r.security_code,
                    "daily_quote_id": r.daily_quote_id,
                    "dividend_id": r.dividend_id,
                    "dividend_yield": r.dividend_yield,
                }
                for r in ranked
            ),
        )
        logger.info(f"Ranked {len(ranked)} securities by yield on {day}")
        return ranked

    async def compute_price_stats(self, day: date) -> dict[int, dict[str, int]]:
        """Write market breadth for every stats market; empty on a day without quotes."""
        quotes = await quotes_orm.list_quotes_on(day)
        if not quotes:
            logger.info(f"No quotes on {day}, price stats not written")
            return {}

        markets = {
            s.code: s.market_id
            for s in await securities_orm.list_securities(include_suspended=True)
        }
        estimates = await metrics_orm.get_estimates_on(day)

        rows = []
        for quote in quotes:
            estimate = estimates.get(quote.security_code)
            rows.append(
                BreadthRow(
                    security_code=quote.security_code,
                    market_id=markets.get(quote.security_code, 0),
                    close=float(quote.close),
                    change=float(quote.change),
                    moving_averages={
                        window: float(getattr(quote, f"moving_average_{window}"))
                        for window in BREADTH_WINDOWS
                    },
                    band=(
                        Band(float(estimate.cheap), float(estimate.fair), float(estimate.expensive))
                        if estimate is not None
                        else None
                    ),
                )
            )

        result: dict[int, dict[str, int]] = {}
        for market in STATS_MARKETS:
            stats = price_stats(rows, market)
            await metrics_orm.upsert_price_stats(day, market, stats)
            result[market] = stats
        return result

    # =========================================================================
    # BATCH
    # =========================================================================

    async def recompute_securities(
        self, day: date, codes: Sequence[str], report: MetricsReport | None = None
    ) -> MetricsReport:
        report = report or MetricsReport(business_date=day)

        async def one(code: str) -> None:
            if await self._guard(report, code, self.recompute_security(code, day)):
                report.recomputed += 1

        await self._fan_out(codes, one)
        return report

    async def compute_estimates(
        self, day: date, codes: Sequence[str], report: MetricsReport | None = None
    ) -> MetricsReport:
        report = report or MetricsReport(business_date=day)

        async def one(code: str) -> None:
            if await self._guard(report, code, self.compute_estimate(code, day)):
                report.estimates += 1

        await self._fan_out(codes, one)
        return report

    async def run_for_date(self, day: date, codes: Sequence[str] | None = None) -> MetricsReport:
        """Recompute everything derived for ``day``.

        Args:
            day: Business date
            codes: Securities to recompute (default: every security quoted on ``day``)
        """
        if codes is None:
            codes = [q.security_code for q in await quotes_orm.list_quotes_on(day)]

        report = MetricsReport(business_date=day)
        await self.recompute_securities(day, codes, report)
        await self.compute_estimates(day, codes, report)
        report.yield_ranks = len(await self.compute_yield_ranks(day))
        report.price_stats = await self.compute_price_stats(day)

        log = logger.warning if report.failed else logger.info
        log(
            f"Metrics for {day}: {report.recomputed} recomputed, {report.estimates} estimates, "
            f"{report.yield_ranks} yield ranks, {len(report.skipped)} skipped, {len(report.failed)} failed",
            extra={"extra_fields": report.summary()},
        )
        return report

    async def _fan_out(self, codes: Sequence[str], func: Callable[[str], Awaitable[None]]) -> None:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def bounded(code: str) -> None:
            async with semaphore:
                await func(code)

        await asyncio.gather(*(bounded(code) for code in dict.fromkeys(codes)))

    @staticmethod
    async def _guard(report: MetricsReport, code: str, work: Awaitable[Any]) -> bool:
        """Run one per-security computation, recording skips and failures."""
        try:
            await work
            return True
        except ComputationSkipped as e:
            report.skipped.append((code, e.reason))
            logger.debug(f"Skipped {code}: {e.reason}")
        except Exception as e:
            if is_connection_error(e):
                raise
            report.failed.append((code, str(e)))
            logger.error(f"Metrics failed for {code}: {e}")
        return False
