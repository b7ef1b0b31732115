"""Derived metric tables: all-time extremes, estimates, yield ranks and daily price stats.

Every write is an overwrite on the natural key, so recomputing a day
converges to the same rows.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any

from sqlalchemy import delete, select

from stockpipe.core.logging import get_logger
from stockpipe.database.connection import get_session
from stockpipe.database.orm import DailyStockPriceStats, Estimate, QuoteHistoryRecord, YieldRank
from stockpipe.merge.merger import MergeOutcome, upsert_row


logger = get_logger("repositories.metrics_orm")


# =============================================================================
# ALL-TIME EXTREMES
# =============================================================================

async def get_quote_history_record(code: str) -> QuoteHistoryRecord | None:
    async with get_session() as session:
        return await session.scalar(
            select(QuoteHistoryRecord).where(QuoteHistoryRecord.security_code == code)
        )


# =============================================================================
# ESTIMATES
# =============================================================================

async def upsert_estimate(code: str, day: date, fields: dict[str, Any]) -> MergeOutcome:
    async with get_session() as session:
        outcome = await upsert_row(
            session, Estimate, {"security_code": code, "date": day}, fields
        )
        if outcome != MergeOutcome.UNCHANGED:
            await session.commit()
        return outcome


async def get_estimate(code: str, day: date) -> Estimate | None:
    async with get_session() as session:
        return await session.scalar(
            select(Estimate).where(Estimate.security_code == code, Estimate.date == day)
        )


async def get_estimates_on(day: date) -> dict[str, Estimate]:
    """Estimates of one day keyed by security code."""
    async with get_session() as session:
        result = await session.execute(select(Estimate).where(Estimate.date == day))
        return {estimate.security_code: estimate for estimate in result.scalars().all()}


# =============================================================================
# YIELD RANKS
# =============================================================================

async def replace_yield_ranks(day: date, rows: Iterable[dict[str, Any]]) -> int:
    """Write the yield rows of ``day`` and drop rows of codes no longer ranked.

    Args:
        day: Ranking date
        rows: Dicts with ``security_code``, ``daily_quote_id``, ``dividend_id``
            and ``dividend_yield``

    Returns:
        Number of rows inserted or changed
    """
    changed = 0
    async with get_session() as session:
        codes: list[str] = []
        for row in rows:
            values = dict(row)
            code = values.pop("security_code")
            codes.append(code)
            outcome = await upsert_row(
                session, YieldRank, {"date": day, "security_code": code}, values
            )
            if outcome != MergeOutcome.UNCHANGED:
                changed += 1

        stale = delete(YieldRank).where(YieldRank.date == day)
        if codes:
            stale = stale.where(YieldRank.security_code.not_in(codes))
        result = await session.execute(stale)
        await session.commit()

    if result.rowcount:
        logger.debug(f"Removed {result.rowcount} stale yield ranks for {day}")
    return changed


async def list_yield_ranks(day: date, limit: int | None = None) -> Sequence[YieldRank]:
    """Yield rows of ``day``, highest yield first."""
    async with get_session() as session:
        stmt = (
            select(YieldRank)
            .where(YieldRank.date == day)
            .order_by(YieldRank.dividend_yield.desc(), YieldRank.security_code)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()


# =============================================================================
# DAILY PRICE STATS
# =============================================================================

async def upsert_price_stats(day: date, market: int, stats: dict[str, int]) -> MergeOutcome:
    async with get_session() as session:
        outcome = await upsert_row(
            session, DailyStockPriceStats, {"date": day, "market": market}, stats
        )
        if outcome != MergeOutcome.UNCHANGED:
            await session.commit()
        return outcome


async def get_price_stats(day: date, market: int) -> DailyStockPriceStats | None:
    async with get_session() as session:
        return await session.scalar(
            select(DailyStockPriceStats).where(
                DailyStockPriceStats.date == day,
                DailyStockPriceStats.market == market,
            )
        )
