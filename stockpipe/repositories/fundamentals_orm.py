"""Dividend and financial statement reads for the valuation estimators."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence

from sqlalchemy import and_, func, select

from stockpipe.core.logging import get_logger
from stockpipe.database.connection import get_session
from stockpipe.database.orm import Dividend, FinancialStatement


logger = get_logger("repositories.fundamentals_orm")

ANNUAL = ""
QUARTERS = ("Q1", "Q2", "Q3", "Q4")


# =============================================================================
# DIVIDENDS
# =============================================================================

async def list_dividends(code: str, since_year: int | None = None) -> Sequence[Dividend]:
    """Dividend rows of one security, oldest first."""
    async with get_session() as session:
        stmt = (
            select(Dividend)
            .where(Dividend.security_code == code)
            .order_by(Dividend.year, Dividend.quarter)
        )
        if since_year is not None:
            stmt = stmt.where(Dividend.year >= since_year)
        result = await session.execute(stmt)
        return result.scalars().all()


def yearly_dividend_sums(dividends: Sequence[Dividend]) -> dict[int, float]:
    """Total dividend per year.

    A year's annual row wins; years with only period rows sum those.
    """
    annual: dict[int, float] = {}
    periods: dict[int, float] = defaultdict(float)
    for dividend in dividends:
        if dividend.quarter == ANNUAL:
            annual[dividend.year] = float(dividend.sum)
        else:
            periods[dividend.year] += float(dividend.sum)
    return {**periods, **annual}


async def get_latest_annual_dividends(
    codes: Sequence[str] | None = None,
    until_year: int | None = None,
) -> dict[str, Dividend]:
    """Most recent annual dividend row per security."""
    async with get_session() as session:
        latest = select(
            Dividend.security_code.label("security_code"),
            func.max(Dividend.year).label("year"),
        ).where(Dividend.quarter == ANNUAL)
        if codes is not None:
            latest = latest.where(Dividend.security_code.in_(list(codes)))
        if until_year is not None:
            latest = latest.where(Dividend.year <= until_year)
        latest = latest.group_by(Dividend.security_code).subquery()

        result = await session.execute(
            select(Dividend).join(
                latest,
                and_(
                    Dividend.security_code == latest.c.security_code,
                    Dividend.year == latest.c.year,
                    Dividend.quarter == ANNUAL,
                ),
            )
        )
        return {dividend.security_code: dividend for dividend in result.scalars().all()}


# =============================================================================
# FINANCIAL STATEMENTS
# =============================================================================

async def list_quarterly_statements(
    code: str,
    since_year: int | None = None,
) -> Sequence[FinancialStatement]:
    """Quarterly statements of one security, oldest first."""
    async with get_session() as session:
        stmt = (
            select(FinancialStatement)
            .where(
                FinancialStatement.security_code == code,
                FinancialStatement.quarter.in_(QUARTERS),
            )
            .order_by(FinancialStatement.year, FinancialStatement.quarter)
        )
        if since_year is not None:
            stmt = stmt.where(FinancialStatement.year >= since_year)
        result = await session.execute(stmt)
        return result.scalars().all()


def quarterly_eps_by_year(statements: Sequence[FinancialStatement]) -> dict[int, list[float]]:
    eps: dict[int, list[float]] = defaultdict(list)
    for statement in statements:
        eps[statement.year].append(float(statement.earnings_per_share))
    return dict(eps)


def _quarter_index(statement: FinancialStatement) -> int:
    return statement.year * 4 + QUARTERS.index(statement.quarter)


def trailing_four_quarter_eps(statements: Sequence[FinancialStatement]) -> float | None:
    """Sum of the four most recent quarterly EPS.

    None unless the latest four statements are consecutive quarters.
    """
    latest = sorted(statements, key=_quarter_index)[-4:]
    if len(latest) < 4:
        return None
    indexes = [_quarter_index(s) for s in latest]
    if indexes != list(range(indexes[0], indexes[0] + 4)):
        return None
    return sum(float(s.earnings_per_share) for s in latest)
