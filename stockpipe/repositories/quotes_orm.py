"""Daily quote repository using SQLAlchemy ORM.

Reads quote history for the metrics engine and writes the derived columns
(moving averages, trailing-year extremes, P/B) back onto a quote row.

Usage:
    from stockpipe.repositories import quotes_orm

    history = await quotes_orm.get_quote_history("2330", until=day, since=start)
    await quotes_orm.update_quote_metrics("2330", day, {"moving_average_5": 101.2})
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Any

from sqlalchemy import and_, func, select

from stockpipe.core.exceptions import NotFoundError
from stockpipe.core.logging import get_logger
from stockpipe.database.connection import get_session
from stockpipe.database.orm import DailyQuote
from stockpipe.merge.merger import utcnow
from stockpipe.merge.policies import overwrite_fields


logger = get_logger("repositories.quotes_orm")


async def get_quote(code: str, day: date) -> DailyQuote | None:
    """Get the quote of one security on one day."""
    async with get_session() as session:
        return await session.scalar(
            select(DailyQuote).where(
                DailyQuote.security_code == code,
                DailyQuote.date == day,
            )
        )


async def get_quote_history(
    code: str,
    until: date,
    since: date | None = None,
) -> Sequence[DailyQuote]:
    """Quotes of one security with ``since <= date <= until``, oldest first."""
    async with get_session() as session:
        stmt = (
            select(DailyQuote)
            .where(DailyQuote.security_code == code, DailyQuote.date <= until)
            .order_by(DailyQuote.date)
        )
        if since is not None:
            stmt = stmt.where(DailyQuote.date >= since)
        result = await session.execute(stmt)
        return result.scalars().all()


async def get_recent_quotes(code: str, until: date, limit: int) -> list[DailyQuote]:
    """The last ``limit`` quotes of one security up to ``until``, oldest first."""
    async with get_session() as session:
        result = await session.execute(
            select(DailyQuote)
            .where(DailyQuote.security_code == code, DailyQuote.date <= until)
            .order_by(DailyQuote.date.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))


async def list_quotes_on(day: date) -> Sequence[DailyQuote]:
    """All quotes of one trading day ordered by code."""
    async with get_session() as session:
        result = await session.execute(
            select(DailyQuote).where(DailyQuote.date == day).order_by(DailyQuote.security_code)
        )
        return result.scalars().all()


async def get_latest_quotes(
    codes: Sequence[str] | None = None,
    on_or_before: date | None = None,
    since: date | None = None,
) -> dict[str, DailyQuote]:
    """Latest quote per security.

    Args:
        codes: Restrict to these codes (None = every security)
        on_or_before: Ignore quotes after this date
        since: Ignore quotes before this date

    Returns:
        Dict mapping security code to its latest quote
    """
    async with get_session() as session:
        latest = select(
            DailyQuote.security_code.label("security_code"),
            func.max(DailyQuote.date).label("date"),
        )
        if codes is not None:
            latest = latest.where(DailyQuote.security_code.in_(list(codes)))
        if on_or_before is not None:
            latest = latest.where(DailyQuote.date <= on_or_before)
        if since is not None:
            latest = latest.where(DailyQuote.date >= since)
        latest = latest.group_by(DailyQuote.security_code).subquery()

        result = await session.execute(
            select(DailyQuote).join(
                latest,
                and_(
                    DailyQuote.security_code == latest.c.security_code,
                    DailyQuote.date == latest.c.date,
                ),
            )
        )
        return {quote.security_code: quote for quote in result.scalars().all()}


async def update_quote_metrics(code: str, day: date, values: dict[str, Any]) -> bool:
    """Overwrite derived columns on one quote row.

    Returns:
        True if any column changed

    Raises:
        NotFoundError: No quote for (code, day)
    """
    async with get_session() as session:
        quote = await session.scalar(
            select(DailyQuote).where(
                DailyQuote.security_code == code,
                DailyQuote.date == day,
            )
        )
        if quote is None:
            raise NotFoundError(message=f"No quote for {code} on {day}")
        changed = overwrite_fields(quote, values, utcnow())
        if changed:
            await session.commit()
        return changed
