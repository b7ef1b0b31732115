"""Row builders for tests that seed the store directly."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from stockpipe.database.connection import get_session
from stockpipe.database.orm import DailyQuote, Dividend, Security, StockOwnership


async def add_rows(*rows) -> None:
    """Insert ORM rows directly, bypassing the merger."""
    async with get_session() as session:
        session.add_all(rows)
        await session.commit()


def security(code: str, market_id: int = 2, **fields) -> Security:
    return Security(code=code, name=fields.pop("name", code), market_id=market_id, **fields)


def quote(code: str, day: date, close, change=0, **fields) -> DailyQuote:
    return DailyQuote(
        security_code=code,
        date=day,
        close=Decimal(str(close)),
        change=Decimal(str(change)),
        **fields,
    )


def quote_series(code: str, end: date, closes: list) -> list[DailyQuote]:
    """One quote per calendar day ending at ``end``, oldest first."""
    start = end - timedelta(days=len(closes) - 1)
    return [quote(code, start + timedelta(days=i), close) for i, close in enumerate(closes)]


def annual_dividend(code: str, year: int, cash, **fields) -> Dividend:
    cash = Decimal(str(cash))
    return Dividend(
        security_code=code,
        year=year,
        quarter="",
        cash_dividend=cash,
        sum=fields.pop("sum", cash),
        **fields,
    )


def lot(member_id: int, code: str, shares: int, cost, is_sold: bool = False) -> StockOwnership:
    return StockOwnership(
        member_id=member_id,
        security_code=code,
        share_quantity=shares,
        holding_cost=Decimal(str(cost)),
        is_sold=is_sold,
    )
