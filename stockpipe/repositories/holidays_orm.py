"""Holiday calendar reads."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from sqlalchemy import select

from stockpipe.database.connection import get_session
from stockpipe.database.orm import HolidaySchedule


async def list_holidays(year: int) -> Sequence[HolidaySchedule]:
    """Market holidays of one calendar year, in date order."""
    async with get_session() as session:
        result = await session.execute(
            select(HolidaySchedule)
            .where(
                HolidaySchedule.date >= date(year, 1, 1),
                HolidaySchedule.date <= date(year, 12, 31),
            )
            .order_by(HolidaySchedule.date)
        )
        return result.scalars().all()


async def is_holiday(day: date) -> bool:
    async with get_session() as session:
        found = await session.scalar(
            select(HolidaySchedule.id).where(HolidaySchedule.date == day)
        )
        return found is not None
