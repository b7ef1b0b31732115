"""Tests for StockService against an in-memory store."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from stockpipe.core.exceptions import ValidationError
from stockpipe.database.orm import HolidaySchedule
from stockpipe.merge.merger import MergeOutcome
from stockpipe.repositories import securities_orm
from stockpipe.services.stock_service import StockService

from factories import add_rows, quote


DAY = date(2024, 3, 29)


class TestUpdateSecurityInfo:
    """Tests for StockService.update_security_info."""

    async def test_insert_then_update(self, db):
        service = StockService()

        first = await service.update_security_info("2330", "TSMC", 2, 24, Decimal("115.86"), False)
        second = await service.update_security_info("2330", "TSMC", 2, 24, Decimal("115.86"), True)

        assert first == MergeOutcome.INSERTED
        assert second == MergeOutcome.UPDATED
        stored = await securities_orm.get_security("2330")
        assert stored.suspended is True
        assert stored.book_value_per_share == Decimal("115.86")

    async def test_same_values_unchanged(self, db):
        service = StockService()
        await service.update_security_info("2330", "TSMC", 2, None, 10, False)

        assert await service.update_security_info("2330", "TSMC", 2, None, 10.0, False) == MergeOutcome.UNCHANGED

    async def test_invalid_code(self, db):
        with pytest.raises(ValidationError):
            await StockService().update_security_info("bad code", "X", 2, None, 0, False)


class TestFetchCurrentQuotes:
    async def test_latest_quote_in_request_order(self, db):
        await add_rows(
            quote("2330", DAY - timedelta(days=1), 770, change=-3),
            quote("2330", DAY, 780, change=10, change_range=Decimal("1.3")),
            quote("2317", DAY, 150, change=1),
        )

        quotes = await StockService().fetch_current_quotes(["2317", "9999", "2330"])

        assert [q.code for q in quotes] == ["2317", "2330"]
        assert quotes[1].price == Decimal("780")
        assert quotes[1].change_range == Decimal("1.3")

    async def test_empty_request(self, db):
        assert await StockService().fetch_current_quotes([" "]) == []


class TestFetchHolidaySchedule:
    async def test_one_year_in_date_order(self, db):
        await add_rows(
            HolidaySchedule(date=date(2024, 2, 28), reason="Peace Memorial Day"),
            HolidaySchedule(date=date(2024, 2, 8), reason="Lunar New Year"),
            HolidaySchedule(date=date(2023, 12, 31), reason=""),
        )

        holidays = await StockService().fetch_holiday_schedule(2024)

        assert [h.date for h in holidays] == [date(2024, 2, 8), date(2024, 2, 28)]
