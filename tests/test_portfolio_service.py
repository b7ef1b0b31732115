"""Tests for daily member snapshots against an in-memory store."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import update

from stockpipe.database.connection import get_session
from stockpipe.database.orm import StockOwnership
from stockpipe.repositories import portfolio_orm
from stockpipe.services.portfolio import PortfolioService

from factories import add_rows, lot, quote, security


DAY = date(2024, 3, 29)
NEXT_DAY = DAY + timedelta(days=1)


def _service() -> PortfolioService:
    return PortfolioService(transfer_tax_rate=Decimal("0.003"), concurrency=1)


class TestPortfolioService:
    """Tests for PortfolioService."""

    async def test_snapshot_and_next_day_previous_values(self, db):
        """Day one gains 2000; day two carries day one's values as previous."""
        await add_rows(
            security("2330"),
            lot(7, "2330", 1000, -10000),
            quote("2330", DAY, 12),
        )
        service = _service()

        report = await service.snapshot(DAY)

        assert report.members == 1
        assert not report.failed
        stored = await portfolio_orm.get_snapshot(7, DAY)
        assert stored.market_value == Decimal("12000")
        assert stored.profit_and_loss == Decimal("2000")
        assert stored.profit_and_loss_percentage == Decimal("20")
        assert stored.transfer_tax == Decimal("36")
        assert stored.previous_day_market_value == Decimal("0")

        await add_rows(quote("2330", NEXT_DAY, 13))
        await service.snapshot(NEXT_DAY)

        following = await portfolio_orm.get_snapshot(7, NEXT_DAY)
        assert following.market_value == Decimal("13000")
        assert following.previous_day_market_value == Decimal("12000")
        assert following.previous_day_profit_and_loss == Decimal("2000")

    async def test_latest_close_used_when_no_quote_today(self, db):
        await add_rows(
            lot(7, "2330", 1000, -10000),
            quote("2330", DAY - timedelta(days=3), 11),
        )

        snapshot = await _service().snapshot_member(7, DAY)

        assert snapshot.market_value == Decimal("11000")
        assert snapshot.missing_prices == ()

    async def test_missing_price_reported(self, db):
        await add_rows(
            lot(7, "2330", 1000, -10000),
            lot(7, "2317", 100, -1000),
            quote("2330", DAY, 12),
        )

        report = await _service().snapshot(DAY)

        assert report.missing_prices == {7: ["2317"]}
        details = await portfolio_orm.list_snapshot_details(7, DAY)
        assert [d.security_code for d in details] == ["2317", "2330"]
        assert details[0].market_value == Decimal("0")

    async def test_rerun_overwrites_and_drops_sold_lots(self, db):
        """Re-running a day replaces its rows; sold lots lose their detail row."""
        await add_rows(
            lot(7, "2330", 1000, -10000),
            lot(7, "2317", 100, -1000),
            quote("2330", DAY, 12),
            quote("2317", DAY, 20),
        )
        service = _service()
        await service.snapshot(DAY)

        async with get_session() as session:
            await session.execute(
                update(StockOwnership)
                .where(StockOwnership.security_code == "2317")
                .values(is_sold=True)
            )
            await session.commit()
        await service.snapshot(DAY)

        details = await portfolio_orm.list_snapshot_details(7, DAY)
        assert [d.security_code for d in details] == ["2330"]
        assert details[0].ratio == Decimal("100")
        stored = await portfolio_orm.get_snapshot(7, DAY)
        assert stored.market_value == Decimal("12000")

    async def test_members_without_open_lots_skipped(self, db):
        await add_rows(lot(8, "2330", 1000, -10000, is_sold=True), quote("2330", DAY, 12))

        report = await _service().snapshot(DAY)

        assert report.members == 0
        assert await portfolio_orm.get_snapshot(8, DAY) is None
