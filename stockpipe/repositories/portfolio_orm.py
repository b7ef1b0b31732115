"""Portfolio repository using SQLAlchemy ORM.

Reads member lots and writes daily mark-to-market snapshots. A snapshot is
saved in one transaction: the history row, one detail row per valued lot, and
removal of detail rows for lots that are no longer held.

Usage:
    from stockpipe.repositories import portfolio_orm

    lots = await portfolio_orm.list_lots(member_id)
    previous = await portfolio_orm.get_previous_snapshot(member_id, day)
    await portfolio_orm.save_snapshot(snapshot)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from sqlalchemy import delete, select

from stockpipe.analytics.portfolio import Snapshot
from stockpipe.core.logging import get_logger
from stockpipe.database.connection import get_session
from stockpipe.database.orm import DailyMoneyHistory, DailyMoneyHistoryDetail, StockOwnership
from stockpipe.merge.merger import MergeOutcome, upsert_row


logger = get_logger("repositories.portfolio_orm")


async def list_member_ids() -> list[int]:
    """Members holding at least one unsold lot."""
    async with get_session() as session:
        result = await session.execute(
            select(StockOwnership.member_id)
            .where(StockOwnership.is_sold.is_(False))
            .distinct()
            .order_by(StockOwnership.member_id)
        )
        return list(result.scalars().all())


async def list_lots(member_id: int) -> Sequence[StockOwnership]:
    async with get_session() as session:
        result = await session.execute(
            select(StockOwnership)
            .where(StockOwnership.member_id == member_id)
            .order_by(StockOwnership.security_code)
        )
        return result.scalars().all()


async def get_previous_snapshot(member_id: int, day: date) -> DailyMoneyHistory | None:
    """Latest snapshot strictly before ``day``."""
    async with get_session() as session:
        return await session.scalar(
            select(DailyMoneyHistory)
            .where(DailyMoneyHistory.member_id == member_id, DailyMoneyHistory.date < day)
            .order_by(DailyMoneyHistory.date.desc())
            .limit(1)
        )


async def get_snapshot(member_id: int, day: date) -> DailyMoneyHistory | None:
    async with get_session() as session:
        return await session.scalar(
            select(DailyMoneyHistory).where(
                DailyMoneyHistory.member_id == member_id,
                DailyMoneyHistory.date == day,
            )
        )


async def list_snapshot_details(member_id: int, day: date) -> Sequence[DailyMoneyHistoryDetail]:
    async with get_session() as session:
        result = await session.execute(
            select(DailyMoneyHistoryDetail)
            .where(
                DailyMoneyHistoryDetail.member_id == member_id,
                DailyMoneyHistoryDetail.date == day,
            )
            .order_by(DailyMoneyHistoryDetail.security_code)
        )
        return result.scalars().all()


async def save_snapshot(snapshot: Snapshot) -> MergeOutcome:
    """Overwrite the history and detail rows of one (member, date).

    Returns:
        Outcome of the history row; UPDATED if only details changed
    """
    async with get_session() as session:
        outcome = await upsert_row(
            session,
            DailyMoneyHistory,
            {"member_id": snapshot.member_id, "date": snapshot.date},
            snapshot.as_history_fields(),
        )

        details_changed = False
        codes = [lot.security_code for lot in snapshot.lots]
        for lot in snapshot.lots:
            detail = await upsert_row(
                session,
                DailyMoneyHistoryDetail,
                {
                    "member_id": snapshot.member_id,
                    "date": snapshot.date,
                    "security_code": lot.security_code,
                },
                {
                    "share_quantity": lot.share_quantity,
                    "closing_price": lot.closing_price,
                    "market_value": lot.market_value,
                    "cost": lot.cost,
                    "profit_and_loss": lot.profit_and_loss,
                    "profit_and_loss_percentage": lot.profit_and_loss_percentage,
                    "transfer_tax": lot.transfer_tax,
                    "ratio": lot.ratio,
                },
            )
            details_changed = details_changed or detail != MergeOutcome.UNCHANGED

        stale = delete(DailyMoneyHistoryDetail).where(
            DailyMoneyHistoryDetail.member_id == snapshot.member_id,
            DailyMoneyHistoryDetail.date == snapshot.date,
        )
        if codes:
            stale = stale.where(DailyMoneyHistoryDetail.security_code.not_in(codes))
        removed = (await session.execute(stale)).rowcount or 0

        await session.commit()

    if removed:
        logger.debug(f"Removed {removed} stale detail rows for member {snapshot.member_id} on {snapshot.date}")
    if outcome == MergeOutcome.UNCHANGED and (details_changed or removed):
        return MergeOutcome.UPDATED
    return outcome
