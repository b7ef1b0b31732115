"""Portfolio snapshot engine.

Values every member's open lots at the close of a business date and stores
one ``DailyMoneyHistory`` row per member plus one detail row per lot.
Snapshots overwrite in place, so re-running a date is safe.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from stockpipe.analytics.portfolio import Lot, PreviousSnapshot, Snapshot, build_snapshot
from stockpipe.core.config import settings
from stockpipe.core.logging import get_logger
from stockpipe.database.connection import is_connection_error
from stockpipe.repositories import portfolio_orm, quotes_orm


logger = get_logger("services.portfolio")


@dataclass
class PortfolioReport:
    business_date: date
    members: int = 0
    missing_prices: dict[int, list[str]] = field(default_factory=dict)
    failed: list[tuple[int, str]] = field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        return {
            "business_date": self.business_date.isoformat(),
            "members": self.members,
            "missing_prices": sum(len(codes) for codes in self.missing_prices.values()),
            "failed": len(self.failed),
        }


class PortfolioService:
    """Builds and stores daily member snapshots."""

    def __init__(
        self,
        transfer_tax_rate: float | Decimal | None = None,
        concurrency: int | None = None,
    ):
        rate = settings.transfer_tax_rate if transfer_tax_rate is None else transfer_tax_rate
        self._transfer_tax_rate = Decimal(str(rate))
        self._concurrency = max(1, concurrency or settings.fetch_concurrency)

    async def snapshot_member(self, member_id: int, day: date) -> Snapshot:
        """Value one member's lots on ``day`` and store the snapshot."""
        lots = [
            Lot(
                security_code=row.security_code,
                share_quantity=row.share_quantity,
                holding_cost=row.holding_cost,
                is_sold=row.is_sold,
            )
            for row in await portfolio_orm.list_lots(member_id)
        ]
        codes = [lot.security_code for lot in lots if lot.is_open]
        quotes = await quotes_orm.get_latest_quotes(codes, on_or_before=day) if codes else {}

        previous_row = await portfolio_orm.get_previous_snapshot(member_id, day)
        previous = None
        if previous_row is not None:
            previous = PreviousSnapshot(
                date=previous_row.date,
                market_value=previous_row.market_value,
                profit_and_loss=previous_row.profit_and_loss,
                profit_and_loss_percentage=previous_row.profit_and_loss_percentage,
            )

        snapshot = build_snapshot(
            member_id,
            day,
            lots,
            {code: quote.close for code, quote in quotes.items()},
            previous=previous,
            transfer_tax_rate=self._transfer_tax_rate,
        )
        await portfolio_orm.save_snapshot(snapshot)

        if snapshot.missing_prices:
            logger.warning(
                f"Member {member_id} on {day}: no close for {', '.join(snapshot.missing_prices)}, valued at 0"
            )
        return snapshot

    async def snapshot(self, day: date) -> PortfolioReport:
        """Snapshot every member holding an open lot."""
        report = PortfolioReport(business_date=day)
        semaphore = asyncio.Semaphore(self._concurrency)

        async def one(member_id: int) -> None:
            async with semaphore:
                try:
                    snapshot = await self.snapshot_member(member_id, day)
                except Exception as e:
                    if is_connection_error(e):
                        raise
                    report.failed.append((member_id, str(e)))
                    logger.error(f"Snapshot failed for member {member_id} on {day}: {e}")
                    return
            report.members += 1
            if snapshot.missing_prices:
                report.missing_prices[member_id] = list(snapshot.missing_prices)

        await asyncio.gather(*(one(m) for m in await portfolio_orm.list_member_ids()))

        logger.info(
            f"Portfolio snapshots for {day}: {report.members} members, {len(report.failed)} failed",
            extra={"extra_fields": report.summary()},
        )
        return report
