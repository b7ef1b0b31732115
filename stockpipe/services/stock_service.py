"""Stock service: the operations exposed to other services.

Writes go through the upsert merger, so an update through this service and
a scheduled ingestion of the same security serialize on the security lock.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from stockpipe.core.logging import get_logger
from stockpipe.domain.records import SecurityRecord
from stockpipe.merge.merger import MergeOutcome, UpsertMerger
from stockpipe.repositories import holidays_orm, quotes_orm
from stockpipe.schemas.stocks import CurrentQuote, Holiday


logger = get_logger("services.stock_service")


class StockService:
    def __init__(self, merger: UpsertMerger | None = None):
        self._merger = merger or UpsertMerger()

    async def update_security_info(
        self,
        code: str,
        name: str,
        market_id: int,
        industry_id: int | None,
        book_value_per_share: Decimal | float,
        suspended: bool,
    ) -> MergeOutcome:
        """Create or overwrite the master data of one security.

        Raises:
            ValidationError: Malformed security code
            ConflictError: Concurrent writes could not be reconciled
        """
        record = SecurityRecord(
            code=code,
            name=name,
            market_id=market_id,
            industry_id=industry_id,
            book_value_per_share=Decimal(str(book_value_per_share)),
            suspended=suspended,
        )
        outcome = await self._merger.merge_one(record)
        logger.info(f"Security {code.strip().upper()} info {outcome.value}")
        return outcome

    async def fetch_current_quotes(self, codes: Sequence[str]) -> list[CurrentQuote]:
        """Latest stored quote per requested code; unknown codes are omitted."""
        codes = list(dict.fromkeys(c.strip().upper() for c in codes if c.strip()))
        if not codes:
            return []
        quotes = await quotes_orm.get_latest_quotes(codes)
        return [
            CurrentQuote(
                code=code,
                price=quotes[code].close,
                change=quotes[code].change,
                change_range=quotes[code].change_range,
            )
            for code in codes
            if code in quotes
        ]

    async def fetch_holiday_schedule(self, year: int) -> list[Holiday]:
        return [Holiday.model_validate(row) for row in await holidays_orm.list_holidays(year)]
