"""Upsert merger: applies normalized record batches to the canonical store.

Every record is merged in its own transaction with a select-then-write on the
natural key, so re-applying a batch converges to the same state whatever the
storage engine. The store's unique constraints remain the last line of
defence: a concurrent insert of the same key surfaces as ``IntegrityError``,
the record is re-read and merged once more, and a second violation is
reported as a ``ConflictError``.

Usage:
    merger = UpsertMerger()
    report = await merger.merge(fetch_report.records, kind=EntityKind.DAILY_QUOTE)
    if report.rejected:
        ...
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stockpipe.core.exceptions import ConflictError, ValidationError
from stockpipe.core.locks import KeyedLock, security_locks
from stockpipe.core.logging import get_logger
from stockpipe.database.connection import get_session
from stockpipe.database.orm import (
    DailyQuote,
    Dividend,
    FinancialStatement,
    HolidaySchedule,
    MarketIndex,
    QuoteHistoryRecord,
    Revenue,
    RevenueCursor,
    Security,
)
from stockpipe.domain.records import EntityKind, NormalizedRecord

from .policies import (
    Extreme,
    cursor_allows,
    merge_extreme,
    new_row,
    overwrite_fields,
    validate_record,
)


logger = get_logger("merge")

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class MergeOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class EntityPolicy:
    """How one entity kind is stored and reconciled."""

    model: type
    cursor_gated: bool = False


ENTITY_POLICIES: dict[EntityKind, EntityPolicy] = {
    EntityKind.SECURITY: EntityPolicy(Security),
    EntityKind.DAILY_QUOTE: EntityPolicy(DailyQuote),
    EntityKind.DIVIDEND: EntityPolicy(Dividend),
    EntityKind.FINANCIAL_STATEMENT: EntityPolicy(FinancialStatement),
    EntityKind.REVENUE: EntityPolicy(Revenue, cursor_gated=True),
    EntityKind.MARKET_INDEX: EntityPolicy(MarketIndex),
    EntityKind.HOLIDAY: EntityPolicy(HolidaySchedule),
}


@dataclass
class MergeReport:
    """Per-batch merge outcome."""

    kind: EntityKind | None = None
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: list[tuple[tuple, str]] = field(default_factory=list)
    rejected: list[tuple[tuple, str]] = field(default_factory=list)
    conflicts: list[tuple[tuple, str]] = field(default_factory=list)
    changed_codes: set[str] = field(default_factory=set)

    @property
    def applied(self) -> int:
        return self.inserted + self.updated

    @property
    def total(self) -> int:
        return (
            self.applied
            + self.unchanged
            + len(self.skipped)
            + len(self.rejected)
            + len(self.conflicts)
        )

    def add(self, outcome: MergeOutcome, key: tuple, code: str | None, reason: str = "") -> None:
        if outcome == MergeOutcome.INSERTED:
            self.inserted += 1
        elif outcome == MergeOutcome.UPDATED:
            self.updated += 1
        elif outcome == MergeOutcome.UNCHANGED:
            self.unchanged += 1
        else:
            self.skipped.append((key, reason))
        if code and outcome in (MergeOutcome.INSERTED, MergeOutcome.UPDATED):
            self.changed_codes.add(code)

    def extend(self, other: "MergeReport") -> None:
        self.inserted += other.inserted
        self.updated += other.updated
        self.unchanged += other.unchanged
        self.skipped.extend(other.skipped)
        self.rejected.extend(other.rejected)
        self.conflicts.extend(other.conflicts)
        self.changed_codes |= other.changed_codes

    def summary(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value if self.kind else None,
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": len(self.skipped),
            "rejected": len(self.rejected),
            "conflicts": len(self.conflicts),
        }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def upsert_row(
    session: AsyncSession,
    model: type,
    key: dict[str, Any],
    values: dict[str, Any],
    now: datetime | None = None,
) -> MergeOutcome:
    """Overwrite-on-key write of one row inside the caller's transaction.

    Used for derived tables; the caller commits.
    """
    now = now or utcnow()
    row = await session.scalar(
        select(model).where(*(getattr(model, name) == value for name, value in key.items()))
    )
    if row is None:
        session.add(new_row(model, key, values, now))
        return MergeOutcome.INSERTED
    if overwrite_fields(row, values, now):
        return MergeOutcome.UPDATED
    return MergeOutcome.UNCHANGED


def _security_code(key: dict[str, Any]) -> str | None:
    return key.get("security_code") or key.get("code")


class UpsertMerger:
    """Reconciles normalized records into the canonical store."""

    def __init__(
        self,
        session_factory: SessionFactory = get_session,
        locks: KeyedLock = security_locks,
        concurrency: int = 1,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._locks = locks
        self._concurrency = max(1, concurrency)
        self._clock = clock

    # =========================================================================
    # BATCH API
    # =========================================================================

    async def merge(
        self,
        records: Iterable[NormalizedRecord],
        kind: EntityKind | None = None,
    ) -> MergeReport:
        """Merge a batch of records of one entity kind.

        Records are grouped by security; groups run concurrently up to the
        configured concurrency, records inside a group run in order. Cursor
        gated records are applied in ascending month order.
        """
        batch = list(records)
        if kind is None and batch:
            kind = batch[0].kind
        report = MergeReport(kind=kind)
        if not batch:
            return report

        groups: dict[str | None, list[tuple[NormalizedRecord, dict[str, Any]]]] = defaultdict(list)
        for record in batch:
            try:
                key = validate_record(record, kind)
            except ValidationError as e:
                report.rejected.append((record.natural_key(), e.message))
                logger.warning(f"Rejected record: {e.message}")
                continue
            groups[_security_code(key)].append((record, key))

        policy = ENTITY_POLICIES[kind]
        if policy.cursor_gated:
            for items in groups.values():
                items.sort(key=lambda item: item[1]["month"])

        semaphore = asyncio.Semaphore(self._concurrency)

        async def merge_group(code: str | None, items: list) -> MergeReport:
            async with semaphore:
                return await self._merge_group(policy, code, items, kind)

        for group_report in await asyncio.gather(
            *(merge_group(code, items) for code, items in groups.items())
        ):
            report.extend(group_report)

        log = logger.warning if report.rejected or report.conflicts else logger.info
        log(
            f"Merged {len(batch)} {kind.value} records: "
            f"{report.inserted} inserted, {report.updated} updated, {report.unchanged} unchanged, "
            f"{len(report.skipped)} skipped, {len(report.rejected)} rejected, "
            f"{len(report.conflicts)} conflicts",
            extra={"extra_fields": report.summary()},
        )
        return report

    async def merge_one(self, record: NormalizedRecord) -> MergeOutcome:
        """Merge a single record, raising instead of reporting.

        Raises:
            ValidationError: Invalid natural key
            ConflictError: Unresolvable store-level constraint violation
        """
        key = validate_record(record)
        policy = ENTITY_POLICIES[record.kind]
        code = _security_code(key)
        async with self._lock(code):
            return await self._apply_with_retry(policy, key, record.payload())

    async def _merge_group(
        self,
        policy: EntityPolicy,
        code: str | None,
        items: Sequence[tuple[NormalizedRecord, dict[str, Any]]],
        kind: EntityKind,
    ) -> MergeReport:
        report = MergeReport(kind=kind)
        async with self._lock(code):
            for record, key in items:
                natural_key = tuple(key.values())
                try:
                    outcome = await self._apply_with_retry(policy, key, record.payload())
                except ConflictError as e:
                    report.conflicts.append((natural_key, e.message))
                    logger.error(f"Merge conflict: {e.message}")
                    continue
                except ValidationError as e:
                    report.rejected.append((natural_key, e.message))
                    logger.warning(f"Rejected record: {e.message}")
                    continue
                reason = "not after revenue cursor" if outcome == MergeOutcome.SKIPPED else ""
                report.add(outcome, natural_key, code, reason)
        return report

    def _lock(self, code: str | None) -> AbstractAsyncContextManager:
        if code is None:
            return nullcontext()
        return self._locks.hold(code)

    # =========================================================================
    # PER-RECORD TRANSACTION
    # =========================================================================

    async def _apply_with_retry(
        self, policy: EntityPolicy, key: dict[str, Any], values: dict[str, Any]
    ) -> MergeOutcome:
        try:
            return await self._apply(policy, key, values)
        except IntegrityError:
            # Another writer inserted the same key first; merge into its row
            logger.debug(f"Retrying {policy.model.__tablename__} {key} after concurrent insert")

        try:
            return await self._apply(policy, key, values)
        except IntegrityError as e:
            raise ConflictError(
                message=f"{policy.model.__tablename__} {tuple(key.values())}: {e.orig}",
                details={"table": policy.model.__tablename__, "key": [str(v) for v in key.values()]},
            ) from e

    async def _apply(
        self, policy: EntityPolicy, key: dict[str, Any], values: dict[str, Any]
    ) -> MergeOutcome:
        model = policy.model
        async with self._session_factory() as session:
            cursor: RevenueCursor | None = None
            if policy.cursor_gated:
                cursor = await session.scalar(
                    select(RevenueCursor).where(RevenueCursor.security_code == key["security_code"])
                )
                if not cursor_allows(cursor.month if cursor else None, key["month"]):
                    return MergeOutcome.SKIPPED

            row = await session.scalar(
                select(model).where(*(getattr(model, name) == value for name, value in key.items()))
            )
            now = self._clock()
            if row is None:
                session.add(new_row(model, key, values, now))
                outcome = MergeOutcome.INSERTED
            elif overwrite_fields(row, values, now):
                outcome = MergeOutcome.UPDATED
            else:
                outcome = MergeOutcome.UNCHANGED

            if policy.cursor_gated:
                # Cursor moves in the same transaction as the revenue row
                if cursor is None:
                    session.add(
                        new_row(RevenueCursor, {"security_code": key["security_code"]}, {"month": key["month"]}, now)
                    )
                else:
                    overwrite_fields(cursor, {"month": key["month"]}, now)

            if outcome != MergeOutcome.UNCHANGED or policy.cursor_gated:
                await session.commit()
            return outcome

    # =========================================================================
    # MONOTONIC EXTREMES
    # =========================================================================

    async def merge_history_extremes(
        self,
        code: str,
        points: Iterable[tuple[date, Decimal, Decimal]],
    ) -> bool:
        """Fold (date, close, price_to_book) points into the all-time record.

        Only strict improvements replace a stored extreme; equal values keep
        the earlier date, so the result does not depend on point order.
        Callers hold the security lock.

        Returns:
            True if the stored record changed
        """
        points = list(points)
        if not points:
            return False

        for attempt in (1, 2):
            try:
                return await self._merge_history_extremes(code, points)
            except IntegrityError as e:
                if attempt == 2:
                    raise ConflictError(
                        message=f"quote_history_records ({code},): {e.orig}",
                        details={"table": "quote_history_records", "key": [code]},
                    ) from e
        return False

    async def _merge_history_extremes(
        self, code: str, points: list[tuple[date, Decimal, Decimal]]
    ) -> bool:
        async with self._session_factory() as session:
            record = await session.scalar(
                select(QuoteHistoryRecord).where(QuoteHistoryRecord.security_code == code)
            )
            is_new = record is None
            if is_new:
                record = QuoteHistoryRecord(security_code=code)

            max_price = Extreme(record.maximum_price or Decimal(0), record.maximum_price_date_on)
            min_price = Extreme(record.minimum_price or Decimal(0), record.minimum_price_date_on)
            max_pbr = Extreme(record.maximum_price_to_book_ratio or Decimal(0), record.maximum_price_to_book_ratio_date_on)
            min_pbr = Extreme(record.minimum_price_to_book_ratio or Decimal(0), record.minimum_price_to_book_ratio_date_on)

            for day, close, pbr in points:
                max_price = merge_extreme(max_price, Extreme(close, day), higher=True)
                min_price = merge_extreme(min_price, Extreme(close, day), higher=False)
                max_pbr = merge_extreme(max_pbr, Extreme(pbr, day), higher=True)
                min_pbr = merge_extreme(min_pbr, Extreme(pbr, day), higher=False)

            values = {
                "maximum_price": max_price.value,
                "maximum_price_date_on": max_price.date,
                "minimum_price": min_price.value,
                "minimum_price_date_on": min_price.date,
                "maximum_price_to_book_ratio": max_pbr.value,
                "maximum_price_to_book_ratio_date_on": max_pbr.date,
                "minimum_price_to_book_ratio": min_pbr.value,
                "minimum_price_to_book_ratio_date_on": min_pbr.date,
            }
            now = self._clock()
            if is_new:
                session.add(new_row(QuoteHistoryRecord, {"security_code": code}, values, now))
                changed = True
            else:
                changed = overwrite_fields(record, values, now)

            if changed:
                await session.commit()
            return changed
