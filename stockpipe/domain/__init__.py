"""Domain models shared by sources, merger and services."""

from .records import (
    RECORD_TYPES,
    DividendRecord,
    EntityKind,
    FinancialStatementRecord,
    HolidayRecord,
    MarketIndexRecord,
    NormalizedRecord,
    QuoteRecord,
    RevenueRecord,
    SecurityRecord,
)


__all__ = [
    "RECORD_TYPES",
    "DividendRecord",
    "EntityKind",
    "FinancialStatementRecord",
    "HolidayRecord",
    "MarketIndexRecord",
    "NormalizedRecord",
    "QuoteRecord",
    "RevenueRecord",
    "SecurityRecord",
]
