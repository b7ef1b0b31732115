"""Canonical store: SQLAlchemy ORM models and async session management."""

from .connection import (
    close_database,
    close_sqlalchemy_engine,
    get_async_database_url,
    get_engine,
    get_session,
    init_database,
    init_models,
    init_sqlalchemy_engine,
    is_connection_error,
)
from .orm import (
    Base,
    DailyMoneyHistory,
    DailyMoneyHistoryDetail,
    DailyQuote,
    DailyStockPriceStats,
    Dividend,
    Estimate,
    FinancialStatement,
    HolidaySchedule,
    JobRun,
    MarketIndex,
    QuoteHistoryRecord,
    Revenue,
    RevenueCursor,
    Security,
    StockOwnership,
    YieldRank,
)


__all__ = [
    "close_database",
    "close_sqlalchemy_engine",
    "get_async_database_url",
    "get_engine",
    "get_session",
    "init_database",
    "init_models",
    "init_sqlalchemy_engine",
    "is_connection_error",
    "Base",
    "DailyMoneyHistory",
    "DailyMoneyHistoryDetail",
    "DailyQuote",
    "DailyStockPriceStats",
    "Dividend",
    "Estimate",
    "FinancialStatement",
    "HolidaySchedule",
    "JobRun",
    "MarketIndex",
    "QuoteHistoryRecord",
    "Revenue",
    "RevenueCursor",
    "Security",
    "StockOwnership",
    "YieldRank",
]
