"""SQLAlchemy ORM models for the canonical market data store.

Every natural key is a store-level unique constraint. Mutable entities carry
``created_time`` (set once on insert) and ``updated_time`` (bumped only when a
merge actually changes a field).

Usage:
    from stockpipe.database.orm import Security, DailyQuote
    from stockpipe.database.connection import get_session

    async with get_session() as session:
        quote = await session.scalar(
            select(DailyQuote).where(DailyQuote.security_code == "2330")
        )
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)


# Naming convention for constraints and indexes (deterministic names)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Prices, ratios and per-share values
PRICE = Numeric(18, 4)
# Yields are small fractions
RATIO = Numeric(18, 6)
# Money totals for members
MONEY = Numeric(20, 4)

ZERO = Decimal("0")


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TimestampMixin:
    """created_time / updated_time columns managed by the merge policies."""

    created_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


# =============================================================================
# SOURCE ENTITIES
# =============================================================================


class Security(TimestampMixin, Base):
    """One tradable instrument. Never hard-deleted; suspension is a flag."""
    __tablename__ = "securities"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    market_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    industry_id: Mapped[int | None] = mapped_column(Integer)
    suspended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    issued_shares: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    book_value_per_share: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    last_one_eps: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    last_four_eps: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    foreign_holding_shares: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    foreign_holding_percentage: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    weight: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)

    __table_args__ = (
        Index("idx_securities_market", "market_id"),
    )


class DailyQuote(TimestampMixin, Base):
    """Closing quote of one security on one trading day, plus derived metrics."""
    __tablename__ = "daily_quotes"

    id: Mapped[int] = mapped_column(primary_key=True)
    security_code: Mapped[str] = mapped_column(String(16), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    open: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    high: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    low: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    close: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    volume: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    trade_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    transactions: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    change: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    change_range: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    last_best_bid_price: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    last_best_bid_volume: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_best_ask_price: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    last_best_ask_volume: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    price_earning_ratio: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)

    # Derived by the metrics engine; 0 means not computed
    moving_average_5: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    moving_average_10: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    moving_average_20: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    moving_average_60: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    moving_average_120: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    moving_average_240: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    maximum_price_in_year: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    maximum_price_in_year_date_on: Mapped[date | None] = mapped_column(Date)
    minimum_price_in_year: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    minimum_price_in_year_date_on: Mapped[date | None] = mapped_column(Date)
    average_price_in_year: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    maximum_price_to_book_ratio_in_year: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    maximum_price_to_book_ratio_in_year_date_on: Mapped[date | None] = mapped_column(Date)
    minimum_price_to_book_ratio_in_year: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    minimum_price_to_book_ratio_in_year_date_on: Mapped[date | None] = mapped_column(Date)
    price_to_book_ratio: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)

    __table_args__ = (
        UniqueConstraint("security_code", "date", name="uq_daily_quotes_security_date"),
        Index("idx_daily_quotes_date", "date"),
    )


class QuoteHistoryRecord(TimestampMixin, Base):
    """All-time price and P/B extremes for a security."""
    __tablename__ = "quote_history_records"

    id: Mapped[int] = mapped_column(primary_key=True)
    security_code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    maximum_price: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    maximum_price_date_on: Mapped[date | None] = mapped_column(Date)
    minimum_price: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    minimum_price_date_on: Mapped[date | None] = mapped_column(Date)
    maximum_price_to_book_ratio: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    maximum_price_to_book_ratio_date_on: Mapped[date | None] = mapped_column(Date)
    minimum_price_to_book_ratio: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    minimum_price_to_book_ratio_date_on: Mapped[date | None] = mapped_column(Date)


class Dividend(TimestampMixin, Base):
    """Dividend declaration per (security, fiscal year, period).

    ``quarter`` is "" for the annual declaration and "Q1".."Q4" or "H1"/"H2"
    for interim ones.
    """
    __tablename__ = "dividends"

    id: Mapped[int] = mapped_column(primary_key=True)
    security_code: Mapped[str] = mapped_column(String(16), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[str] = mapped_column(String(2), nullable=False, default="")
    cash_dividend: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    stock_dividend: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    sum: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    earnings_cash: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    capital_reserve_cash: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    earnings_stock: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    capital_reserve_stock: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    ex_dividend_date1: Mapped[date | None] = mapped_column(Date)
    ex_dividend_date2: Mapped[date | None] = mapped_column(Date)
    payable_date1: Mapped[date | None] = mapped_column(Date)
    payable_date2: Mapped[date | None] = mapped_column(Date)
    payout_ratio_cash: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    payout_ratio_stock: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    payout_ratio: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)

    __table_args__ = (
        UniqueConstraint("security_code", "year", "quarter", name="uq_dividends_security_period"),
    )


class FinancialStatement(TimestampMixin, Base):
    """Income statement and ratio figures per (security, year, quarter)."""
    __tablename__ = "financial_statements"

    id: Mapped[int] = mapped_column(primary_key=True)
    security_code: Mapped[str] = mapped_column(String(16), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[str] = mapped_column(String(2), nullable=False, default="")
    gross_profit: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    operating_profit_margin: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    pre_tax_income: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    net_income: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    net_asset_value_per_share: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    sales_per_share: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    earnings_per_share: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    profit_before_tax: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    return_on_equity: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    return_on_assets: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)

    __table_args__ = (
        UniqueConstraint("security_code", "year", "quarter", name="uq_financial_statements_security_period"),
    )


class Revenue(TimestampMixin, Base):
    """Monthly revenue; ``month`` is encoded as yyyymm."""
    __tablename__ = "revenues"

    id: Mapped[int] = mapped_column(primary_key=True)
    security_code: Mapped[str] = mapped_column(String(16), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_revenue: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_month_revenue: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_year_this_month_revenue: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    month_over_month_percentage: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    year_over_year_percentage: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    cumulative_revenue_current_year: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    cumulative_revenue_previous_year: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    cumulative_revenue_percentage: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)

    __table_args__ = (
        UniqueConstraint("security_code", "month", name="uq_revenues_security_month"),
    )


class RevenueCursor(TimestampMixin, Base):
    """Last processed revenue month per security."""
    __tablename__ = "revenue_cursors"

    id: Mapped[int] = mapped_column(primary_key=True)
    security_code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)


class MarketIndex(TimestampMixin, Base):
    """Daily close of a market index or sector category."""
    __tablename__ = "market_indices"

    id: Mapped[int] = mapped_column(primary_key=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    close: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    change: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    change_range: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    trade_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    transactions: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("date", "category", name="uq_market_indices_date_category"),
    )


class HolidaySchedule(TimestampMixin, Base):
    """Market holiday calendar (reference data)."""
    __tablename__ = "holiday_schedules"

    id: Mapped[int] = mapped_column(primary_key=True)
    date: Mapped[date] = mapped_column(Date, unique=True, nullable=False)
    reason: Mapped[str] = mapped_column(String(200), nullable=False, default="")


# =============================================================================
# DERIVED ENTITIES
# =============================================================================


class Estimate(TimestampMixin, Base):
    """Valuation band of a security on a date."""
    __tablename__ = "estimates"

    id: Mapped[int] = mapped_column(primary_key=True)
    security_code: Mapped[str] = mapped_column(String(16), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    price: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    percentage: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    cheap: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    fair: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    expensive: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    price_cheap: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    price_fair: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    price_expensive: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    dividend_cheap: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    dividend_fair: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    dividend_expensive: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    eps_cheap: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    eps_fair: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    eps_expensive: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    pbr_cheap: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    pbr_fair: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    pbr_expensive: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    per_cheap: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    per_fair: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    per_expensive: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    year_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("security_code", "date", name="uq_estimates_security_date"),
        Index("idx_estimates_date", "date"),
    )


class YieldRank(TimestampMixin, Base):
    """Dividend yield of a security on a date with its source rows."""
    __tablename__ = "yield_ranks"

    id: Mapped[int] = mapped_column(primary_key=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    security_code: Mapped[str] = mapped_column(String(16), nullable=False)
    daily_quote_id: Mapped[int] = mapped_column(Integer, nullable=False)
    dividend_id: Mapped[int] = mapped_column(Integer, nullable=False)
    dividend_yield: Mapped[Decimal] = mapped_column(RATIO, nullable=False, default=ZERO)

    __table_args__ = (
        UniqueConstraint("date", "security_code", name="uq_yield_ranks_date_security"),
    )


class DailyStockPriceStats(TimestampMixin, Base):
    """Market breadth counts per date and market (0 = all markets)."""
    __tablename__ = "daily_stock_price_stats"

    id: Mapped[int] = mapped_column(primary_key=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    market: Mapped[int] = mapped_column(Integer, nullable=False)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    undervalued: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fair_valued: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overvalued: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    highly_overvalued: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    above_moving_average_5: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    below_moving_average_5: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    above_moving_average_20: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    below_moving_average_20: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    above_moving_average_60: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    below_moving_average_60: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    above_moving_average_120: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    below_moving_average_120: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    above_moving_average_240: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    below_moving_average_240: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    up: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    down: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unchanged: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("date", "market", name="uq_daily_stock_price_stats_date_market"),
    )


# =============================================================================
# MEMBERS & PORTFOLIO
# =============================================================================


class StockOwnership(TimestampMixin, Base):
    """A member's lot in one security. ``holding_cost`` is stored negative."""
    __tablename__ = "stock_ownerships"

    id: Mapped[int] = mapped_column(primary_key=True)
    member_id: Mapped[int] = mapped_column(Integer, nullable=False)
    security_code: Mapped[str] = mapped_column(String(16), nullable=False)
    share_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    holding_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    share_price_average: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    is_sold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cumulate_dividends_cash: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    cumulate_dividends_stock: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    cumulate_dividends_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)

    __table_args__ = (
        UniqueConstraint("member_id", "security_code", name="uq_stock_ownerships_member_security"),
    )


class DailyMoneyHistory(TimestampMixin, Base):
    """Per-member daily mark-to-market snapshot."""
    __tablename__ = "daily_money_histories"

    id: Mapped[int] = mapped_column(primary_key=True)
    member_id: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    market_value: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    profit_and_loss: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    profit_and_loss_percentage: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    transfer_tax: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    previous_day_market_value: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    previous_day_profit_and_loss: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    previous_day_profit_and_loss_percentage: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)

    __table_args__ = (
        UniqueConstraint("member_id", "date", name="uq_daily_money_histories_member_date"),
    )


class DailyMoneyHistoryDetail(TimestampMixin, Base):
    """Per-lot breakdown of a member's daily snapshot."""
    __tablename__ = "daily_money_history_details"

    id: Mapped[int] = mapped_column(primary_key=True)
    member_id: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    security_code: Mapped[str] = mapped_column(String(16), nullable=False)
    share_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    closing_price: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    market_value: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    profit_and_loss: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    profit_and_loss_percentage: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)
    transfer_tax: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    ratio: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=ZERO)

    __table_args__ = (
        UniqueConstraint(
            "member_id", "date", "security_code",
            name="uq_daily_money_history_details_member_date_security",
        ),
    )


# =============================================================================
# SCHEDULER
# =============================================================================


class JobRun(Base):
    """Execution record of a job for one business date."""
    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    business_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duration_ms: Mapped[int | None] = mapped_column(Integer)
    summary: Mapped[str | None] = mapped_column(Text)
    error: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("job_name", "business_date", name="uq_job_runs_job_date"),
    )
