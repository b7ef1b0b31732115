"""Normalized records produced by source adapters.

Each record describes one row of a canonical entity by its natural key plus
the fields the source supplied. A field left as ``None`` means "not provided"
and never overwrites a stored value.

Key fields are deliberately permissive here: a malformed key is a merge-time
``ValidationError`` that is reported in the merge report, not a parse failure
that hides the record.
"""

from __future__ import annotations

from datetime import date as DateType
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


class EntityKind(str, Enum):
    """Canonical entity kinds accepted by the merger."""

    SECURITY = "security"
    DAILY_QUOTE = "daily_quote"
    DIVIDEND = "dividend"
    FINANCIAL_STATEMENT = "financial_statement"
    REVENUE = "revenue"
    MARKET_INDEX = "market_index"
    HOLIDAY = "holiday"


class NormalizedRecord(BaseModel):
    """Base class of all normalized records."""

    model_config = ConfigDict(frozen=True)

    kind: ClassVar[EntityKind]
    key_fields: ClassVar[tuple[str, ...]]

    def natural_key(self) -> tuple[Any, ...]:
        """Natural key values in declaration order."""
        return tuple(getattr(self, name) for name in self.key_fields)

    def payload(self) -> dict[str, Any]:
        """Non-key fields the source actually supplied."""
        return self.model_dump(exclude=set(self.key_fields), exclude_none=True)


class SecurityRecord(NormalizedRecord):
    """Security master data."""

    kind: ClassVar[EntityKind] = EntityKind.SECURITY
    key_fields: ClassVar[tuple[str, ...]] = ("code",)

    code: str | None = None
    name: str | None = None
    market_id: int | None = None
    industry_id: int | None = None
    suspended: bool | None = None
    issued_shares: int | None = Field(default=None, ge=0)
    book_value_per_share: Decimal | None = None
    last_one_eps: Decimal | None = None
    last_four_eps: Decimal | None = None
    foreign_holding_shares: int | None = Field(default=None, ge=0)
    foreign_holding_percentage: Decimal | None = None
    weight: Decimal | None = None


class QuoteRecord(NormalizedRecord):
    """Closing quote of one trading day."""

    kind: ClassVar[EntityKind] = EntityKind.DAILY_QUOTE
    key_fields: ClassVar[tuple[str, ...]] = ("security_code", "date")

    security_code: str | None = None
    date: DateType | None = None
    open: Decimal | None = None
    high: Decimal | None = None
    low: Decimal | None = None
    close: Decimal | None = None
    volume: int | None = None
    trade_value: int | None = None
    transactions: int | None = None
    change: Decimal | None = None
    change_range: Decimal | None = None
    last_best_bid_price: Decimal | None = None
    last_best_bid_volume: int | None = None
    last_best_ask_price: Decimal | None = None
    last_best_ask_volume: int | None = None
    price_earning_ratio: Decimal | None = None


class DividendRecord(NormalizedRecord):
    """Dividend declaration; quarter "" is the annual one."""

    kind: ClassVar[EntityKind] = EntityKind.DIVIDEND
    key_fields: ClassVar[tuple[str, ...]] = ("security_code", "year", "quarter")

    security_code: str | None = None
    year: int | None = None
    quarter: str | None = ""
    cash_dividend: Decimal | None = None
    stock_dividend: Decimal | None = None
    sum: Decimal | None = None
    earnings_cash: Decimal | None = None
    capital_reserve_cash: Decimal | None = None
    earnings_stock: Decimal | None = None
    capital_reserve_stock: Decimal | None = None
    ex_dividend_date1: DateType | None = None
    ex_dividend_date2: DateType | None = None
    payable_date1: DateType | None = None
    payable_date2: DateType | None = None
    payout_ratio_cash: Decimal | None = None
    payout_ratio_stock: Decimal | None = None
    payout_ratio: Decimal | None = None


class FinancialStatementRecord(NormalizedRecord):
    kind: ClassVar[EntityKind] = EntityKind.FINANCIAL_STATEMENT
    key_fields: ClassVar[tuple[str, ...]] = ("security_code", "year", "quarter")

    security_code: str | None = None
    year: int | None = None
    quarter: str | None = ""
    gross_profit: Decimal | None = None
    operating_profit_margin: Decimal | None = None
    pre_tax_income: Decimal | None = None
    net_income: Decimal | None = None
    net_asset_value_per_share: Decimal | None = None
    sales_per_share: Decimal | None = None
    earnings_per_share: Decimal | None = None
    profit_before_tax: Decimal | None = None
    return_on_equity: Decimal | None = None
    return_on_assets: Decimal | None = None


class RevenueRecord(NormalizedRecord):
    """Monthly revenue; ``month`` is yyyymm (e.g. 202403)."""

    kind: ClassVar[EntityKind] = EntityKind.REVENUE
    key_fields: ClassVar[tuple[str, ...]] = ("security_code", "month")

    security_code: str | None = None
    month: int | None = None
    monthly_revenue: int | None = None
    last_month_revenue: int | None = None
    last_year_this_month_revenue: int | None = None
    month_over_month_percentage: Decimal | None = None
    year_over_year_percentage: Decimal | None = None
    cumulative_revenue_current_year: int | None = None
    cumulative_revenue_previous_year: int | None = None
    cumulative_revenue_percentage: Decimal | None = None


class MarketIndexRecord(NormalizedRecord):
    kind: ClassVar[EntityKind] = EntityKind.MARKET_INDEX
    key_fields: ClassVar[tuple[str, ...]] = ("date", "category")

    date: DateType | None = None
    category: str | None = None
    close: Decimal | None = None
    change: Decimal | None = None
    change_range: Decimal | None = None
    trade_value: int | None = None
    transactions: int | None = None


class HolidayRecord(NormalizedRecord):
    kind: ClassVar[EntityKind] = EntityKind.HOLIDAY
    key_fields: ClassVar[tuple[str, ...]] = ("date",)

    date: DateType | None = None
    reason: str | None = None


RECORD_TYPES: dict[EntityKind, type[NormalizedRecord]] = {
    EntityKind.SECURITY: SecurityRecord,
    EntityKind.DAILY_QUOTE: QuoteRecord,
    EntityKind.DIVIDEND: DividendRecord,
    EntityKind.FINANCIAL_STATEMENT: FinancialStatementRecord,
    EntityKind.REVENUE: RevenueRecord,
    EntityKind.MARKET_INDEX: MarketIndexRecord,
    EntityKind.HOLIDAY: HolidayRecord,
}
