"""Security, quote and holiday schemas."""

from __future__ import annotations

import re
from datetime import date as DateType
from decimal import Decimal

from pydantic import BaseModel, Field


CODE_RE = re.compile(r"^[0-9A-Z][0-9A-Z.\-]{0,15}$")


def normalize_code(value: str) -> str:
    value = value.strip().upper()
    if not CODE_RE.match(value):
        raise ValueError("Security code must be 1-16 characters of digits, letters, '.' or '-'")
    return value


class SecurityInfoUpdate(BaseModel):
    """Update security master data request schema."""

    name: str = Field(..., min_length=1, max_length=100, description="Security name", examples=["台積電"])
    market_id: int = Field(..., ge=0, description="Market (2 = listed, 4 = OTC, 5 = emerging)", examples=[2])
    industry_id: int | None = Field(None, ge=0, description="Industry id")
    book_value_per_share: Decimal = Field(
        Decimal("0"), ge=0, description="Net asset value per share", examples=[Decimal("115.86")]
    )
    suspended: bool = Field(False, description="Trading suspended")


class CurrentQuote(BaseModel):
    """Latest known quote of a security."""

    code: str = Field(..., description="Security code", examples=["2330"])
    price: Decimal = Field(..., description="Latest close")
    change: Decimal = Field(..., description="Change from the previous close")
    change_range: Decimal = Field(..., description="Change in percent")

    model_config = {"from_attributes": True}


class CurrentQuotesResponse(BaseModel):
    items: list[CurrentQuote]


class Holiday(BaseModel):
    """A day the market is closed."""

    date: DateType
    reason: str = Field("", description="Why the market is closed")

    model_config = {"from_attributes": True}


class HolidayScheduleResponse(BaseModel):
    year: int
    items: list[Holiday]


def parse_codes(raw: str) -> list[str]:
    """Split and normalize a comma separated code list, dropping duplicates."""
    codes = [normalize_code(part) for part in raw.split(",") if part.strip()]
    return list(dict.fromkeys(codes))
