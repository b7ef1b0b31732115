"""Tests for merge policies: key validation, overwrite, extremes, cursor gate."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from stockpipe.core.exceptions import ValidationError
from stockpipe.database.orm import DailyQuote, Security
from stockpipe.domain.records import DividendRecord, EntityKind, QuoteRecord, RevenueRecord, SecurityRecord
from stockpipe.merge.policies import (
    Extreme,
    add_months,
    coerce_value,
    cursor_allows,
    merge_extreme,
    new_row,
    overwrite_fields,
    validate_record,
)


NOW = datetime(2024, 3, 29, 8, 0, tzinfo=timezone.utc)
LATER = datetime(2024, 3, 30, 8, 0, tzinfo=timezone.utc)


# =============================================================================
# Key Validation
# =============================================================================


class TestValidateRecord:
    """Tests for validate_record."""

    def test_normalizes_code(self):
        """Codes are stripped and upper-cased."""
        key = validate_record(QuoteRecord(security_code=" 00878b ", date=date(2024, 1, 2)))
        assert key == {"security_code": "00878B", "date": date(2024, 1, 2)}

    def test_missing_code_rejected(self):
        """A record without a code is rejected."""
        with pytest.raises(ValidationError):
            validate_record(SecurityRecord(code="  "))

    def test_invalid_code_rejected(self):
        """Codes with illegal characters are rejected."""
        with pytest.raises(ValidationError):
            validate_record(SecurityRecord(code="23 30"))

    def test_missing_date_rejected(self):
        """A quote without a date is rejected."""
        with pytest.raises(ValidationError):
            validate_record(QuoteRecord(security_code="2330"))

    def test_annual_quarter_is_empty_string(self):
        """The annual period normalizes to the empty quarter."""
        key = validate_record(DividendRecord(security_code="2330", year=2023, quarter=None))
        assert key["quarter"] == ""

    def test_invalid_quarter_rejected(self):
        """Unknown periods are rejected."""
        with pytest.raises(ValidationError):
            validate_record(DividendRecord(security_code="2330", year=2023, quarter="Q5"))

    def test_invalid_month_rejected(self):
        """A yyyymm month with month 13 is rejected."""
        with pytest.raises(ValidationError):
            validate_record(RevenueRecord(security_code="2330", month=202313))

    def test_wrong_kind_rejected(self):
        """A record of another kind is rejected when a kind is expected."""
        with pytest.raises(ValidationError):
            validate_record(SecurityRecord(code="2330"), EntityKind.DAILY_QUOTE)


# =============================================================================
# Overwrite
# =============================================================================


class TestOverwriteFields:
    """Tests for overwrite_fields and new_row."""

    def test_new_row_sets_both_timestamps(self):
        """A fresh row gets created and updated time."""
        row = new_row(Security, {"code": "2330"}, {"name": "TSMC"}, NOW)
        assert row.created_time == NOW
        assert row.updated_time == NOW

    def test_change_bumps_updated_time_only(self):
        """A real change bumps updated_time and keeps created_time."""
        row = new_row(Security, {"code": "2330"}, {"name": "TSMC"}, NOW)
        assert overwrite_fields(row, {"name": "Taiwan Semi"}, LATER) is True
        assert row.name == "Taiwan Semi"
        assert row.created_time == NOW
        assert row.updated_time == LATER

    def test_same_values_are_unchanged(self):
        """Re-applying equal values changes nothing."""
        row = new_row(DailyQuote, {"security_code": "2330", "date": date(2024, 1, 2)}, {"close": 593.0}, NOW)
        assert overwrite_fields(row, {"close": Decimal("593.0000")}, LATER) is False
        assert row.updated_time == NOW

    def test_unknown_field_rejected(self):
        """Writing a column the table lacks is a validation error."""
        row = new_row(Security, {"code": "2330"}, {}, NOW)
        with pytest.raises(ValidationError):
            overwrite_fields(row, {"no_such_column": 1}, LATER)

    def test_numeric_values_quantized_to_scale(self):
        """Numeric values are rounded half-up to the column scale."""
        column = DailyQuote.__table__.columns["close"]
        assert coerce_value(column, 12.34565) == Decimal("12.3457")
        assert coerce_value(column, None) is None


# =============================================================================
# Monotonic Extremes
# =============================================================================


class TestMergeExtreme:
    """Tests for merge_extreme."""

    @pytest.mark.parametrize(
        "order",
        [
            [10, 15, 8, 20],
            [20, 8, 15, 10],
            [8, 20, 10, 15],
            [15, 10, 20, 8],
        ],
    )
    def test_result_independent_of_order(self, order):
        """Folding the same points in any order yields the same extremes."""
        dates = {10: date(2024, 1, 1), 15: date(2024, 1, 2), 8: date(2024, 1, 3), 20: date(2024, 1, 4)}
        high = Extreme(Decimal(0), None)
        low = Extreme(Decimal(0), None)
        for value in order:
            point = Extreme(Decimal(value), dates[value])
            high = merge_extreme(high, point, higher=True)
            low = merge_extreme(low, point, higher=False)

        assert high == Extreme(Decimal(20), date(2024, 1, 4))
        assert low == Extreme(Decimal(8), date(2024, 1, 3))

    def test_equal_value_keeps_earlier_date(self):
        """A tie is resolved in favour of the earlier date."""
        stored = Extreme(Decimal(50), date(2024, 2, 1))
        assert merge_extreme(stored, Extreme(Decimal(50), date(2024, 3, 1)), higher=True) == stored
        earlier = Extreme(Decimal(50), date(2024, 1, 1))
        assert merge_extreme(stored, earlier, higher=True) == earlier

    def test_zero_never_replaces(self):
        """A zero candidate is the not-computed sentinel and never wins."""
        stored = Extreme(Decimal(5), date(2024, 1, 1))
        assert merge_extreme(stored, Extreme(Decimal(0), date(2024, 1, 2)), higher=False) == stored


# =============================================================================
# Cursor Gate
# =============================================================================


class TestCursor:
    """Tests for cursor_allows and add_months."""

    def test_no_cursor_allows_everything(self):
        assert cursor_allows(None, 202401)

    def test_only_strictly_later_months_allowed(self):
        """Months at or before the cursor are refused."""
        assert not cursor_allows(202403, 202402)
        assert not cursor_allows(202403, 202403)
        assert cursor_allows(202403, 202404)

    def test_add_months_crosses_years(self):
        assert add_months(202311, 2) == 202401
        assert add_months(202401, -1) == 202312
