"""Conflict-resolution rules of the upsert merger as plain functions.

These functions hold the whole re-run safety contract and do not depend on
any storage engine's conflict syntax:

- ``overwrite_fields``: natural-key overwrite; replaces supplied fields,
  bumps ``updated_time`` only on a real change, never touches ``created_time``.
- ``merge_extreme``: monotonic extremes; only a strict improvement replaces
  the stored value, and equal values keep the earlier date.
- ``cursor_allows``: cursor gate; a month is applied only if it is strictly
  after the stored cursor.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import Boolean, Date, Integer, Numeric, String
from sqlalchemy.sql.schema import Column

from stockpipe.core.exceptions import ValidationError
from stockpipe.domain.records import EntityKind, NormalizedRecord


CODE_PATTERN = re.compile(r"^[0-9A-Z][0-9A-Z.\-]{0,15}$")
VALID_QUARTERS = frozenset({"", "Q1", "Q2", "Q3", "Q4", "H1", "H2"})
MIN_YEAR = 1900
MAX_YEAR = 2999


# =============================================================================
# KEY VALIDATION
# =============================================================================


def _reject(record: NormalizedRecord, reason: str) -> ValidationError:
    return ValidationError(
        message=f"{record.kind.value} {record.natural_key()}: {reason}",
        details={"kind": record.kind.value, "key": [str(v) for v in record.natural_key()]},
    )


def _normalize_code(record: NormalizedRecord, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise _reject(record, "missing security code")
    code = value.strip().upper()
    if not CODE_PATTERN.match(code):
        raise _reject(record, f"invalid security code {value!r}")
    return code


def _normalize_year(record: NormalizedRecord, value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not MIN_YEAR <= value <= MAX_YEAR:
        raise _reject(record, f"invalid year {value!r}")
    return value


def _normalize_quarter(record: NormalizedRecord, value: Any) -> str:
    quarter = (value or "").strip().upper()
    if quarter not in VALID_QUARTERS:
        raise _reject(record, f"invalid period {value!r}")
    return quarter


def _normalize_date(record: NormalizedRecord, value: Any) -> date:
    if not isinstance(value, date) or isinstance(value, datetime):
        raise _reject(record, f"invalid date {value!r}")
    return value


def _normalize_month(record: NormalizedRecord, value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise _reject(record, f"invalid month {value!r}")
    year, month = divmod(value, 100)
    if not MIN_YEAR <= year <= MAX_YEAR or not 1 <= month <= 12:
        raise _reject(record, f"invalid month {value!r}")
    return value


def _normalize_category(record: NormalizedRecord, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise _reject(record, "missing index category")
    return value.strip()


_KEY_NORMALIZERS = {
    "code": _normalize_code,
    "security_code": _normalize_code,
    "year": _normalize_year,
    "quarter": _normalize_quarter,
    "date": _normalize_date,
    "month": _normalize_month,
    "category": _normalize_category,
}


def validate_record(record: NormalizedRecord, kind: EntityKind | None = None) -> dict[str, Any]:
    """Validate and normalize the natural key of ``record``.

    Returns:
        Mapping of key column name to normalized value

    Raises:
        ValidationError: Missing or malformed key, or a record of another kind
    """
    if kind is not None and record.kind != kind:
        raise _reject(record, f"expected a {kind.value} record")
    return {
        name: _KEY_NORMALIZERS[name](record, getattr(record, name))
        for name in record.key_fields
    }


# =============================================================================
# OVERWRITE ON NATURAL KEY
# =============================================================================


def coerce_value(column: Column, value: Any) -> Any:
    """Convert ``value`` to what the column hands back after a round trip.

    Numeric columns are quantized to their scale so a re-applied record
    compares equal to the stored row.
    """
    if value is None:
        return None
    column_type = column.type
    if isinstance(column_type, Numeric) and not isinstance(column_type, Integer):
        decimal_value = value if isinstance(value, Decimal) else Decimal(str(value))
        if column_type.scale is not None:
            decimal_value = decimal_value.quantize(
                Decimal(1).scaleb(-column_type.scale), rounding=ROUND_HALF_UP
            )
        return decimal_value
    if isinstance(column_type, Boolean):
        return bool(value)
    if isinstance(column_type, Integer):
        return int(value)
    if isinstance(column_type, String):
        return str(value)
    if isinstance(column_type, Date):
        return value
    return value


def overwrite_fields(target: Any, values: Mapping[str, Any], now: datetime) -> bool:
    """Replace supplied fields of ``target`` field by field.

    Returns:
        True if at least one field changed (``updated_time`` is then bumped)
    """
    columns = target.__table__.columns
    changed = False
    for name, value in values.items():
        column = columns.get(name)
        if column is None:
            raise ValidationError(message=f"{type(target).__name__} has no field {name!r}")
        new_value = coerce_value(column, value)
        if getattr(target, name) != new_value:
            setattr(target, name, new_value)
            changed = True
    if changed:
        target.updated_time = now
    return changed


def new_row(model: type, key: Mapping[str, Any], values: Mapping[str, Any], now: datetime) -> Any:
    """Build a fresh row for ``model`` with timestamps set to ``now``."""
    columns = model.__table__.columns
    for name in values:
        if name not in columns:
            raise ValidationError(message=f"{model.__name__} has no field {name!r}")
    row = model(
        **key,
        **{name: coerce_value(columns[name], value) for name, value in values.items()},
    )
    row.created_time = now
    row.updated_time = now
    return row


# =============================================================================
# MONOTONIC EXTREMES
# =============================================================================


@dataclass(frozen=True)
class Extreme:
    """A stored or candidate extreme value and the date it occurred."""

    value: Decimal
    date: date | None

    @property
    def is_set(self) -> bool:
        return self.date is not None and self.value > 0


def improves(stored: Extreme, candidate: Extreme, higher: bool) -> bool:
    """True if ``candidate`` should replace ``stored``.

    Non-positive candidates carry no information (0 is the "not computed"
    sentinel) and never replace anything.
    """
    if not candidate.is_set:
        return False
    if not stored.is_set:
        return True
    if candidate.value == stored.value:
        return candidate.date < stored.date
    if higher:
        return candidate.value > stored.value
    return candidate.value < stored.value


def merge_extreme(stored: Extreme, candidate: Extreme, higher: bool) -> Extreme:
    """The extreme to keep after seeing ``candidate``."""
    return candidate if improves(stored, candidate, higher) else stored


# =============================================================================
# CURSOR GATE
# =============================================================================


def cursor_allows(cursor_month: int | None, month: int) -> bool:
    """A month is applied only if strictly after the stored cursor."""
    return cursor_month is None or month > cursor_month


def add_months(month: int, count: int) -> int:
    """Shift a yyyymm month by ``count`` months."""
    year, mm = divmod(month, 100)
    index = year * 12 + (mm - 1) + count
    return (index // 12) * 100 + index % 12 + 1
