"""
Quote-derived indicators.

Pure computations over one security's quote history, used by the metrics
service:
- Moving averages (5, 10, 20, 60, 120, 240 trading days)
- Trailing-year extremes of close and price-to-book ratio
- Price-to-book ratio

History frames are indexed 0..n-1 in ascending date order and carry at least
``date`` and ``close`` columns (``price_to_book_ratio`` optional).
A window that is not yet full yields 0, the "not computed" sentinel.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import numpy as np
import pandas as pd


MOVING_AVERAGE_WINDOWS: tuple[int, ...] = (5, 10, 20, 60, 120, 240)

# ~52 weeks of trading days
YEAR_WINDOW = 240


# =============================================================================
# History Preparation
# =============================================================================

def history_frame(rows: list[dict]) -> pd.DataFrame:
    """Build a sorted history frame from quote rows.

    Args:
        rows: Dicts with ``date``, ``close`` and optionally ``price_to_book_ratio``

    Returns:
        DataFrame sorted by date with float columns, duplicates dropped
    """
    if not rows:
        return pd.DataFrame(columns=["date", "close", "price_to_book_ratio"])

    df = pd.DataFrame(rows)
    if "price_to_book_ratio" not in df.columns:
        df["price_to_book_ratio"] = 0.0
    df["close"] = df["close"].astype(float)
    df["price_to_book_ratio"] = df["price_to_book_ratio"].fillna(0).astype(float)
    df = df.drop_duplicates(subset="date", keep="last").sort_values("date")
    return df.reset_index(drop=True)


# =============================================================================
# Moving Averages
# =============================================================================

def moving_averages(
    closes: pd.Series | list[float],
    windows: tuple[int, ...] = MOVING_AVERAGE_WINDOWS,
) -> dict[int, float]:
    """Trailing simple moving averages ending at the last close.

    Returns 0.0 for every window longer than the available history.
    """
    series = pd.Series(closes, dtype=float)
    result: dict[int, float] = {}
    for window in windows:
        if len(series) < window:
            result[window] = 0.0
        else:
            result[window] = float(series.iloc[-window:].mean())
    return result


def moving_average_frame(
    closes: pd.Series,
    windows: tuple[int, ...] = MOVING_AVERAGE_WINDOWS,
) -> pd.DataFrame:
    """Moving averages for every row of a close series (backfills).

    Column ``moving_average_<w>`` is 0 where fewer than w rows precede.
    """
    closes = closes.astype(float)
    frame = pd.DataFrame(index=closes.index)
    for window in windows:
        frame[f"moving_average_{window}"] = (
            closes.rolling(window=window, min_periods=window).mean().fillna(0.0)
        )
    return frame


# =============================================================================
# Price-to-book
# =============================================================================

def price_to_book(close: float | Decimal | None, book_value_per_share: float | Decimal | None) -> float:
    """close / book value per share, 0 when either is missing or non-positive."""
    if close is None or book_value_per_share is None:
        return 0.0
    close, book_value_per_share = float(close), float(book_value_per_share)
    if close <= 0 or book_value_per_share <= 0:
        return 0.0
    return close / book_value_per_share


# =============================================================================
# Trailing-year Extremes
# =============================================================================

@dataclass(frozen=True)
class YearExtremes:
    """Max/min close and P/B over the trailing year, with occurrence dates."""

    maximum_price: float = 0.0
    maximum_price_date: date | None = None
    minimum_price: float = 0.0
    minimum_price_date: date | None = None
    average_price: float = 0.0
    maximum_price_to_book_ratio: float = 0.0
    maximum_price_to_book_ratio_date: date | None = None
    minimum_price_to_book_ratio: float = 0.0
    minimum_price_to_book_ratio_date: date | None = None

    def as_quote_fields(self) -> dict:
        """Column values for the matching DailyQuote fields."""
        return {
            "maximum_price_in_year": self.maximum_price,
            "maximum_price_in_year_date_on": self.maximum_price_date,
            "minimum_price_in_year": self.minimum_price,
            "minimum_price_in_year_date_on": self.minimum_price_date,
            "average_price_in_year": self.average_price,
            "maximum_price_to_book_ratio_in_year": self.maximum_price_to_book_ratio,
            "maximum_price_to_book_ratio_in_year_date_on": self.maximum_price_to_book_ratio_date,
            "minimum_price_to_book_ratio_in_year": self.minimum_price_to_book_ratio,
            "minimum_price_to_book_ratio_in_year_date_on": self.minimum_price_to_book_ratio_date,
        }


def _first_extreme(values: pd.Series, dates: pd.Series, highest: bool) -> tuple[float, date | None]:
    """Extreme of positive values; the earliest date wins ties."""
    positive = values[values > 0]
    if positive.empty:
        return 0.0, None
    # idxmax/idxmin return the first occurrence, i.e. the earliest date
    index = positive.idxmax() if highest else positive.idxmin()
    return float(positive[index]), dates[index]


def year_extremes(history: pd.DataFrame, window: int = YEAR_WINDOW) -> YearExtremes:
    """Extremes over the last ``window`` rows of ``history`` (date-inclusive)."""
    if history.empty:
        return YearExtremes()

    recent = history.iloc[-window:]
    closes = recent["close"]
    dates = recent["date"]
    pbr = recent.get("price_to_book_ratio", pd.Series(0.0, index=recent.index))

    max_price, max_price_date = _first_extreme(closes, dates, highest=True)
    min_price, min_price_date = _first_extreme(closes, dates, highest=False)
    max_pbr, max_pbr_date = _first_extreme(pbr, dates, highest=True)
    min_pbr, min_pbr_date = _first_extreme(pbr, dates, highest=False)

    positive_closes = closes[closes > 0]
    average = float(np.mean(positive_closes)) if not positive_closes.empty else 0.0

    return YearExtremes(
        maximum_price=max_price,
        maximum_price_date=max_price_date,
        minimum_price=min_price,
        minimum_price_date=min_price_date,
        average_price=average,
        maximum_price_to_book_ratio=max_pbr,
        maximum_price_to_book_ratio_date=max_pbr_date,
        minimum_price_to_book_ratio=min_pbr,
        minimum_price_to_book_ratio_date=min_pbr_date,
    )
