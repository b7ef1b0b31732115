"""Tests for quote-derived indicators."""

from __future__ import annotations

from datetime import date, timedelta

import pandas as pd
import pytest

from stockpipe.analytics.indicators import (
    history_frame,
    moving_average_frame,
    moving_averages,
    price_to_book,
    year_extremes,
)


def _rows(closes: list[float], start: date = date(2024, 1, 1)) -> list[dict]:
    return [{"date": start + timedelta(days=i), "close": c} for i, c in enumerate(closes)]


class TestMovingAverages:
    """Tests for moving_averages."""

    def test_window_exactly_full(self):
        """With exactly N closes the N-day average is their mean."""
        closes = [float(i) for i in range(1, 6)]
        result = moving_averages(closes, windows=(5,))
        assert result[5] == pytest.approx(3.0)

    def test_window_not_full_is_zero(self):
        """With N-1 closes the N-day average is the 0 sentinel."""
        result = moving_averages([1.0, 2.0, 3.0, 4.0], windows=(5,))
        assert result[5] == 0.0

    def test_uses_trailing_window(self):
        """Only the last N closes count."""
        result = moving_averages([100.0] * 10 + [10.0] * 5, windows=(5, 10))
        assert result[5] == pytest.approx(10.0)
        assert result[10] == pytest.approx(55.0)

    def test_default_windows(self):
        result = moving_averages([1.0] * 240)
        assert set(result) == {5, 10, 20, 60, 120, 240}
        assert result[240] == pytest.approx(1.0)

    def test_frame_backfill_matches_point_value(self):
        """The rolling frame's last row equals the point computation."""
        closes = pd.Series([float(i) for i in range(30)])
        frame = moving_average_frame(closes, windows=(5, 20))
        point = moving_averages(closes, windows=(5, 20))

        assert frame["moving_average_5"].iloc[-1] == pytest.approx(point[5])
        assert frame["moving_average_20"].iloc[-1] == pytest.approx(point[20])
        assert frame["moving_average_20"].iloc[18] == 0.0


class TestHistoryFrame:
    def test_sorted_and_deduplicated(self):
        """Rows are sorted by date and the last duplicate wins."""
        rows = [
            {"date": date(2024, 1, 3), "close": 3},
            {"date": date(2024, 1, 1), "close": 1},
            {"date": date(2024, 1, 3), "close": 30},
        ]
        frame = history_frame(rows)
        assert list(frame["close"]) == [1.0, 30.0]

    def test_empty(self):
        assert history_frame([]).empty


class TestYearExtremes:
    """Tests for year_extremes."""

    def test_extremes_with_dates(self):
        frame = history_frame(_rows([10, 15, 8, 20, 12]))
        extremes = year_extremes(frame)

        assert extremes.maximum_price == 20
        assert extremes.maximum_price_date == date(2024, 1, 4)
        assert extremes.minimum_price == 8
        assert extremes.minimum_price_date == date(2024, 1, 3)
        assert extremes.average_price == pytest.approx(13.0)

    def test_tie_keeps_earliest_date(self):
        frame = history_frame(_rows([5, 9, 9, 5]))
        extremes = year_extremes(frame)

        assert extremes.maximum_price_date == date(2024, 1, 2)
        assert extremes.minimum_price_date == date(2024, 1, 1)

    def test_only_last_window_rows(self):
        """Closes older than the window are ignored."""
        frame = history_frame(_rows([1000] + [10] * 5))
        extremes = year_extremes(frame, window=5)
        assert extremes.maximum_price == 10

    def test_zero_pbr_ignored(self):
        rows = _rows([10, 11, 12])
        for row, pbr in zip(rows, [0.0, 1.1, 1.2]):
            row["price_to_book_ratio"] = pbr
        extremes = year_extremes(history_frame(rows))

        assert extremes.minimum_price_to_book_ratio == pytest.approx(1.1)
        assert extremes.maximum_price_to_book_ratio == pytest.approx(1.2)

    def test_empty_history(self):
        assert year_extremes(history_frame([])).maximum_price == 0.0


class TestPriceToBook:
    def test_ratio(self):
        assert price_to_book(50, 25) == pytest.approx(2.0)

    @pytest.mark.parametrize("close,book", [(None, 10), (10, None), (10, 0), (0, 10), (10, -5)])
    def test_missing_or_non_positive_is_zero(self, close, book):
        assert price_to_book(close, book) == 0.0
