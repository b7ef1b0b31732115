"""Tests for dividend yield ranking and market breadth."""

from __future__ import annotations

import pytest

from stockpipe.analytics.breadth import BreadthRow, price_stats
from stockpipe.analytics.valuation import Band
from stockpipe.analytics.yields import YieldCandidate, dividend_yield, rank_yields


def _candidate(code: str, cash: float, close: float) -> YieldCandidate:
    return YieldCandidate(security_code=code, daily_quote_id=1, dividend_id=1, cash_dividend=cash, close=close)


class TestDividendYield:
    def test_fraction(self):
        assert dividend_yield(5.0, 100.0) == pytest.approx(0.05)

    @pytest.mark.parametrize("cash,close", [(0, 100), (5, 0), (None, 100), (5, None), (-1, 100)])
    def test_undefined_is_zero(self, cash, close):
        assert dividend_yield(cash, close) == 0.0


class TestRankYields:
    """Tests for rank_yields."""

    def test_descending_with_code_tiebreak(self):
        ranked = rank_yields(
            [
                _candidate("2317", 5.0, 100.0),
                _candidate("1101", 2.0, 100.0),
                _candidate("2303", 3.0, 50.0),
                _candidate("2002", 6.0, 100.0),
            ]
        )

        assert [r.security_code for r in ranked] == ["2002", "2303", "2317", "1101"]
        # 2002 and 2303 both yield 6%
        assert [r.rank for r in ranked] == [1, 1, 3, 4]

    def test_empty(self):
        assert rank_yields([]) == []


class TestPriceStats:
    """Tests for price_stats."""

    ROWS = [
        BreadthRow("2330", 2, close=100.0, change=1.0, moving_averages={5: 90.0, 20: 110.0}, band=Band(120, 150, 180)),
        BreadthRow("2317", 2, close=160.0, change=-2.0, moving_averages={5: 160.0}, band=Band(120, 150, 180)),
        BreadthRow("6488", 4, close=200.0, change=0.0, moving_averages={}, band=None),
        BreadthRow("9999", 4, close=0.0, change=0.0),
    ]

    def test_all_markets(self):
        stats = price_stats(self.ROWS)

        assert stats["total"] == 3
        assert stats["undervalued"] == 1
        assert stats["overvalued"] == 1
        assert (stats["up"], stats["down"], stats["unchanged"]) == (1, 1, 1)
        assert stats["above_moving_average_5"] == 1
        # Equal to the average counts on neither side
        assert stats["below_moving_average_5"] == 0
        assert stats["below_moving_average_20"] == 1

    def test_single_market(self):
        assert price_stats(self.ROWS, market=4)["total"] == 1
        assert price_stats(self.ROWS, market=2)["total"] == 2

    def test_counts_present_for_every_window(self):
        stats = price_stats([])
        for window in (5, 20, 60, 120, 240):
            assert stats[f"above_moving_average_{window}"] == 0
