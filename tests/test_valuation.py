"""Tests for valuation bands."""

from __future__ import annotations

import pytest

from stockpipe.analytics.valuation import (
    DEFAULT_PAYOUT_RATIO,
    Band,
    Valuation,
    average_annual_eps,
    classify,
    combine_bands,
    dividend_band,
    eps_band,
    historical_payout_ratio,
    pbr_band,
    per_band,
    percentile,
    price_band,
    price_distance,
    valuation_bands,
)


class TestPercentile:
    """Linear interpolation between order statistics."""

    def test_linear_interpolation(self):
        # rank = 0.2 * (5 - 1) = 0.8 -> 10 + 0.8 * (20 - 10)
        assert percentile([10, 20, 30, 40, 50], 20) == pytest.approx(18.0)
        assert percentile([10, 20, 30, 40, 50], 50) == pytest.approx(30.0)

    def test_order_independent(self):
        assert percentile([50, 10, 40, 20, 30], 80) == percentile([10, 20, 30, 40, 50], 80)

    def test_non_positive_and_missing_dropped(self):
        assert percentile([0, None, -3, 10], 50) == pytest.approx(10.0)

    def test_empty_is_zero(self):
        assert percentile([], 50) == 0.0


class TestEstimators:
    """Each estimator on its own."""

    def test_price_band(self):
        band = price_band([10, 20, 30, 40, 50])
        assert band == Band(pytest.approx(18.0), pytest.approx(30.0), pytest.approx(42.0))

    def test_dividend_band_uses_multiples(self):
        band = dividend_band({2021: 2.0, 2022: 3.0, 2023: 4.0})
        assert (band.cheap, band.fair, band.expensive) == pytest.approx((45.0, 60.0, 90.0))

    def test_dividend_band_without_dividends(self):
        assert dividend_band({}) == Band()

    def test_eps_band(self):
        band = eps_band(10.0, 50.0)
        assert (band.cheap, band.fair, band.expensive) == pytest.approx((75.0, 100.0, 150.0))

    def test_eps_band_needs_positive_eps(self):
        assert eps_band(None, 70.0) == Band()
        assert eps_band(-1.0, 70.0) == Band()

    def test_payout_ratio_default_and_bounds(self):
        assert historical_payout_ratio([]) == DEFAULT_PAYOUT_RATIO
        # Ratios above 100 or non-positive are ignored
        assert historical_payout_ratio([150, 0, 60]) == pytest.approx(60.0)

    def test_pbr_band_scaled_by_book_value(self):
        band = pbr_band([1.0, 2.0, 3.0], 10.0)
        assert band.fair == pytest.approx(20.0)
        assert pbr_band([1.0], None) == Band()

    def test_per_band(self):
        band = per_band([10.0, 20.0], 2.0)
        assert band.cheap == pytest.approx(22.0)
        assert per_band([10.0], 0) == Band()

    def test_average_annual_eps_needs_four_quarters(self):
        assert average_annual_eps({2022: [1, 1, 1, 1], 2023: [2, 2]}) == pytest.approx(4.0)
        assert average_annual_eps({}) == 0.0


class TestCombination:
    def test_weights_sum_of_bands(self):
        bands = {name: Band(10, 20, 30) for name in ("price", "dividend", "eps", "pbr", "per")}
        combined = combine_bands(bands)
        assert (combined.cheap, combined.fair, combined.expensive) == pytest.approx((10.0, 20.0, 30.0))

    def test_missing_estimator_contributes_zero(self):
        combined = combine_bands({"price": Band(10, 20, 30)})
        assert combined.fair == pytest.approx(4.0)

    def test_valuation_bands_deterministic(self):
        """The same window always reproduces the same band."""
        kwargs = dict(
            close=25.0,
            closes=[float(c) for c in range(10, 41)],
            yearly_dividends={2022: 1.0, 2023: 1.2},
            trailing_four_quarter_eps=2.0,
            payout_ratios=[60.0, 70.0],
            historical_pbr=[1.0, 1.5, 2.0],
            book_value_per_share=12.0,
            historical_per=[10.0, 12.0, 15.0],
            quarterly_eps={2023: [0.5, 0.5, 0.5, 0.5]},
            year_count=2,
        )
        first = valuation_bands(**kwargs)
        second = valuation_bands(**kwargs)

        assert first == second
        assert first.combined.cheap < first.combined.fair < first.combined.expensive
        assert first.as_estimate_fields()["year_count"] == 2


class TestClassify:
    @pytest.mark.parametrize(
        "close,expected",
        [
            (5, Valuation.UNDERVALUED),
            (15, Valuation.FAIR),
            (25, Valuation.OVERVALUED),
            (30, Valuation.HIGHLY_OVERVALUED),
        ],
    )
    def test_classes(self, close, expected):
        assert classify(close, Band(10, 20, 30)) == expected

    def test_unknown_without_band(self):
        assert classify(10, Band()) == Valuation.UNKNOWN

    def test_price_distance(self):
        assert price_distance(15, Band(10, 20, 30)) == pytest.approx(50.0)
        assert price_distance(15, Band(10, 10, 30)) == 0.0
