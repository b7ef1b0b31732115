"""
Valuation bands (cheap / fair / expensive).

Five independent estimators each produce a band; the published band is their
weighted combination. Every percentile uses numpy's linear interpolation
between order statistics (``method="linear"``, the standard definition), so
an unchanged input window always reproduces the same band.

Estimators:
1. Price percentile: 20/50/80th percentile of daily closes
2. Dividend: average annual dividend x 15 / 20 / 30
3. Earnings: trailing-4Q EPS x payout ratio x 15 / 20 / 30
4. Book value: 20/50/80th percentile of historical P/B x current book value
5. Earnings multiple: 10/50/80th percentile of historical P/E x average EPS

An estimator without inputs returns the all-zero band.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

import numpy as np


PRICE_PERCENTILES: tuple[float, float, float] = (20.0, 50.0, 80.0)
PBR_PERCENTILES: tuple[float, float, float] = (20.0, 50.0, 80.0)
PER_PERCENTILES: tuple[float, float, float] = (10.0, 50.0, 80.0)

# Target yields of ~6.7% / 5% / 3.3%
DIVIDEND_MULTIPLES: tuple[float, float, float] = (15.0, 20.0, 30.0)

PAYOUT_RATIO_PERCENTILE = 70.0
DEFAULT_PAYOUT_RATIO = 70.0

ESTIMATOR_WEIGHTS: dict[str, float] = {
    "price": 0.2,
    "dividend": 0.29,
    "eps": 0.3,
    "pbr": 0.2,
    "per": 0.01,
}


# =============================================================================
# Percentiles
# =============================================================================

def _clean(values: Iterable[float | None]) -> np.ndarray:
    """Finite, strictly positive values as a float array."""
    array = np.asarray([float(v) for v in values if v is not None], dtype=float)
    return array[np.isfinite(array) & (array > 0)]


def percentile(values: Iterable[float | None], q: float) -> float:
    """Linear-interpolation percentile of the positive values; 0 if none."""
    array = _clean(values)
    if array.size == 0:
        return 0.0
    return float(np.percentile(array, q, method="linear"))


def percentiles(values: Iterable[float | None], qs: Sequence[float]) -> tuple[float, ...]:
    array = _clean(values)
    if array.size == 0:
        return tuple(0.0 for _ in qs)
    return tuple(float(v) for v in np.percentile(array, list(qs), method="linear"))


# =============================================================================
# Bands
# =============================================================================

@dataclass(frozen=True)
class Band:
    """A cheap / fair / expensive price triplet."""

    cheap: float = 0.0
    fair: float = 0.0
    expensive: float = 0.0

    @property
    def available(self) -> bool:
        return self.cheap > 0 or self.fair > 0 or self.expensive > 0

    def scaled(self, factor: float) -> "Band":
        return Band(self.cheap * factor, self.fair * factor, self.expensive * factor)


class Valuation(str, Enum):
    """Where a close sits relative to a band."""

    UNDERVALUED = "undervalued"
    FAIR = "fair"
    OVERVALUED = "overvalued"
    HIGHLY_OVERVALUED = "highly_overvalued"
    UNKNOWN = "unknown"


def classify(close: float, band: Band) -> Valuation:
    if close <= 0 or not band.available:
        return Valuation.UNKNOWN
    if close < band.cheap:
        return Valuation.UNDERVALUED
    if close < band.fair:
        return Valuation.FAIR
    if close < band.expensive:
        return Valuation.OVERVALUED
    return Valuation.HIGHLY_OVERVALUED


def price_distance(close: float, band: Band) -> float:
    """(close - cheap) / (fair - cheap) as a percentage; 0 when undefined."""
    spread = band.fair - band.cheap
    if close <= 0 or spread == 0 or not band.available:
        return 0.0
    return (close - band.cheap) / spread * 100.0


# =============================================================================
# Estimators
# =============================================================================

def price_band(closes: Iterable[float | None]) -> Band:
    """20/50/80th percentile of historical closes."""
    return Band(*percentiles(closes, PRICE_PERCENTILES))


def multiples_band(base: float | None) -> Band:
    """``base`` x 15 / 20 / 30; zero band when base is not positive."""
    if base is None or base <= 0:
        return Band()
    return Band(*(base * m for m in DIVIDEND_MULTIPLES))


def average_annual_dividend(yearly_dividends: dict[int, float]) -> float:
    """Mean of per-year dividend sums (years without a dividend excluded)."""
    values = [v for v in yearly_dividends.values() if v and v > 0]
    return float(np.mean(values)) if values else 0.0


def dividend_band(yearly_dividends: dict[int, float]) -> Band:
    return multiples_band(average_annual_dividend(yearly_dividends))


def historical_payout_ratio(payout_ratios: Iterable[float | None]) -> float:
    """70th percentile of payout ratios within (0, 100]; 70 if none."""
    ratios = [float(r) for r in payout_ratios if r is not None and 0 < float(r) <= 100]
    if not ratios:
        return DEFAULT_PAYOUT_RATIO
    return percentile(ratios, PAYOUT_RATIO_PERCENTILE)


def eps_band(trailing_four_quarter_eps: float | None, payout_ratio: float) -> Band:
    """Expected dividend (EPS x payout ratio) priced at the dividend multiples."""
    if trailing_four_quarter_eps is None or trailing_four_quarter_eps <= 0:
        return Band()
    return multiples_band(trailing_four_quarter_eps * payout_ratio / 100.0)


def pbr_band(historical_pbr: Iterable[float | None], book_value_per_share: float | None) -> Band:
    if book_value_per_share is None or book_value_per_share <= 0:
        return Band()
    return Band(*percentiles(historical_pbr, PBR_PERCENTILES)).scaled(book_value_per_share)


def per_band(historical_per: Iterable[float | None], average_eps: float | None) -> Band:
    if average_eps is None or average_eps <= 0:
        return Band()
    return Band(*percentiles(historical_per, PER_PERCENTILES)).scaled(average_eps)


def average_annual_eps(quarterly_eps: dict[int, list[float]]) -> float:
    """Mean of per-year EPS sums over years with four reported quarters."""
    sums = [sum(values) for values in quarterly_eps.values() if len(values) == 4]
    return float(np.mean(sums)) if sums else 0.0


# =============================================================================
# Combination
# =============================================================================

@dataclass(frozen=True)
class ValuationBands:
    """All estimator bands plus the weighted band and price distance."""

    close: float
    price: Band
    dividend: Band
    eps: Band
    pbr: Band
    per: Band
    combined: Band
    percentage: float
    year_count: int = 0

    @property
    def valuation(self) -> Valuation:
        return classify(self.close, self.combined)

    def as_estimate_fields(self) -> dict:
        """Column values for the Estimate row."""
        return {
            "price": self.close,
            "percentage": self.percentage,
            "cheap": self.combined.cheap,
            "fair": self.combined.fair,
            "expensive": self.combined.expensive,
            "price_cheap": self.price.cheap,
            "price_fair": self.price.fair,
            "price_expensive": self.price.expensive,
            "dividend_cheap": self.dividend.cheap,
            "dividend_fair": self.dividend.fair,
            "dividend_expensive": self.dividend.expensive,
            "eps_cheap": self.eps.cheap,
            "eps_fair": self.eps.fair,
            "eps_expensive": self.eps.expensive,
            "pbr_cheap": self.pbr.cheap,
            "pbr_fair": self.pbr.fair,
            "pbr_expensive": self.pbr.expensive,
            "per_cheap": self.per.cheap,
            "per_fair": self.per.fair,
            "per_expensive": self.per.expensive,
            "year_count": self.year_count,
        }


def combine_bands(bands: dict[str, Band]) -> Band:
    """Fixed-weight sum of estimator bands; a missing estimator contributes 0."""
    cheap = fair = expensive = 0.0
    for name, weight in ESTIMATOR_WEIGHTS.items():
        band = bands.get(name, Band())
        cheap += band.cheap * weight
        fair += band.fair * weight
        expensive += band.expensive * weight
    return Band(cheap, fair, expensive)


def valuation_bands(
    close: float,
    closes: Iterable[float | None],
    yearly_dividends: dict[int, float],
    trailing_four_quarter_eps: float | None,
    payout_ratios: Iterable[float | None],
    historical_pbr: Iterable[float | None],
    book_value_per_share: float | None,
    historical_per: Iterable[float | None],
    quarterly_eps: dict[int, list[float]],
    year_count: int = 0,
) -> ValuationBands:
    """Run every estimator and combine them."""
    bands = {
        "price": price_band(closes),
        "dividend": dividend_band(yearly_dividends),
        "eps": eps_band(trailing_four_quarter_eps, historical_payout_ratio(payout_ratios)),
        "pbr": pbr_band(historical_pbr, book_value_per_share),
        "per": per_band(historical_per, average_annual_eps(quarterly_eps)),
    }
    combined = combine_bands(bands)
    return ValuationBands(
        close=close,
        combined=combined,
        percentage=price_distance(close, combined),
        year_count=year_count,
        **bands,
    )
