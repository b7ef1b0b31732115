"""Pure metric computations: indicators, valuation, yields, breadth, portfolio."""

from .breadth import STATS_MARKETS, BreadthRow, price_stats
from .indicators import (
    MOVING_AVERAGE_WINDOWS,
    YEAR_WINDOW,
    YearExtremes,
    history_frame,
    moving_average_frame,
    moving_averages,
    price_to_book,
    year_extremes,
)
from .portfolio import Lot, PreviousSnapshot, Snapshot, build_snapshot, value_lot
from .valuation import (
    Band,
    Valuation,
    ValuationBands,
    classify,
    percentile,
    price_distance,
    valuation_bands,
)
from .yields import RankedYield, YieldCandidate, dividend_yield, rank_yields


__all__ = [
    "STATS_MARKETS",
    "BreadthRow",
    "price_stats",
    "MOVING_AVERAGE_WINDOWS",
    "YEAR_WINDOW",
    "YearExtremes",
    "history_frame",
    "moving_average_frame",
    "moving_averages",
    "price_to_book",
    "year_extremes",
    "Lot",
    "PreviousSnapshot",
    "Snapshot",
    "build_snapshot",
    "value_lot",
    "Band",
    "Valuation",
    "ValuationBands",
    "classify",
    "percentile",
    "price_distance",
    "valuation_bands",
    "RankedYield",
    "YieldCandidate",
    "dividend_yield",
    "rank_yields",
]
