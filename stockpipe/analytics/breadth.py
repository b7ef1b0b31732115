"""Market breadth statistics for one trading day."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .valuation import Band, Valuation, classify


# Market ids: 0 aggregates every market
ALL_MARKETS = 0
LISTED_MARKET = 2
OTC_MARKET = 4
STATS_MARKETS: tuple[int, ...] = (ALL_MARKETS, LISTED_MARKET, OTC_MARKET)

BREADTH_WINDOWS: tuple[int, ...] = (5, 20, 60, 120, 240)


@dataclass(frozen=True)
class BreadthRow:
    """What breadth needs to know about one security on the day."""

    security_code: str
    market_id: int
    close: float
    change: float
    moving_averages: dict[int, float] = field(default_factory=dict)
    band: Band | None = None


def price_stats(rows: Iterable[BreadthRow], market: int = ALL_MARKETS) -> dict[str, int]:
    """Counts of valuation classes, position versus moving averages and direction."""
    stats: dict[str, int] = {
        "total": 0,
        "undervalued": 0,
        "fair_valued": 0,
        "overvalued": 0,
        "highly_overvalued": 0,
        "up": 0,
        "down": 0,
        "unchanged": 0,
    }
    for window in BREADTH_WINDOWS:
        stats[f"above_moving_average_{window}"] = 0
        stats[f"below_moving_average_{window}"] = 0

    for row in rows:
        if market != ALL_MARKETS and row.market_id != market:
            continue
        if row.close <= 0:
            continue
        stats["total"] += 1

        if row.band is not None:
            valuation = classify(row.close, row.band)
            if valuation == Valuation.UNDERVALUED:
                stats["undervalued"] += 1
            elif valuation == Valuation.FAIR:
                stats["fair_valued"] += 1
            elif valuation == Valuation.OVERVALUED:
                stats["overvalued"] += 1
            elif valuation == Valuation.HIGHLY_OVERVALUED:
                stats["highly_overvalued"] += 1

        for window in BREADTH_WINDOWS:
            average = row.moving_averages.get(window, 0.0)
            if average <= 0:
                continue
            if row.close > average:
                stats[f"above_moving_average_{window}"] += 1
            elif row.close < average:
                stats[f"below_moving_average_{window}"] += 1

        if row.change > 0:
            stats["up"] += 1
        elif row.change < 0:
            stats["down"] += 1
        else:
            stats["unchanged"] += 1

    return stats
