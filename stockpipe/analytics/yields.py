"""Dividend yield and cross-sectional yield ranking."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class YieldCandidate:
    """A quote row and the dividend row it is measured against."""

    security_code: str
    daily_quote_id: int
    dividend_id: int
    cash_dividend: float
    close: float


@dataclass(frozen=True)
class RankedYield:
    security_code: str
    dividend_yield: float
    daily_quote_id: int
    dividend_id: int
    rank: int


def dividend_yield(cash_dividend: float | None, close: float | None) -> float:
    """Cash dividend / close as a fraction; 0 when either is not positive."""
    if not cash_dividend or not close or cash_dividend <= 0 or close <= 0:
        return 0.0
    return float(cash_dividend) / float(close)


def rank_yields(candidates: Iterable[YieldCandidate]) -> list[RankedYield]:
    """Rank by yield descending, ties by code; equal yields share a rank."""
    scored = sorted(
        (
            (dividend_yield(c.cash_dividend, c.close), c)
            for c in candidates
        ),
        key=lambda item: (-item[0], item[1].security_code),
    )

    ranked: list[RankedYield] = []
    previous: float | None = None
    rank = 0
    for position, (value, candidate) in enumerate(scored, start=1):
        if value != previous:
            rank = position
            previous = value
        ranked.append(
            RankedYield(
                security_code=candidate.security_code,
                dividend_yield=value,
                daily_quote_id=candidate.daily_quote_id,
                dividend_id=candidate.dividend_id,
                rank=rank,
            )
        )
    return ranked
