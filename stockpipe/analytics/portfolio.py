"""Mark-to-market arithmetic for member portfolios.

Money is handled as ``Decimal`` end to end. Cost is carried as a signed
negative amount, so profit and loss is simply ``market_value + cost``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal


ZERO = Decimal("0")
HUNDRED = Decimal("100")
DEFAULT_TRANSFER_TAX_RATE = Decimal("0.003")


@dataclass(frozen=True)
class Lot:
    """A member's holding in one security."""

    security_code: str
    share_quantity: int
    holding_cost: Decimal
    is_sold: bool = False

    @property
    def is_open(self) -> bool:
        return not self.is_sold and self.share_quantity > 0


@dataclass(frozen=True)
class LotValuation:
    security_code: str
    share_quantity: int
    closing_price: Decimal
    market_value: Decimal
    cost: Decimal
    profit_and_loss: Decimal
    profit_and_loss_percentage: Decimal
    transfer_tax: Decimal
    ratio: Decimal = ZERO


@dataclass(frozen=True)
class PreviousSnapshot:
    """The values a new snapshot copies from the one before it."""

    date: date
    market_value: Decimal
    profit_and_loss: Decimal
    profit_and_loss_percentage: Decimal


@dataclass(frozen=True)
class Snapshot:
    member_id: int
    date: date
    market_value: Decimal
    cost: Decimal
    profit_and_loss: Decimal
    profit_and_loss_percentage: Decimal
    transfer_tax: Decimal
    previous_day_market_value: Decimal
    previous_day_profit_and_loss: Decimal
    previous_day_profit_and_loss_percentage: Decimal
    lots: tuple[LotValuation, ...] = ()
    missing_prices: tuple[str, ...] = ()

    def as_history_fields(self) -> dict:
        return {
            "market_value": self.market_value,
            "cost": self.cost,
            "profit_and_loss": self.profit_and_loss,
            "profit_and_loss_percentage": self.profit_and_loss_percentage,
            "transfer_tax": self.transfer_tax,
            "previous_day_market_value": self.previous_day_market_value,
            "previous_day_profit_and_loss": self.previous_day_profit_and_loss,
            "previous_day_profit_and_loss_percentage": self.previous_day_profit_and_loss_percentage,
        }


def profit_and_loss_percentage(profit_and_loss: Decimal, cost: Decimal) -> Decimal:
    """P&L as a percentage of |cost|; 100 for a gain on a zero cost basis."""
    if cost == 0:
        return HUNDRED if profit_and_loss > 0 else ZERO
    return profit_and_loss / abs(cost) * HUNDRED


def value_lot(
    lot: Lot,
    closing_price: Decimal,
    transfer_tax_rate: Decimal = DEFAULT_TRANSFER_TAX_RATE,
) -> LotValuation:
    market_value = Decimal(lot.share_quantity) * closing_price
    cost = -abs(lot.holding_cost)
    profit_and_loss = market_value + cost
    return LotValuation(
        security_code=lot.security_code,
        share_quantity=lot.share_quantity,
        closing_price=closing_price,
        market_value=market_value,
        cost=cost,
        profit_and_loss=profit_and_loss,
        profit_and_loss_percentage=profit_and_loss_percentage(profit_and_loss, cost),
        transfer_tax=market_value * transfer_tax_rate,
    )


def build_snapshot(
    member_id: int,
    day: date,
    lots: Iterable[Lot],
    closes: Mapping[str, Decimal],
    previous: PreviousSnapshot | None = None,
    transfer_tax_rate: Decimal = DEFAULT_TRANSFER_TAX_RATE,
) -> Snapshot:
    """Aggregate a member's open lots into one snapshot for ``day``.

    Args:
        member_id: Member the lots belong to
        day: Snapshot date
        lots: The member's lots (sold or empty lots are ignored)
        closes: Closing price per security code on or before ``day``
        previous: Latest snapshot strictly before ``day``, copied as-is
        transfer_tax_rate: Tax rate applied to market value

    A lot without a known close is valued at zero and listed in
    ``missing_prices``.
    """
    if previous is not None and previous.date >= day:
        raise ValueError(f"previous snapshot {previous.date} is not before {day}")

    valuations: list[LotValuation] = []
    missing: list[str] = []
    for lot in sorted(lots, key=lambda item: item.security_code):
        if not lot.is_open:
            continue
        close = closes.get(lot.security_code)
        if close is None:
            missing.append(lot.security_code)
            close = ZERO
        valuations.append(value_lot(lot, Decimal(close), transfer_tax_rate))

    market_value = sum((v.market_value for v in valuations), ZERO)
    cost = sum((v.cost for v in valuations), ZERO)
    profit_and_loss = market_value + cost

    if market_value > 0:
        valuations = [
            replace(v, ratio=v.market_value / market_value * HUNDRED)
            for v in valuations
        ]

    return Snapshot(
        member_id=member_id,
        date=day,
        market_value=market_value,
        cost=cost,
        profit_and_loss=profit_and_loss,
        profit_and_loss_percentage=profit_and_loss_percentage(profit_and_loss, cost),
        transfer_tax=sum((v.transfer_tax for v in valuations), ZERO),
        previous_day_market_value=previous.market_value if previous else ZERO,
        previous_day_profit_and_loss=previous.profit_and_loss if previous else ZERO,
        previous_day_profit_and_loss_percentage=(
            previous.profit_and_loss_percentage if previous else ZERO
        ),
        lots=tuple(valuations),
        missing_prices=tuple(missing),
    )
