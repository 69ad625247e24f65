"""Holding valuation and portfolio-level aggregates.

Everything here is a pure function of holdings and quotes; nothing is
persisted and calling any function twice with the same inputs yields the
same output.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, getcontext
from typing import Iterable, Mapping, Sequence

from portfolio_tracker.config import DEFAULT_SECTOR
from portfolio_tracker.services.ledger import HoldingRecord, Position
from portfolio_tracker.services.quotes import Quote, normalize_symbol

getcontext().prec = 28

ZERO = Decimal("0")
HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def _clean(value: Decimal) -> Decimal:
    """Collapse negative zero so serialized output never shows ``-0``."""

    return ZERO if value == 0 else value


def percent_of(numerator: Decimal, denominator: Decimal) -> Decimal:
    """``numerator / denominator * 100``, or 0 when the denominator is 0."""

    if denominator == 0:
        return ZERO
    return _clean(numerator / denominator * HUNDRED)


@dataclass(frozen=True)
class EnrichedHolding:
    id: str
    stock_id: str
    symbol: str
    name: str
    sector: str
    quantity: int
    average_cost: Decimal
    current_price: Decimal
    market_value: Decimal
    cost_basis: Decimal
    unrealized_profit: Decimal
    unrealized_profit_percent: Decimal
    daily_change: Decimal
    daily_change_percent: Decimal
    quote_source: str | None = None
    logo_url: str | None = None


@dataclass(frozen=True)
class PortfolioSummary:
    total_value: Decimal = ZERO
    total_cost: Decimal = ZERO
    total_profit: Decimal = ZERO
    total_profit_percent: Decimal = ZERO
    stock_count: int = 0
    daily_change: Decimal = ZERO
    daily_change_percent: Decimal = ZERO


@dataclass(frozen=True)
class SectorAllocation:
    name: str
    value: Decimal
    percentage: Decimal
    holding_count: int


def enrich_holding(holding: HoldingRecord, quote: Quote | None) -> EnrichedHolding:
    """Attach market data to one holding.

    A missing quote yields price 0 and zeroed derived fields instead of
    dropping the holding.
    """

    quantity = Decimal(holding.quantity)
    average_cost = Decimal(holding.average_cost)
    sector = holding.sector or DEFAULT_SECTOR
    if quote is None:
        return EnrichedHolding(
            id=holding.id,
            stock_id=holding.stock_id,
            symbol=holding.symbol,
            name=holding.name,
            sector=sector,
            quantity=holding.quantity,
            average_cost=average_cost,
            current_price=ZERO,
            market_value=ZERO,
            cost_basis=ZERO,
            unrealized_profit=ZERO,
            unrealized_profit_percent=ZERO,
            daily_change=ZERO,
            daily_change_percent=ZERO,
            logo_url=holding.logo_url,
        )

    price = quote.current_price
    market_value = price * quantity
    cost_basis = average_cost * quantity
    unrealized = (price - average_cost) * quantity
    return EnrichedHolding(
        id=holding.id,
        stock_id=holding.stock_id,
        symbol=holding.symbol,
        name=holding.name,
        sector=sector,
        quantity=holding.quantity,
        average_cost=average_cost,
        current_price=price,
        market_value=_clean(market_value),
        cost_basis=_clean(cost_basis),
        unrealized_profit=_clean(unrealized),
        unrealized_profit_percent=percent_of(unrealized, cost_basis),
        daily_change=_clean(quote.change * quantity),
        daily_change_percent=_clean(quote.percent_change),
        quote_source=quote.source.value,
        logo_url=holding.logo_url,
    )


def compute_holdings_view(
    holdings: Iterable[HoldingRecord],
    quotes: Mapping[str, Quote],
) -> list[EnrichedHolding]:
    """Value every holding against ``quotes`` keyed by symbol."""

    return [enrich_holding(holding, quotes.get(normalize_symbol(holding.symbol))) for holding in holdings]


def compute_summary(holdings: Sequence[EnrichedHolding]) -> PortfolioSummary:
    if not holdings:
        return PortfolioSummary()

    total_value = sum((holding.market_value for holding in holdings), ZERO)
    total_cost = sum((holding.average_cost * holding.quantity for holding in holdings), ZERO)
    total_profit = total_value - total_cost
    daily_change = sum((holding.daily_change for holding in holdings), ZERO)
    # Percent change relative to yesterday's value
    previous_value = total_value - daily_change
    return PortfolioSummary(
        total_value=_clean(total_value),
        total_cost=_clean(total_cost),
        total_profit=_clean(total_profit),
        total_profit_percent=percent_of(total_profit, total_cost),
        stock_count=len(holdings),
        daily_change=_clean(daily_change),
        daily_change_percent=percent_of(daily_change, previous_value),
    )


def compute_sector_allocation(holdings: Sequence[EnrichedHolding]) -> list[SectorAllocation]:
    values: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for holding in holdings:
        sector = holding.sector or DEFAULT_SECTOR
        values[sector] += holding.market_value
        counts[sector] += 1

    total = sum(values.values(), ZERO)
    allocations = [
        SectorAllocation(
            name=sector,
            value=_clean(value),
            percentage=percent_of(value, total),
            holding_count=counts[sector],
        )
        for sector, value in values.items()
    ]
    allocations.sort(key=lambda item: (-item.value, item.name))
    return allocations


# Position arithmetic shared by the trade saga and reconciliation


def apply_buy_to_position(position: Position, buy_quantity: int, buy_price: Decimal) -> Position:
    """Position after adding ``buy_quantity`` shares at ``buy_price``.

    The new cost basis is the exact sum of what the held shares cost plus
    ``buy_price * buy_quantity``, so the resulting average does not depend on
    the order of the buys.
    """

    new_quantity = position.quantity + buy_quantity
    if new_quantity <= 0:
        return Position()
    price = Decimal(buy_price)
    if position.quantity <= 0 or position.basis_quantity <= 0:
        return Position(new_quantity, price * buy_quantity, new_quantity)
    if position.quantity == position.basis_quantity:
        carried = Decimal(position.cost_basis)
    else:
        carried = Decimal(position.cost_basis) * position.quantity / position.basis_quantity
    return Position(new_quantity, carried + price * buy_quantity, new_quantity)


def apply_sell_to_position(position: Position, sell_quantity: int) -> Position:
    """Sells only reduce the share count; average cost is untouched."""

    remaining = max(position.quantity - sell_quantity, 0)
    if remaining == 0:
        return Position()
    return Position(remaining, position.cost_basis, position.basis_quantity)


def round_money(value: Decimal) -> Decimal:
    return _clean(Decimal(value).quantize(_CENT))


__all__ = [
    "EnrichedHolding",
    "PortfolioSummary",
    "Position",
    "SectorAllocation",
    "apply_buy_to_position",
    "apply_sell_to_position",
    "compute_holdings_view",
    "compute_sector_allocation",
    "compute_summary",
    "enrich_holding",
    "percent_of",
    "round_money",
]
