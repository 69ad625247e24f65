"""Consistency check between stored holdings and a full ledger replay."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from portfolio_tracker.services.ledger import HoldingRecord, Position, TransactionRecord
from portfolio_tracker.services.valuation import ZERO, apply_buy_to_position, apply_sell_to_position

logger = logging.getLogger(__name__)

# Replay and storage share the exact cost basis; this only absorbs division noise
AVERAGE_COST_TOLERANCE = Decimal("0.000001")


@dataclass(frozen=True)
class HoldingMismatch:
    stock_id: str
    symbol: str
    holding_id: str | None
    stored_quantity: int
    replayed_quantity: int
    stored_average_cost: Decimal
    replayed_average_cost: Decimal

    @property
    def quantity_difference(self) -> int:
        return self.stored_quantity - self.replayed_quantity


@dataclass(frozen=True)
class ReconciliationReport:
    checked_count: int = 0
    mismatches: list[HoldingMismatch] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.mismatches


def _replay(entries: list[TransactionRecord]) -> Position:
    position = Position()
    for tx in sorted(entries, key=lambda item: (item.timestamp, 0 if item.type == "BUY" else 1)):
        if tx.type == "BUY":
            position = apply_buy_to_position(position, tx.quantity, tx.price)
        elif tx.type == "SELL":
            position = apply_sell_to_position(position, tx.quantity)
    return position


def reconcile_holdings(
    holdings: Iterable[HoldingRecord],
    transactions: Iterable[TransactionRecord],
) -> ReconciliationReport:
    """Compare each instrument's stored holding with its replayed ledger.

    Mismatches are reported and logged; nothing is corrected.
    """

    by_stock: dict[str, list[TransactionRecord]] = defaultdict(list)
    for tx in transactions:
        by_stock[tx.stock_id].append(tx)
    stored = {holding.stock_id: holding for holding in holdings}

    mismatches: list[HoldingMismatch] = []
    stock_ids = sorted(set(by_stock) | set(stored))
    for stock_id in stock_ids:
        holding = stored.get(stock_id)
        entries = by_stock.get(stock_id, [])
        replayed = _replay(entries)
        replayed_quantity, replayed_cost = replayed.quantity, replayed.average_cost
        stored_quantity = holding.quantity if holding is not None else 0
        stored_cost = Decimal(holding.average_cost) if holding is not None else ZERO

        cost_differs = replayed_quantity > 0 and abs(stored_cost - replayed_cost) > AVERAGE_COST_TOLERANCE
        if stored_quantity == replayed_quantity and not cost_differs:
            continue
        symbol = holding.symbol if holding is not None else entries[0].symbol
        mismatch = HoldingMismatch(
            stock_id=stock_id,
            symbol=symbol,
            holding_id=holding.id if holding is not None else None,
            stored_quantity=stored_quantity,
            replayed_quantity=replayed_quantity,
            stored_average_cost=stored_cost,
            replayed_average_cost=replayed_cost,
        )
        logger.warning(
            "Holding mismatch for %s: stored %s @ %s, ledger replay %s @ %s",
            symbol,
            stored_quantity,
            stored_cost,
            replayed_quantity,
            replayed_cost,
        )
        mismatches.append(mismatch)

    return ReconciliationReport(checked_count=len(stock_ids), mismatches=mismatches)


__all__ = ["HoldingMismatch", "ReconciliationReport", "reconcile_holdings"]
