"""Realized profit/loss reconstructed from the transaction ledger."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, getcontext
from typing import Iterable

from portfolio_tracker.config import DEFAULT_SECTOR
from portfolio_tracker.services.ledger import TransactionRecord
from portfolio_tracker.services.valuation import HUNDRED, ZERO

getcontext().prec = 28

logger = logging.getLogger(__name__)

ONE = Decimal("1")
SELL_WITHOUT_POSITION = "sell_without_position"
OVERSELL = "oversell"


@dataclass(frozen=True)
class LedgerAnomaly:
    kind: str
    transaction_id: str
    stock_id: str
    symbol: str
    quantity: int
    shares_held: int
    excess_quantity: int
    timestamp: datetime


@dataclass(frozen=True)
class SectorProfitLoss:
    sector: str
    profit: Decimal
    loss: Decimal
    net_profit_loss: Decimal
    profit_loss_percentage: Decimal
    investment: Decimal
    transaction_count: int


@dataclass(frozen=True)
class ProfitLossReport:
    total_profit: Decimal = ZERO
    total_loss: Decimal = ZERO
    net_profit_loss: Decimal = ZERO
    profit_loss_percentage: Decimal = ZERO
    total_investment: Decimal = ZERO
    sector_profit_loss: list[SectorProfitLoss] = field(default_factory=list)
    anomalies: list[LedgerAnomaly] = field(default_factory=list)


@dataclass
class _SectorTotals:
    profit: Decimal = ZERO
    loss: Decimal = ZERO
    investment: Decimal = ZERO
    transaction_count: int = 0


def _floored_percent(net: Decimal, investment: Decimal) -> Decimal:
    value = net / max(ONE, investment) * HUNDRED
    return ZERO if value == 0 else value


def _replay_order(tx: TransactionRecord) -> tuple[datetime, int]:
    # Same-instant buys settle before sells
    return tx.timestamp, 0 if tx.type == "BUY" else 1


def compute_profit_loss(transactions: Iterable[TransactionRecord]) -> ProfitLossReport:
    """Replay each instrument's ledger against its running average cost.

    Each instrument is attributed to the sector recorded on its earliest
    transaction. Sells with no shares held contribute nothing and are
    reported as anomalies, as are sells larger than the shares held.
    """

    by_stock: dict[str, list[TransactionRecord]] = defaultdict(list)
    for tx in transactions:
        by_stock[tx.stock_id].append(tx)

    sectors: dict[str, _SectorTotals] = defaultdict(_SectorTotals)
    anomalies: list[LedgerAnomaly] = []
    total_profit = ZERO
    total_loss = ZERO
    total_investment = ZERO

    for stock_id, entries in by_stock.items():
        entries.sort(key=_replay_order)
        bucket = sectors[entries[0].sector or DEFAULT_SECTOR]
        shares_held = 0
        cost_basis = ZERO

        for tx in entries:
            bucket.transaction_count += 1
            quantity = int(tx.quantity)
            price = Decimal(tx.price)
            if tx.type == "BUY":
                amount = price * quantity
                shares_held += quantity
                cost_basis += amount
                bucket.investment += amount
                total_investment += amount
                continue
            if tx.type != "SELL":
                continue

            if shares_held <= 0:
                anomalies.append(
                    LedgerAnomaly(
                        kind=SELL_WITHOUT_POSITION,
                        transaction_id=tx.id,
                        stock_id=stock_id,
                        symbol=tx.symbol,
                        quantity=quantity,
                        shares_held=0,
                        excess_quantity=quantity,
                        timestamp=tx.timestamp,
                    )
                )
                continue

            if quantity > shares_held:
                anomalies.append(
                    LedgerAnomaly(
                        kind=OVERSELL,
                        transaction_id=tx.id,
                        stock_id=stock_id,
                        symbol=tx.symbol,
                        quantity=quantity,
                        shares_held=shares_held,
                        excess_quantity=quantity - shares_held,
                        timestamp=tx.timestamp,
                    )
                )

            average_cost = cost_basis / shares_held
            cost_of_sale = average_cost * quantity
            pnl = price * quantity - cost_of_sale
            if pnl >= 0:
                total_profit += pnl
                bucket.profit += pnl
            else:
                total_loss += -pnl
                bucket.loss += -pnl

            shares_held -= quantity
            cost_basis -= cost_of_sale
            if shares_held <= 0:
                shares_held = 0
                cost_basis = ZERO

    for anomaly in anomalies:
        logger.warning(
            "Ledger anomaly %s on %s (transaction %s): sold %s with %s held",
            anomaly.kind,
            anomaly.symbol,
            anomaly.transaction_id,
            anomaly.quantity,
            anomaly.shares_held,
        )

    sector_rows = [
        SectorProfitLoss(
            sector=sector,
            profit=totals.profit,
            loss=totals.loss,
            net_profit_loss=totals.profit - totals.loss,
            profit_loss_percentage=_floored_percent(totals.profit - totals.loss, totals.investment),
            investment=totals.investment,
            transaction_count=totals.transaction_count,
        )
        for sector, totals in sectors.items()
    ]
    sector_rows.sort(key=lambda row: (-row.net_profit_loss, row.sector))

    net = total_profit - total_loss
    return ProfitLossReport(
        total_profit=total_profit,
        total_loss=total_loss,
        net_profit_loss=ZERO if net == 0 else net,
        profit_loss_percentage=_floored_percent(net, total_investment),
        total_investment=total_investment,
        sector_profit_loss=sector_rows,
        anomalies=anomalies,
    )


__all__ = [
    "LedgerAnomaly",
    "OVERSELL",
    "ProfitLossReport",
    "SELL_WITHOUT_POSITION",
    "SectorProfitLoss",
    "compute_profit_loss",
]
