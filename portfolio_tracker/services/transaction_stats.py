"""Buy/sell statistics and monthly flow summaries over a user's ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

import pandas as pd

from portfolio_tracker.services.ledger import TransactionRecord
from portfolio_tracker.services.valuation import ZERO, percent_of, round_money


@dataclass(frozen=True)
class MonthlySummary:
    month: str
    buy_amount: Decimal
    sell_amount: Decimal
    transaction_count: int


@dataclass(frozen=True)
class TransactionStats:
    total_buys: int = 0
    total_sells: int = 0
    total_buy_amount: Decimal = ZERO
    total_sell_amount: Decimal = ZERO
    buy_percentage: Decimal = ZERO
    sell_percentage: Decimal = ZERO
    monthly_summary: list[MonthlySummary] = field(default_factory=list)


def _monthly_summary(transactions: list[TransactionRecord]) -> list[MonthlySummary]:
    frame = pd.DataFrame(
        [
            {
                "month": tx.timestamp.strftime("%Y-%m"),
                "type": tx.type,
                "amount": float(Decimal(tx.price) * tx.quantity),
            }
            for tx in transactions
        ]
    )
    frame["buy_amount"] = frame["amount"].where(frame["type"] == "BUY", 0.0)
    frame["sell_amount"] = frame["amount"].where(frame["type"] == "SELL", 0.0)
    grouped = frame.groupby("month", sort=True).agg(
        buy_amount=("buy_amount", "sum"),
        sell_amount=("sell_amount", "sum"),
        transaction_count=("type", "size"),
    )
    return [
        MonthlySummary(
            month=str(row.Index),
            buy_amount=round_money(Decimal(str(row.buy_amount))),
            sell_amount=round_money(Decimal(str(row.sell_amount))),
            transaction_count=int(row.transaction_count),
        )
        for row in grouped.itertuples()
    ]


def compute_transaction_stats(transactions: Iterable[TransactionRecord]) -> TransactionStats:
    entries = [tx for tx in transactions if tx.type in ("BUY", "SELL")]
    if not entries:
        return TransactionStats()

    buys = [tx for tx in entries if tx.type == "BUY"]
    sells = [tx for tx in entries if tx.type == "SELL"]
    total = Decimal(len(entries))
    return TransactionStats(
        total_buys=len(buys),
        total_sells=len(sells),
        total_buy_amount=sum((Decimal(tx.price) * tx.quantity for tx in buys), ZERO),
        total_sell_amount=sum((Decimal(tx.price) * tx.quantity for tx in sells), ZERO),
        buy_percentage=percent_of(Decimal(len(buys)), total),
        sell_percentage=percent_of(Decimal(len(sells)), total),
        monthly_summary=_monthly_summary(entries),
    )


__all__ = ["MonthlySummary", "TransactionStats", "compute_transaction_stats"]
