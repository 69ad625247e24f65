"""Daily, weekly and monthly portfolio-value series for charting.

Share counts are rebuilt for each past day by undoing transactions from the
current holdings backwards, then valued at today's prices (no historical
prices are consulted). The last point of every series is the live portfolio
value, so period-change metrics computed from the series stay consistent
with the summary.
"""

from __future__ import annotations

import enum
import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

import pandas as pd

from portfolio_tracker.config import AppSettings, get_settings
from portfolio_tracker.services.ledger import HoldingRecord, TransactionRecord
from portfolio_tracker.services.quotes import Quote, normalize_symbol
from portfolio_tracker.services.valuation import ZERO

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
DAILY_JITTER = 0.005
WEEKLY_JITTER = 0.0025
MONTHLY_NOISE = 0.01
CURVE_START = Decimal("0.7")
CURVE_WEIGHT = Decimal("0.7")
REAL_WEIGHT = Decimal("0.3")
BLEND_RADIUS_DAYS = 7


class HistorySource(str, enum.Enum):
    JITTERED = "jittered"
    INTERPOLATED = "interpolated"
    BLENDED = "blended"
    LIVE = "live"


_SYNTHETIC_SOURCES = {HistorySource.JITTERED, HistorySource.INTERPOLATED, HistorySource.BLENDED}


@dataclass(frozen=True)
class HistoryPoint:
    date: date
    value: Decimal
    source: HistorySource

    @property
    def is_synthetic(self) -> bool:
        return self.source in _SYNTHETIC_SOURCES


@dataclass(frozen=True)
class PortfolioHistory:
    daily: list[HistoryPoint] = field(default_factory=list)
    weekly: list[HistoryPoint] = field(default_factory=list)
    monthly: list[HistoryPoint] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.daily or self.weekly or self.monthly)


def _money(value: Decimal) -> Decimal:
    rounded = value.quantize(_CENT)
    return ZERO.quantize(_CENT) if rounded <= 0 else rounded


def _jitter(value: Decimal, rng: random.Random, spread: float) -> Decimal:
    return value * Decimal(str(1 + rng.uniform(-spread, spread)))


def _value(shares: Mapping[str, int], prices: Mapping[str, Decimal]) -> Decimal:
    total = ZERO
    for symbol, quantity in shares.items():
        if quantity > 0:
            total += prices.get(symbol, ZERO) * quantity
    return total


def reconstruct_daily_values(
    transactions: Iterable[TransactionRecord],
    holdings: Iterable[HoldingRecord],
    prices: Mapping[str, Decimal],
    *,
    today: date,
    window_days: int,
) -> list[tuple[date, Decimal]]:
    """Value the as-of-day share counts for each of the last ``window_days`` days.

    Returned oldest first. Negative counts produced by an inconsistent ledger
    are valued as zero.
    """

    shares: dict[str, int] = defaultdict(int)
    for holding in holdings:
        shares[normalize_symbol(holding.symbol)] += int(holding.quantity)

    newest_first = sorted(transactions, key=lambda tx: tx.timestamp, reverse=True)
    cursor = 0
    points: list[tuple[date, Decimal]] = []
    for offset in range(window_days):
        day = today - timedelta(days=offset)
        # Undo everything that happened after this day
        while cursor < len(newest_first) and newest_first[cursor].timestamp.date() > day:
            tx = newest_first[cursor]
            symbol = normalize_symbol(tx.symbol)
            if tx.type == "BUY":
                shares[symbol] -= int(tx.quantity)
            elif tx.type == "SELL":
                shares[symbol] += int(tx.quantity)
            cursor += 1
        points.append((day, _value(shares, prices)))
    points.reverse()
    return points


def _daily_series(
    reconstructed: Sequence[tuple[date, Decimal]],
    current_value: Decimal,
    rng: random.Random,
    count: int,
) -> list[HistoryPoint]:
    recent = list(reconstructed[-count:])
    series = [
        HistoryPoint(day, _money(_jitter(value, rng, DAILY_JITTER)), HistorySource.JITTERED)
        for day, value in recent[:-1]
    ]
    series.append(HistoryPoint(recent[-1][0], current_value, HistorySource.LIVE))
    return series


def _weekly_series(
    reconstructed: Sequence[tuple[date, Decimal]],
    current_value: Decimal,
    rng: random.Random,
    count: int,
) -> list[HistoryPoint]:
    values = dict(reconstructed)
    series = pd.Series(
        [float(value) for _, value in reconstructed],
        index=pd.to_datetime([day for day, _ in reconstructed]),
    )
    calendar = series.index.isocalendar()
    # Last observed day of each ISO week, oldest first
    week_ends = series.groupby([calendar["year"].to_numpy(), calendar["week"].to_numpy()]).tail(1)
    days = [stamp.date() for stamp in week_ends.index[-count:]]

    points = [
        HistoryPoint(day, _money(_jitter(values[day], rng, WEEKLY_JITTER)), HistorySource.JITTERED)
        for day in days[:-1]
    ]
    points.append(HistoryPoint(days[-1], current_value, HistorySource.LIVE))
    return points


def _nearest_real(day: date, values: Mapping[date, Decimal]) -> Decimal | None:
    for distance in range(BLEND_RADIUS_DAYS + 1):
        for candidate in (day - timedelta(days=distance), day + timedelta(days=distance)):
            if candidate in values:
                return values[candidate]
    return None


def _monthly_series(
    reconstructed: Sequence[tuple[date, Decimal]],
    current_value: Decimal,
    rng: random.Random,
    *,
    today: date,
    window_days: int,
    count: int,
) -> list[HistoryPoint]:
    values = dict(reconstructed)
    steps = count - 1
    points: list[HistoryPoint] = []
    for index in range(steps):
        day = today - timedelta(days=round(window_days * (steps - index) / steps))
        progress = Decimal(index) / Decimal(steps)
        growth = CURVE_START + (1 - CURVE_START) * progress
        curve = current_value * growth * Decimal(str(1 + rng.uniform(-MONTHLY_NOISE, MONTHLY_NOISE)))
        real = _nearest_real(day, values)
        if real is None:
            point = HistoryPoint(day, _money(curve), HistorySource.INTERPOLATED)
        else:
            point = HistoryPoint(day, _money(CURVE_WEIGHT * curve + REAL_WEIGHT * real), HistorySource.BLENDED)
        # Short windows can map two steps onto one day; keep the later one
        if points and points[-1].date >= day:
            points.pop()
        points.append(point)
    if points and points[-1].date >= today:
        points.pop()
    points.append(HistoryPoint(today, current_value, HistorySource.LIVE))
    return points


def build_portfolio_history(
    transactions: Sequence[TransactionRecord],
    holdings: Sequence[HoldingRecord],
    quotes: Mapping[str, Quote],
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
    settings: AppSettings | None = None,
) -> PortfolioHistory:
    """Build the three chart series; empty when there is nothing to value."""

    if not transactions or not holdings:
        return PortfolioHistory()

    settings = settings or get_settings()
    rng = rng or random.Random()
    today = (now or datetime.now(timezone.utc)).date()
    prices = {symbol: quote.current_price for symbol, quote in quotes.items()}
    current_value = _value(
        {normalize_symbol(holding.symbol): int(holding.quantity) for holding in holdings},
        prices,
    )

    reconstructed = reconstruct_daily_values(
        transactions,
        holdings,
        prices,
        today=today,
        window_days=settings.history_window_days,
    )
    history = PortfolioHistory(
        daily=_daily_series(reconstructed, current_value, rng, settings.history_daily_points),
        weekly=_weekly_series(reconstructed, current_value, rng, settings.history_weekly_points),
        monthly=_monthly_series(
            reconstructed,
            current_value,
            rng,
            today=today,
            window_days=settings.history_window_days,
            count=settings.history_monthly_points,
        ),
    )
    logger.debug(
        "Built history with %s/%s/%s points, current value %s",
        len(history.daily),
        len(history.weekly),
        len(history.monthly),
        current_value,
    )
    return history


__all__ = [
    "HistoryPoint",
    "HistorySource",
    "PortfolioHistory",
    "build_portfolio_history",
    "reconstruct_daily_values",
]
