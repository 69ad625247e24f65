"""The portfolio operations exposed to the API layer.

Every public coroutine returns its computed value or an empty/zeroed
default; failures are logged and absorbed here so callers only ever see a
falsy result.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.config import AppSettings, get_settings
from portfolio_tracker.services.history import PortfolioHistory, build_portfolio_history
from portfolio_tracker.services.ledger import LedgerStore, TransactionRecord
from portfolio_tracker.services.profit_loss import ProfitLossReport, compute_profit_loss
from portfolio_tracker.services.quotes import QuoteGateway, SymbolMatch
from portfolio_tracker.services.reconciliation import ReconciliationReport, reconcile_holdings
from portfolio_tracker.services.trading import SagaState, TradeOutcome, execute_buy, execute_sell
from portfolio_tracker.services.transaction_stats import TransactionStats, compute_transaction_stats
from portfolio_tracker.services.valuation import (
    EnrichedHolding,
    PortfolioSummary,
    SectorAllocation,
    compute_holdings_view,
    compute_sector_allocation,
    compute_summary,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AuthenticationRequired(RuntimeError):
    """Raised when a per-user operation runs without an authenticated user."""


class PortfolioService:
    """Portfolio operations for one user, bound to a session and the shared gateway."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: QuoteGateway,
        user_id: Optional[str],
        *,
        settings: AppSettings | None = None,
        rng: random.Random | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._gateway = gateway
        self.user_id = user_id
        self._settings = settings or get_settings()
        self._rng = rng
        self._now = now

    def _ledger(self) -> LedgerStore:
        if not self.user_id:
            raise AuthenticationRequired("No authenticated user")
        return LedgerStore(self._session, self.user_id)

    async def _absorb(self, operation: str, default: Callable[[], T], action: Callable[[], Awaitable[T]]) -> T:
        try:
            return await action()
        except AuthenticationRequired:
            logger.warning("%s aborted: no authenticated user", operation)
        except Exception:  # noqa: BLE001 - public operations never raise
            logger.exception("%s failed for user %s", operation, self.user_id)
            try:
                await self._session.rollback()
            except SQLAlchemyError:
                logger.exception("Rollback after %s failed", operation)
        return default()

    # Trading

    async def buy(self, symbol: str, quantity: Any, price: Any, *, notes: str | None = None) -> TradeOutcome:
        async def _run() -> TradeOutcome:
            return await execute_buy(self._ledger(), self._gateway, symbol, quantity, price, notes=notes)

        return await self._absorb(
            "buy",
            lambda: TradeOutcome(side="BUY", symbol=symbol, state=SagaState.REJECTED, error="Buy failed"),
            _run,
        )

    async def sell(self, holding_id: str, quantity: Any, price: Any, *, notes: str | None = None) -> TradeOutcome:
        async def _run() -> TradeOutcome:
            return await execute_sell(self._ledger(), holding_id, quantity, price, notes=notes)

        return await self._absorb(
            "sell",
            lambda: TradeOutcome(side="SELL", holding_id=holding_id, state=SagaState.REJECTED, error="Sell failed"),
            _run,
        )

    async def add_stock(self, symbol: str, quantity: Any, price: Any) -> bool:
        outcome = await self.buy(symbol, quantity, price)
        if not outcome.success:
            logger.warning("Failed to add %s to portfolio: %s", symbol, outcome.error)
        return outcome.success

    async def remove_stock(self, holding_id: str, quantity: Any, price: Any) -> bool:
        outcome = await self.sell(holding_id, quantity, price)
        if not outcome.success:
            logger.warning("Failed to sell holding %s: %s", holding_id, outcome.error)
        return outcome.success

    # Valuation

    async def get_portfolio_holdings(self) -> list[EnrichedHolding]:
        async def _run() -> list[EnrichedHolding]:
            holdings = await self._ledger().list_holdings()
            if not holdings:
                return []
            quotes = await self._gateway.get_quotes_batch(holding.symbol for holding in holdings)
            return compute_holdings_view(holdings, quotes)

        return await self._absorb("get_portfolio_holdings", list, _run)

    async def get_portfolio_summary(self, holdings: list[EnrichedHolding] | None = None) -> PortfolioSummary:
        async def _run() -> PortfolioSummary:
            enriched = holdings if holdings is not None else await self.get_portfolio_holdings()
            return compute_summary(enriched)

        return await self._absorb("get_portfolio_summary", PortfolioSummary, _run)

    async def get_sector_allocation(self, holdings: list[EnrichedHolding] | None = None) -> list[SectorAllocation]:
        async def _run() -> list[SectorAllocation]:
            enriched = holdings if holdings is not None else await self.get_portfolio_holdings()
            return compute_sector_allocation(enriched)

        return await self._absorb("get_sector_allocation", list, _run)

    # Ledger analytics

    async def get_user_transactions(
        self,
        *,
        type: str | None = None,
        symbol: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TransactionRecord]:
        async def _run() -> list[TransactionRecord]:
            return await self._ledger().list_transactions(type=type, symbol=symbol, start=start, end=end)

        return await self._absorb("get_user_transactions", list, _run)

    async def get_transaction_stats(self) -> TransactionStats:
        async def _run() -> TransactionStats:
            return compute_transaction_stats(await self._ledger().list_transactions())

        return await self._absorb("get_transaction_stats", TransactionStats, _run)

    async def calculate_profit_loss(self) -> ProfitLossReport:
        async def _run() -> ProfitLossReport:
            return compute_profit_loss(await self._ledger().list_transactions())

        return await self._absorb("calculate_profit_loss", ProfitLossReport, _run)

    async def get_portfolio_history(self) -> PortfolioHistory:
        async def _run() -> PortfolioHistory:
            ledger = self._ledger()
            transactions = await ledger.list_transactions()
            holdings = await ledger.list_holdings()
            if not transactions or not holdings:
                return PortfolioHistory()
            symbols = {holding.symbol for holding in holdings} | {tx.symbol for tx in transactions}
            quotes = await self._gateway.get_quotes_batch(sorted(symbols))
            return build_portfolio_history(
                transactions,
                holdings,
                quotes,
                now=self._now() if self._now is not None else None,
                rng=self._rng,
                settings=self._settings,
            )

        return await self._absorb("get_portfolio_history", PortfolioHistory, _run)

    async def reconcile_holdings(self) -> ReconciliationReport:
        async def _run() -> ReconciliationReport:
            ledger = self._ledger()
            return reconcile_holdings(await ledger.list_holdings(), await ledger.list_transactions())

        return await self._absorb("reconcile_holdings", ReconciliationReport, _run)

    # Market data

    async def search_stocks(self, query: str) -> list[SymbolMatch]:
        return await self._absorb("search_stocks", list, lambda: self._gateway.search_symbols(query))


__all__ = ["AuthenticationRequired", "PortfolioService"]
