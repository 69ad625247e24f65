"""Per-user access to persisted holdings, transactions and stock references."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.config import DEFAULT_SECTOR
from portfolio_tracker.models import TRANSACTION_TYPES, Holding, Stock, Transaction
from portfolio_tracker.models._common import utcnow

logger = logging.getLogger(__name__)


class LedgerError(RuntimeError):
    """Raised when a ledger read or write cannot be completed."""


class StockNotFoundError(LedgerError):
    """Raised when a symbol has no stock row and none could be created."""


@dataclass(frozen=True)
class Position:
    """Share count plus the exact cost of the lot the average is taken over.

    ``basis_quantity`` is the share count at the last buy. Sells shrink
    ``quantity`` only, so the average cost never moves on a sell and no
    rounded average is ever fed back into the next buy.
    """

    quantity: int = 0
    cost_basis: Decimal = Decimal("0")
    basis_quantity: int = 0

    @property
    def average_cost(self) -> Decimal:
        if self.basis_quantity <= 0:
            return Decimal("0")
        return self.cost_basis / self.basis_quantity


@dataclass(frozen=True)
class HoldingRecord:
    id: str
    user_id: str
    stock_id: str
    symbol: str
    name: str
    sector: str
    quantity: int
    average_cost: Decimal
    logo_url: Optional[str] = None
    cost_basis: Optional[Decimal] = None
    basis_quantity: Optional[int] = None

    @property
    def position(self) -> Position:
        if self.cost_basis is None or self.basis_quantity is None:
            return Position(self.quantity, Decimal(self.average_cost) * self.quantity, self.quantity)
        return Position(self.quantity, self.cost_basis, self.basis_quantity)


@dataclass(frozen=True)
class TransactionRecord:
    id: str
    user_id: str
    stock_id: str
    symbol: str
    name: str
    sector: str
    type: str
    price: Decimal
    quantity: int
    timestamp: datetime
    notes: Optional[str] = None


@dataclass
class TransactionInput:
    """Normalized input for appending a ledger entry."""

    stock_id: str
    type: str
    price: Decimal
    quantity: int
    sector: str | None = None
    timestamp: datetime | None = None
    notes: str | None = None


def _holding_record(row: Holding) -> HoldingRecord:
    return HoldingRecord(
        id=row.id,
        user_id=row.user_id,
        stock_id=row.stock_id,
        symbol=row.stock.symbol,
        name=row.stock.name,
        sector=row.stock.sector or DEFAULT_SECTOR,
        quantity=int(row.quantity),
        average_cost=Decimal(row.average_cost),
        logo_url=row.stock.logo_url,
        cost_basis=Decimal(row.cost_basis),
        basis_quantity=int(row.basis_quantity),
    )


def _transaction_record(row: Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=row.id,
        user_id=row.user_id,
        stock_id=row.stock_id,
        symbol=row.stock.symbol,
        name=row.stock.name,
        # Sector as recorded at write time; older rows fall back to the stock
        sector=row.sector or row.stock.sector or DEFAULT_SECTOR,
        type=row.type,
        price=Decimal(row.price),
        quantity=int(row.quantity),
        timestamp=row.transaction_date,
        notes=row.notes,
    )


class LedgerStore:
    """Thin accessor over one user's rows; every query filters on ``user_id``."""

    def __init__(self, session: AsyncSession, user_id: str) -> None:
        self._session = session
        self.user_id = user_id

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def _commit(self, action: str) -> None:
        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise LedgerError(f"Failed to {action}: {exc}") from exc

    # Stocks

    async def find_stock(self, symbol: str) -> Stock | None:
        result = await self._session.execute(select(Stock).where(Stock.symbol == symbol))
        return result.scalars().first()

    async def create_stock(
        self,
        symbol: str,
        name: str,
        *,
        sector: str | None = None,
        logo_url: str | None = None,
    ) -> Stock:
        stock = Stock(symbol=symbol, name=name, sector=sector or DEFAULT_SECTOR, logo_url=logo_url)
        self._session.add(stock)
        await self._commit(f"create stock {symbol}")
        await self._session.refresh(stock)
        logger.info("Created stock reference %s (%s)", symbol, stock.sector)
        return stock

    # Holdings

    async def list_holdings(self) -> list[HoldingRecord]:
        result = await self._session.execute(
            select(Holding)
            .where(Holding.user_id == self.user_id)
            .order_by(Holding.created_at)
            .execution_options(populate_existing=True)
        )
        return [_holding_record(row) for row in result.scalars().unique().all()]

    async def _holding_row(self, holding_id: str) -> Holding | None:
        result = await self._session.execute(
            select(Holding)
            .where(Holding.id == holding_id, Holding.user_id == self.user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_holding(self, holding_id: str) -> HoldingRecord | None:
        row = await self._holding_row(holding_id)
        return _holding_record(row) if row is not None else None

    async def find_holding_for_stock(self, stock_id: str) -> HoldingRecord | None:
        result = await self._session.execute(
            select(Holding)
            .where(Holding.stock_id == stock_id, Holding.user_id == self.user_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalars().first()
        return _holding_record(row) if row is not None else None

    async def create_holding(self, stock_id: str, position: Position) -> HoldingRecord:
        row = Holding(
            user_id=self.user_id,
            stock_id=stock_id,
            quantity=position.quantity,
            cost_basis=position.cost_basis,
            basis_quantity=position.basis_quantity,
        )
        self._session.add(row)
        await self._commit("create holding")
        # Reload with the joined stock
        created = await self._holding_row(row.id)
        if created is None:
            raise LedgerError("Holding vanished after insert")
        return _holding_record(created)

    async def update_holding(self, holding_id: str, position: Position) -> HoldingRecord:
        row = await self._holding_row(holding_id)
        if row is None:
            raise LedgerError(f"Holding {holding_id} not found")
        row.quantity = position.quantity
        row.cost_basis = position.cost_basis
        row.basis_quantity = position.basis_quantity
        await self._commit("update holding")
        return _holding_record(row)

    async def delete_holding(self, holding_id: str) -> None:
        result = await self._session.execute(
            delete(Holding).where(Holding.id == holding_id, Holding.user_id == self.user_id)
        )
        if result.rowcount == 0:
            raise LedgerError(f"Holding {holding_id} not found")
        await self._commit("delete holding")

    # Transactions

    async def list_transactions(
        self,
        *,
        type: str | None = None,
        symbol: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TransactionRecord]:
        """Return the user's transactions, newest first, optionally filtered."""

        stmt = select(Transaction).where(Transaction.user_id == self.user_id)
        if type:
            stmt = stmt.where(Transaction.type == type.upper())
        if symbol:
            stmt = stmt.join(Transaction.stock).where(Stock.symbol == symbol.strip().upper())
        if start is not None:
            stmt = stmt.where(Transaction.transaction_date >= start)
        if end is not None:
            stmt = stmt.where(Transaction.transaction_date <= end)
        stmt = stmt.order_by(Transaction.transaction_date.desc()).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return [_transaction_record(row) for row in result.scalars().unique().all()]

    async def append_transaction(self, entry: TransactionInput) -> TransactionRecord:
        if entry.type not in TRANSACTION_TYPES:
            raise LedgerError(f"Unsupported transaction type {entry.type!r}")
        if entry.quantity <= 0 or entry.price <= 0:
            raise LedgerError("Transaction quantity and price must be positive")
        row = Transaction(
            user_id=self.user_id,
            stock_id=entry.stock_id,
            type=entry.type,
            price=entry.price,
            quantity=entry.quantity,
            sector=entry.sector,
            transaction_date=entry.timestamp or utcnow(),
            notes=entry.notes,
        )
        self._session.add(row)
        await self._commit(f"record {entry.type} transaction")
        result = await self._session.execute(
            select(Transaction)
            .where(Transaction.id == row.id)
            .execution_options(populate_existing=True)
        )
        return _transaction_record(result.scalars().one())

    async def retract_transaction(self, transaction_id: str) -> None:
        """Remove a transaction written by a trade that never completed."""

        result = await self._session.execute(
            delete(Transaction).where(Transaction.id == transaction_id, Transaction.user_id == self.user_id)
        )
        if result.rowcount == 0:
            raise LedgerError(f"Transaction {transaction_id} not found")
        await self._commit("retract transaction")
        logger.warning("Retracted transaction %s for user %s", transaction_id, self.user_id)


__all__ = [
    "HoldingRecord",
    "LedgerError",
    "LedgerStore",
    "Position",
    "StockNotFoundError",
    "TransactionInput",
    "TransactionRecord",
]
