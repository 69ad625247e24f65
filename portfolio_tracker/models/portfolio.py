"""Holding, transaction and watchlist models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portfolio_tracker.db.base import Base
from portfolio_tracker.models._common import ExactDecimal, new_id, utcnow
from portfolio_tracker.models.stock import Stock

TRANSACTION_TYPES = ("BUY", "SELL")


class Holding(Base):
    __tablename__ = "portfolio_holdings"
    __table_args__ = (
        UniqueConstraint("user_id", "stock_id", name="uq_holding_user_stock"),
        CheckConstraint("quantity >= 0", name="ck_holding_quantity_non_negative"),
        CheckConstraint("basis_quantity >= quantity", name="ck_holding_basis_covers_quantity"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    stock_id: Mapped[str] = mapped_column(String(36), ForeignKey("stocks.id", ondelete="CASCADE"))
    quantity: Mapped[int] = mapped_column(Integer)
    # average cost is cost_basis / basis_quantity; sells only lower quantity
    cost_basis: Mapped[Decimal] = mapped_column(ExactDecimal())
    basis_quantity: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    stock: Mapped[Stock] = relationship(lazy="joined")

    @property
    def average_cost(self) -> Decimal:
        if not self.basis_quantity:
            return Decimal("0")
        return Decimal(self.cost_basis) / self.basis_quantity


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "transaction_date"),
        CheckConstraint("quantity > 0", name="ck_transaction_quantity_positive"),
        CheckConstraint("price > 0", name="ck_transaction_price_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"))
    stock_id: Mapped[str] = mapped_column(String(36), ForeignKey("stocks.id", ondelete="CASCADE"))
    type: Mapped[str] = mapped_column(Enum(*TRANSACTION_TYPES, name="transaction_type"))
    price: Mapped[Decimal] = mapped_column(Numeric(20, 6))
    quantity: Mapped[int] = mapped_column(Integer)
    sector: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    stock: Mapped[Stock] = relationship(lazy="joined")


class WatchlistItem(Base):
    __tablename__ = "watchlist_items"
    __table_args__ = (UniqueConstraint("user_id", "stock_id", name="uq_watchlist_user_stock"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    stock_id: Mapped[str] = mapped_column(String(36), ForeignKey("stocks.id", ondelete="CASCADE"))
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    price_alert_high: Mapped[Optional[Decimal]] = mapped_column(Numeric(20, 6), nullable=True)
    price_alert_low: Mapped[Optional[Decimal]] = mapped_column(Numeric(20, 6), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    stock: Mapped[Stock] = relationship(lazy="joined")
