"""Buy and sell as explicit sagas with compensating actions.

A buy resolves the stock, upserts the holding and then appends the ledger
entry; a sell appends the ledger entry first and then updates or removes
the holding. When a later step fails the earlier write is undone, and a
failed undo is reported as an inconsistent outcome rather than hidden.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from portfolio_tracker.services.ledger import (
    HoldingRecord,
    LedgerError,
    LedgerStore,
    Position,
    StockNotFoundError,
    TransactionInput,
)
from portfolio_tracker.services.quotes import StockProfile, normalize_symbol
from portfolio_tracker.services.valuation import apply_buy_to_position, apply_sell_to_position

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (LedgerError, SQLAlchemyError)


class ProfileSource(Protocol):
    async def get_profile(self, symbol: str) -> StockProfile | None:
        ...


class SagaState(str, enum.Enum):
    PENDING = "pending"
    REJECTED = "rejected"
    STOCK_RESOLVED = "stock_resolved"
    HOLDING_UPDATED = "holding_updated"
    TRANSACTION_RECORDED = "transaction_recorded"
    COMPLETED = "completed"
    COMPENSATED = "compensated"
    FAILED = "failed"


@dataclass
class TradeOutcome:
    side: str
    symbol: str | None = None
    state: SagaState = SagaState.PENDING
    holding_id: str | None = None
    transaction_id: str | None = None
    error: str | None = None
    inconsistent: bool = False
    steps: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state is SagaState.COMPLETED

    def advance(self, state: SagaState) -> None:
        self.state = state
        self.steps.append(state.value)

    def fail(self, state: SagaState, error: str) -> "TradeOutcome":
        self.error = error
        self.advance(state)
        return self


def _validate(quantity: Any, price: Any) -> tuple[int, Decimal] | str:
    try:
        quantity_value = Decimal(str(quantity))
        price_value = Decimal(str(price))
    except (InvalidOperation, ValueError):
        return "Quantity and price must be numbers"
    if (
        isinstance(quantity, bool)
        or not quantity_value.is_finite()
        or quantity_value != quantity_value.to_integral_value()
    ):
        return "Quantity must be a whole number of shares"
    if quantity_value <= 0:
        return "Quantity must be positive"
    if not price_value.is_finite() or price_value <= 0:
        return "Price must be positive"
    return int(quantity_value), price_value


async def _resolve_stock(ledger: LedgerStore, profiles: ProfileSource, symbol: str):
    stock = await ledger.find_stock(symbol)
    if stock is not None:
        return stock
    profile = await profiles.get_profile(symbol)
    if profile is None:
        raise StockNotFoundError(f"No stock reference or profile for {symbol}")
    return await ledger.create_stock(symbol, profile.name, sector=profile.sector, logo_url=profile.logo_url)


async def execute_buy(
    ledger: LedgerStore,
    profiles: ProfileSource,
    symbol: str,
    quantity: Any,
    price: Any,
    *,
    timestamp: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> TradeOutcome:
    """Run the buy saga; never raises."""

    key = normalize_symbol(symbol)
    outcome = TradeOutcome(side="BUY", symbol=key)
    if not key:
        return outcome.fail(SagaState.REJECTED, "Symbol must not be empty")
    validated = _validate(quantity, price)
    if isinstance(validated, str):
        return outcome.fail(SagaState.REJECTED, validated)
    qty, unit_price = validated

    try:
        stock = await _resolve_stock(ledger, profiles, key)
    except _STORAGE_ERRORS as exc:
        logger.warning("Buy %s for user %s aborted resolving stock: %s", key, ledger.user_id, exc)
        return outcome.fail(SagaState.FAILED, str(exc))
    outcome.advance(SagaState.STOCK_RESOLVED)

    previous: HoldingRecord | None = None
    try:
        previous = await ledger.find_holding_for_stock(stock.id)
        if previous is not None:
            holding = await ledger.update_holding(
                previous.id, apply_buy_to_position(previous.position, qty, unit_price)
            )
        else:
            holding = await ledger.create_holding(stock.id, apply_buy_to_position(Position(), qty, unit_price))
    except _STORAGE_ERRORS as exc:
        logger.warning("Buy %s for user %s failed updating holding: %s", key, ledger.user_id, exc)
        return outcome.fail(SagaState.FAILED, str(exc))
    outcome.holding_id = holding.id
    outcome.advance(SagaState.HOLDING_UPDATED)

    try:
        entry = await ledger.append_transaction(
            TransactionInput(
                stock_id=stock.id,
                type="BUY",
                price=unit_price,
                quantity=qty,
                sector=stock.sector,
                timestamp=timestamp,
                notes=notes,
            )
        )
    except _STORAGE_ERRORS as exc:
        logger.warning("Buy %s for user %s failed recording transaction: %s", key, ledger.user_id, exc)
        outcome.error = str(exc)
        try:
            if previous is not None:
                outcome.steps.append("restore_holding")
                await ledger.update_holding(previous.id, previous.position)
            else:
                outcome.steps.append("delete_holding")
                await ledger.delete_holding(holding.id)
        except _STORAGE_ERRORS as undo_exc:
            logger.error(
                "Buy %s for user %s left holding %s without a ledger entry: %s",
                key,
                ledger.user_id,
                holding.id,
                undo_exc,
            )
            outcome.inconsistent = True
            outcome.advance(SagaState.FAILED)
            return outcome
        outcome.holding_id = previous.id if previous is not None else None
        outcome.advance(SagaState.COMPENSATED)
        return outcome

    outcome.transaction_id = entry.id
    outcome.advance(SagaState.TRANSACTION_RECORDED)
    outcome.advance(SagaState.COMPLETED)
    logger.info("User %s bought %s %s @ %s", ledger.user_id, qty, key, unit_price)
    return outcome


async def execute_sell(
    ledger: LedgerStore,
    holding_id: str,
    quantity: Any,
    price: Any,
    *,
    timestamp: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> TradeOutcome:
    """Run the sell saga against the holding's stored quantity; never raises."""

    outcome = TradeOutcome(side="SELL", holding_id=holding_id)
    validated = _validate(quantity, price)
    if isinstance(validated, str):
        return outcome.fail(SagaState.REJECTED, validated)
    qty, unit_price = validated

    try:
        holding = await ledger.get_holding(holding_id)
    except _STORAGE_ERRORS as exc:
        logger.warning("Sell of holding %s for user %s aborted: %s", holding_id, ledger.user_id, exc)
        return outcome.fail(SagaState.FAILED, str(exc))
    if holding is None:
        return outcome.fail(SagaState.REJECTED, "Holding not found")
    outcome.symbol = holding.symbol
    if qty > holding.quantity:
        return outcome.fail(
            SagaState.REJECTED,
            f"Cannot sell {qty} shares of {holding.symbol}; only {holding.quantity} held",
        )

    try:
        entry = await ledger.append_transaction(
            TransactionInput(
                stock_id=holding.stock_id,
                type="SELL",
                price=unit_price,
                quantity=qty,
                sector=holding.sector,
                timestamp=timestamp,
                notes=notes,
            )
        )
    except _STORAGE_ERRORS as exc:
        logger.warning("Sell %s for user %s failed recording transaction: %s", holding.symbol, ledger.user_id, exc)
        return outcome.fail(SagaState.FAILED, str(exc))
    outcome.transaction_id = entry.id
    outcome.advance(SagaState.TRANSACTION_RECORDED)

    try:
        if qty == holding.quantity:
            await ledger.delete_holding(holding.id)
        else:
            await ledger.update_holding(holding.id, apply_sell_to_position(holding.position, qty))
    except _STORAGE_ERRORS as exc:
        logger.warning("Sell %s for user %s failed updating holding: %s", holding.symbol, ledger.user_id, exc)
        outcome.error = str(exc)
        outcome.steps.append("retract_transaction")
        try:
            await ledger.retract_transaction(entry.id)
        except _STORAGE_ERRORS as undo_exc:
            logger.error(
                "Sell %s for user %s recorded transaction %s but holding was not updated: %s",
                holding.symbol,
                ledger.user_id,
                entry.id,
                undo_exc,
            )
            outcome.inconsistent = True
            outcome.advance(SagaState.FAILED)
            return outcome
        outcome.transaction_id = None
        outcome.advance(SagaState.COMPENSATED)
        return outcome

    outcome.advance(SagaState.HOLDING_UPDATED)
    outcome.advance(SagaState.COMPLETED)
    logger.info("User %s sold %s %s @ %s", ledger.user_id, qty, holding.symbol, unit_price)
    return outcome


__all__ = [
    "ProfileSource",
    "SagaState",
    "TradeOutcome",
    "execute_buy",
    "execute_sell",
]
