"""Buy/sell saga tests against a temporary SQLite database."""

from __future__ import annotations

import itertools
from decimal import Decimal
from pathlib import Path

import pytest

from portfolio_tracker.db.session import Database
from portfolio_tracker.models import User
from portfolio_tracker.services.ledger import LedgerError, LedgerStore
from portfolio_tracker.services.quotes import StockProfile
from portfolio_tracker.services.trading import SagaState, execute_buy, execute_sell


class StaticProfiles:
    def __init__(self, known: dict[str, str] | None = None) -> None:
        self.known = known if known is not None else {"AAPL": "Apple Inc", "MSFT": "Microsoft Corp"}

    async def get_profile(self, symbol: str) -> StockProfile | None:
        name = self.known.get(symbol)
        if name is None:
            return None
        return StockProfile(symbol=symbol, name=name, sector="Technology")


class FailingAppendLedger(LedgerStore):
    async def append_transaction(self, entry):
        raise LedgerError("disk full")


class FailingUndoLedger(FailingAppendLedger):
    async def delete_holding(self, holding_id: str) -> None:
        raise LedgerError("database locked")


class FailingHoldingLedger(LedgerStore):
    async def update_holding(self, holding_id, position):
        raise LedgerError("database locked")

    async def delete_holding(self, holding_id: str) -> None:
        raise LedgerError("database locked")


async def _database(tmp_path: Path) -> tuple[Database, str]:
    database = Database(url=f"sqlite+aiosqlite:///{tmp_path / 'trading.db'}")
    await database.create_all()
    async with database.session() as session:
        user = User(name="Alex", email="alex@example.com", password_hash="not-a-real-hash")
        session.add(user)
        await session.commit()
        return database, user.id


@pytest.mark.asyncio
async def test_buy_creates_holding_and_transaction(tmp_path: Path):
    database, user_id = await _database(tmp_path)
    async with database.session() as session:
        ledger = LedgerStore(session, user_id)
        outcome = await execute_buy(ledger, StaticProfiles(), "aapl", 10, "100")

        assert outcome.success
        assert outcome.symbol == "AAPL"
        assert outcome.steps == ["stock_resolved", "holding_updated", "transaction_recorded", "completed"]
        holdings = await ledger.list_holdings()
        assert [(h.symbol, h.quantity, h.average_cost) for h in holdings] == [("AAPL", 10, Decimal("100"))]
        assert holdings[0].sector == "Technology"
        transactions = await ledger.list_transactions()
        assert [(t.type, t.quantity, t.id) for t in transactions] == [("BUY", 10, outcome.transaction_id)]
    await database.dispose()


@pytest.mark.asyncio
async def test_second_buy_updates_weighted_average(tmp_path: Path):
    database, user_id = await _database(tmp_path)
    async with database.session() as session:
        ledger = LedgerStore(session, user_id)
        first = await execute_buy(ledger, StaticProfiles(), "AAPL", 10, 100)
        second = await execute_buy(ledger, StaticProfiles(), "AAPL", 10, 120)

        assert second.holding_id == first.holding_id
        holding = await ledger.get_holding(first.holding_id)
        assert holding.quantity == 20
        assert holding.average_cost == Decimal("110")
        assert len(await ledger.list_transactions()) == 2
    await database.dispose()


@pytest.mark.asyncio
async def test_average_cost_does_not_depend_on_buy_order(tmp_path: Path):
    database, _ = await _database(tmp_path)
    buys = [(1, "1"), (2, "2"), (3, "10")]
    averages = []
    async with database.session() as session:
        for index, order in enumerate(itertools.permutations(buys)):
            user = User(name=f"Order {index}", email=f"order{index}@example.com", password_hash="not-a-real-hash")
            session.add(user)
            await session.commit()
            ledger = LedgerStore(session, user.id)
            for quantity, price in order:
                outcome = await execute_buy(ledger, StaticProfiles(), "AAPL", quantity, price)
                assert outcome.success
            (holding,) = await ledger.list_holdings()
            assert holding.quantity == 6
            assert holding.cost_basis == Decimal("35")
            averages.append(holding.average_cost)
    assert set(averages) == {Decimal(35) / Decimal(6)}
    await database.dispose()


@pytest.mark.asyncio
async def test_invalid_trades_are_rejected_without_writes(tmp_path: Path):
    database, user_id = await _database(tmp_path)
    async with database.session() as session:
        ledger = LedgerStore(session, user_id)
        for quantity, price in ((0, 100), (-3, 100), (1.5, 100), ("abc", 100), (5, 0), (5, "nan")):
            outcome = await execute_buy(ledger, StaticProfiles(), "AAPL", quantity, price)
            assert outcome.state is SagaState.REJECTED, (quantity, price)
        blank = await execute_buy(ledger, StaticProfiles(), "  ", 1, 10)
        assert blank.state is SagaState.REJECTED
        assert await ledger.list_holdings() == []
        assert await ledger.list_transactions() == []
    await database.dispose()


@pytest.mark.asyncio
async def test_unknown_symbol_fails_before_any_write(tmp_path: Path):
    database, user_id = await _database(tmp_path)
    async with database.session() as session:
        ledger = LedgerStore(session, user_id)
        outcome = await execute_buy(ledger, StaticProfiles(known={}), "ZZZZ", 1, 10)
        assert outcome.state is SagaState.FAILED
        assert "ZZZZ" in outcome.error
        assert await ledger.list_holdings() == []
    await database.dispose()


@pytest.mark.asyncio
async def test_partial_and_full_sell(tmp_path: Path):
    database, user_id = await _database(tmp_path)
    async with database.session() as session:
        ledger = LedgerStore(session, user_id)
        bought = await execute_buy(ledger, StaticProfiles(), "AAPL", 10, 100)

        too_many = await execute_sell(ledger, bought.holding_id, 11, 150)
        assert too_many.state is SagaState.REJECTED
        missing = await execute_sell(ledger, "no-such-holding", 1, 150)
        assert missing.state is SagaState.REJECTED

        partial = await execute_sell(ledger, bought.holding_id, 4, 150)
        assert partial.success
        holding = await ledger.get_holding(bought.holding_id)
        assert holding.quantity == 6
        assert holding.average_cost == Decimal("100")

        closed = await execute_sell(ledger, bought.holding_id, 6, 90)
        assert closed.success
        assert await ledger.list_holdings() == []
        transactions = await ledger.list_transactions(type="SELL")
        assert sorted(t.quantity for t in transactions) == [4, 6]
    await database.dispose()


@pytest.mark.asyncio
async def test_failed_ledger_write_removes_new_holding(tmp_path: Path):
    database, user_id = await _database(tmp_path)
    async with database.session() as session:
        outcome = await execute_buy(FailingAppendLedger(session, user_id), StaticProfiles(), "AAPL", 10, 100)
        assert outcome.state is SagaState.COMPENSATED
        assert "delete_holding" in outcome.steps
        assert outcome.holding_id is None
        assert not outcome.inconsistent
        assert await LedgerStore(session, user_id).list_holdings() == []
    await database.dispose()


@pytest.mark.asyncio
async def test_failed_ledger_write_restores_previous_position(tmp_path: Path):
    database, user_id = await _database(tmp_path)
    async with database.session() as session:
        ledger = LedgerStore(session, user_id)
        bought = await execute_buy(ledger, StaticProfiles(), "AAPL", 10, 100)

        outcome = await execute_buy(FailingAppendLedger(session, user_id), StaticProfiles(), "AAPL", 10, 120)
        assert outcome.state is SagaState.COMPENSATED
        assert "restore_holding" in outcome.steps
        holding = await ledger.get_holding(bought.holding_id)
        assert holding.quantity == 10
        assert holding.average_cost == Decimal("100")
    await database.dispose()


@pytest.mark.asyncio
async def test_failed_compensation_is_reported_as_inconsistent(tmp_path: Path):
    database, user_id = await _database(tmp_path)
    async with database.session() as session:
        outcome = await execute_buy(FailingUndoLedger(session, user_id), StaticProfiles(), "AAPL", 10, 100)
        assert outcome.state is SagaState.FAILED
        assert outcome.inconsistent
        assert not outcome.success
    await database.dispose()


@pytest.mark.asyncio
async def test_failed_holding_update_retracts_sell(tmp_path: Path):
    database, user_id = await _database(tmp_path)
    async with database.session() as session:
        ledger = LedgerStore(session, user_id)
        bought = await execute_buy(ledger, StaticProfiles(), "AAPL", 10, 100)

        outcome = await execute_sell(FailingHoldingLedger(session, user_id), bought.holding_id, 10, 150)
        assert outcome.state is SagaState.COMPENSATED
        assert outcome.steps == ["transaction_recorded", "retract_transaction", "compensated"]
        assert outcome.transaction_id is None
        assert [t.type for t in await ledger.list_transactions()] == ["BUY"]
        assert (await ledger.get_holding(bought.holding_id)).quantity == 10
    await database.dispose()


@pytest.mark.asyncio
async def test_partial_sell_after_two_buys_keeps_average(tmp_path: Path):
    database, user_id = await _database(tmp_path)
    async with database.session() as session:
        ledger = LedgerStore(session, user_id)
        await execute_buy(ledger, StaticProfiles(), "AAPL", 10, 100)
        bought = await execute_buy(ledger, StaticProfiles(), "AAPL", 10, 120)

        sold = await execute_sell(ledger, bought.holding_id, 15, 150)
        assert sold.success
        holding = await ledger.get_holding(bought.holding_id)
        assert (holding.quantity, holding.average_cost) == (5, Decimal("110"))
    await database.dispose()
