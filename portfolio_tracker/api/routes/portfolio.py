"""Portfolio endpoints: holdings, trades, ledger analytics and history."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from portfolio_tracker.api.dependencies import get_portfolio_service
from portfolio_tracker.schemas import (
    BuyRequest,
    EnrichedHoldingSchema,
    PortfolioHistorySchema,
    PortfolioSummarySchema,
    ProfitLossSchema,
    ReconciliationSchema,
    SectorAllocationSchema,
    SellRequest,
    TradeOutcomeSchema,
    TransactionSchema,
    TransactionStatsSchema,
)
from portfolio_tracker.services.portfolio import PortfolioService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/holdings", response_model=list[EnrichedHoldingSchema])
async def list_holdings(service: PortfolioService = Depends(get_portfolio_service)) -> list[EnrichedHoldingSchema]:
    holdings = await service.get_portfolio_holdings()
    return [EnrichedHoldingSchema.model_validate(holding) for holding in holdings]


@router.get("/summary", response_model=PortfolioSummarySchema)
async def portfolio_summary(service: PortfolioService = Depends(get_portfolio_service)) -> PortfolioSummarySchema:
    summary = await service.get_portfolio_summary()
    return PortfolioSummarySchema.model_validate(summary)


@router.get("/sectors", response_model=list[SectorAllocationSchema])
async def sector_allocation(
    service: PortfolioService = Depends(get_portfolio_service),
) -> list[SectorAllocationSchema]:
    allocation = await service.get_sector_allocation()
    return [SectorAllocationSchema.model_validate(item) for item in allocation]


@router.post("/buy", response_model=TradeOutcomeSchema)
async def buy(
    payload: BuyRequest,
    service: PortfolioService = Depends(get_portfolio_service),
) -> TradeOutcomeSchema:
    outcome = await service.buy(payload.symbol, payload.quantity, payload.price, notes=payload.notes)
    return TradeOutcomeSchema.model_validate(outcome)


@router.post("/holdings/{holding_id}/sell", response_model=TradeOutcomeSchema)
async def sell(
    holding_id: str,
    payload: SellRequest,
    service: PortfolioService = Depends(get_portfolio_service),
) -> TradeOutcomeSchema:
    outcome = await service.sell(holding_id, payload.quantity, payload.price, notes=payload.notes)
    return TradeOutcomeSchema.model_validate(outcome)


@router.get("/transactions", response_model=list[TransactionSchema])
async def list_transactions(
    type: Optional[Literal["BUY", "SELL"]] = Query(default=None),
    symbol: Optional[str] = Query(default=None, max_length=20),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    service: PortfolioService = Depends(get_portfolio_service),
) -> list[TransactionSchema]:
    transactions = await service.get_user_transactions(type=type, symbol=symbol, start=start, end=end)
    return [TransactionSchema.model_validate(tx) for tx in transactions]


@router.get("/transactions/stats", response_model=TransactionStatsSchema)
async def transaction_stats(service: PortfolioService = Depends(get_portfolio_service)) -> TransactionStatsSchema:
    stats = await service.get_transaction_stats()
    return TransactionStatsSchema.model_validate(stats)


@router.get("/profit-loss", response_model=ProfitLossSchema)
async def profit_loss(service: PortfolioService = Depends(get_portfolio_service)) -> ProfitLossSchema:
    report = await service.calculate_profit_loss()
    return ProfitLossSchema.model_validate(report)


@router.get("/history", response_model=PortfolioHistorySchema)
async def portfolio_history(service: PortfolioService = Depends(get_portfolio_service)) -> PortfolioHistorySchema:
    history = await service.get_portfolio_history()
    return PortfolioHistorySchema.model_validate(history)


@router.get("/reconciliation", response_model=ReconciliationSchema)
async def reconciliation(service: PortfolioService = Depends(get_portfolio_service)) -> ReconciliationSchema:
    report = await service.reconcile_holdings()
    if not report.is_consistent:
        logger.warning("Reconciliation for user %s found %d mismatches", service.user_id, len(report.mismatches))
    return ReconciliationSchema.model_validate(report)


__all__ = ["router"]
