"""Pydantic schemas for holdings, trades, ledger analytics and watchlists."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from portfolio_tracker.services.history import HistorySource
from portfolio_tracker.services.quotes import DataSource
from portfolio_tracker.services.trading import SagaState


class BuyRequest(BaseModel):
    symbol: str = Field(..., examples=["AAPL"])
    quantity: int
    price: float
    notes: Optional[str] = None


class SellRequest(BaseModel):
    quantity: int
    price: float
    notes: Optional[str] = None


class TradeOutcomeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    side: str
    state: SagaState
    symbol: Optional[str] = None
    holding_id: Optional[str] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    inconsistent: bool = False
    steps: list[str] = Field(default_factory=list)


class EnrichedHoldingSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    stock_id: str
    symbol: str
    name: str
    sector: str
    quantity: int
    average_cost: float
    current_price: float
    market_value: float
    cost_basis: float
    unrealized_profit: float
    unrealized_profit_percent: float
    daily_change: float
    daily_change_percent: float
    quote_source: Optional[DataSource] = None
    logo_url: Optional[str] = None


class PortfolioSummarySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_value: float
    total_cost: float
    total_profit: float
    total_profit_percent: float
    stock_count: int
    daily_change: float
    daily_change_percent: float


class SectorAllocationSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    value: float
    percentage: float
    holding_count: int


class TransactionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    stock_id: str
    symbol: str
    name: str
    sector: str
    type: str
    price: float
    quantity: int
    timestamp: dt.datetime
    notes: Optional[str] = None


class MonthlySummarySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    month: str = Field(..., examples=["2024-05"])
    buy_amount: float
    sell_amount: float
    transaction_count: int


class TransactionStatsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_buys: int
    total_sells: int
    total_buy_amount: float
    total_sell_amount: float
    buy_percentage: float
    sell_percentage: float
    monthly_summary: list[MonthlySummarySchema]


class SectorProfitLossSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sector: str
    profit: float
    loss: float
    net_profit_loss: float
    profit_loss_percentage: float
    investment: float
    transaction_count: int


class LedgerAnomalySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    transaction_id: str
    stock_id: str
    symbol: str
    quantity: int
    shares_held: int
    excess_quantity: int
    timestamp: dt.datetime


class ProfitLossSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_profit: float
    total_loss: float
    net_profit_loss: float
    profit_loss_percentage: float
    total_investment: float
    sector_profit_loss: list[SectorProfitLossSchema]
    anomalies: list[LedgerAnomalySchema]


class HistoryPointSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    value: float
    source: HistorySource
    is_synthetic: bool


class PortfolioHistorySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    daily: list[HistoryPointSchema]
    weekly: list[HistoryPointSchema]
    monthly: list[HistoryPointSchema]


class HoldingMismatchSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stock_id: str
    symbol: str
    holding_id: Optional[str] = None
    stored_quantity: int
    replayed_quantity: int
    stored_average_cost: float
    replayed_average_cost: float
    quantity_difference: int


class ReconciliationSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    checked_count: int
    is_consistent: bool
    mismatches: list[HoldingMismatchSchema]


class WatchlistCreateRequest(BaseModel):
    symbol: str = Field(..., description="Ticker symbol to track", examples=["AAPL"])
    category: Optional[str] = Field(default=None, max_length=64)
    price_alert_high: Optional[float] = Field(default=None, gt=0)
    price_alert_low: Optional[float] = Field(default=None, gt=0)


class WatchlistEntrySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    stock_id: str
    symbol: str
    name: str
    sector: str
    category: Optional[str] = None
    price_alert_high: Optional[float] = None
    price_alert_low: Optional[float] = None
    current_price: Optional[float] = None
    change: Optional[float] = None
    percent_change: Optional[float] = None
    quote_source: Optional[DataSource] = None
    alert_high_triggered: bool = False
    alert_low_triggered: bool = False
