"""Pydantic schema exports."""

from .auth import (
    AuthResponse,
    DisplayPreferences,
    HealthResponse,
    LoginRequest,
    NotificationPreferences,
    ProfileOut,
    ProfileUpdate,
    RegisterRequest,
    UserOut,
)
from .market import BarsSchema, QuoteSchema, SymbolMatchSchema
from .portfolio import (
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
    WatchlistCreateRequest,
    WatchlistEntrySchema,
)

__all__ = [
    "AuthResponse",
    "BarsSchema",
    "BuyRequest",
    "DisplayPreferences",
    "EnrichedHoldingSchema",
    "HealthResponse",
    "LoginRequest",
    "NotificationPreferences",
    "PortfolioHistorySchema",
    "PortfolioSummarySchema",
    "ProfileOut",
    "ProfileUpdate",
    "ProfitLossSchema",
    "QuoteSchema",
    "ReconciliationSchema",
    "RegisterRequest",
    "SectorAllocationSchema",
    "SellRequest",
    "SymbolMatchSchema",
    "TradeOutcomeSchema",
    "TransactionSchema",
    "TransactionStatsSchema",
    "UserOut",
    "WatchlistCreateRequest",
    "WatchlistEntrySchema",
]
