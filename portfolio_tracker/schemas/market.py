"""Schemas for quotes, symbol search and price bars."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from portfolio_tracker.services.quotes import DataSource


class QuoteSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    symbol: str = Field(..., examples=["AAPL"])
    current_price: float
    change: float
    percent_change: float
    high: Optional[float] = None
    low: Optional[float] = None
    open: Optional[float] = None
    previous_close: Optional[float] = None
    timestamp: datetime
    source: DataSource


class SymbolMatchSchema(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "symbol": "AAPL",
                "display_symbol": "AAPL",
                "description": "Apple Inc.",
                "type": "Common Stock",
                "source": "real",
            }
        },
    )

    symbol: str
    display_symbol: str
    description: str
    type: str
    source: DataSource


class BarsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    symbol: str
    resolution: str
    timestamps: list[int]
    opens: list[float]
    highs: list[float]
    lows: list[float]
    closes: list[float]
    volumes: list[float]
    source: DataSource
