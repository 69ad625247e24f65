"""Symbol-centric endpoints: search, quotes and price bars."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from portfolio_tracker.api.dependencies import get_current_user, get_gateway
from portfolio_tracker.models import User
from portfolio_tracker.schemas import BarsSchema, QuoteSchema, SymbolMatchSchema
from portfolio_tracker.services.quotes import QuoteGateway

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/search", response_model=list[SymbolMatchSchema])
async def search_symbols(
    query: str = Query(..., min_length=1, max_length=32, description="Ticker or company keywords"),
    gateway: QuoteGateway = Depends(get_gateway),
    _: User = Depends(get_current_user),
) -> list[SymbolMatchSchema]:
    logger.info("Searching symbols with query: %s", query)
    matches = await gateway.search_symbols(query)
    return [SymbolMatchSchema.model_validate(match) for match in matches]


@router.get("/{symbol}/quote", response_model=QuoteSchema)
async def quote(
    symbol: str,
    gateway: QuoteGateway = Depends(get_gateway),
    _: User = Depends(get_current_user),
) -> QuoteSchema:
    return QuoteSchema.model_validate(await gateway.get_quote(symbol))


@router.get("/{symbol}/bars", response_model=BarsSchema)
async def bars(
    symbol: str,
    resolution: str = Query(default="D", pattern="^(1|5|15|30|60|D|W|M)$"),
    start: Optional[int] = Query(default=None, alias="from", description="Epoch seconds"),
    end: Optional[int] = Query(default=None, alias="to", description="Epoch seconds"),
    gateway: QuoteGateway = Depends(get_gateway),
    _: User = Depends(get_current_user),
) -> BarsSchema:
    result = await gateway.get_historical_bars(symbol, resolution, start, end)
    if result is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty or invalid time range")
    return BarsSchema.model_validate(result)


__all__ = ["router"]
