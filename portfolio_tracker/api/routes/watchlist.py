"""Watchlist endpoints."""

from __future__ import annotations

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Response, status

from portfolio_tracker.api.dependencies import get_watchlist_service
from portfolio_tracker.schemas import WatchlistCreateRequest, WatchlistEntrySchema
from portfolio_tracker.services.ledger import LedgerError
from portfolio_tracker.services.watchlist import WatchlistService

router = APIRouter()
logger = logging.getLogger(__name__)


def _decimal(value: float | None) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


@router.get("", response_model=list[WatchlistEntrySchema])
async def list_watchlist(service: WatchlistService = Depends(get_watchlist_service)) -> list[WatchlistEntrySchema]:
    entries = await service.list_entries()
    return [WatchlistEntrySchema.model_validate(entry) for entry in entries]


@router.post("", response_model=WatchlistEntrySchema, status_code=status.HTTP_201_CREATED)
async def add_watchlist(
    payload: WatchlistCreateRequest,
    service: WatchlistService = Depends(get_watchlist_service),
) -> WatchlistEntrySchema:
    try:
        entry = await service.add(
            payload.symbol,
            category=payload.category,
            price_alert_high=_decimal(payload.price_alert_high),
            price_alert_low=_decimal(payload.price_alert_low),
        )
    except LedgerError as exc:
        logger.warning("Could not add %s to watchlist: %s", payload.symbol, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return WatchlistEntrySchema.model_validate(entry)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_watchlist(item_id: str, service: WatchlistService = Depends(get_watchlist_service)) -> Response:
    if not await service.remove(item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Watchlist item not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
