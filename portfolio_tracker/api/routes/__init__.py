"""Route registration helpers."""

from __future__ import annotations

from fastapi import APIRouter

from .auth import router as auth_router
from .portfolio import router as portfolio_router
from .symbols import router as symbols_router
from .watchlist import router as watchlist_router

api_router = APIRouter()
api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(portfolio_router, prefix="/portfolio", tags=["portfolio"])
api_router.include_router(symbols_router, prefix="/symbols", tags=["symbols"])
api_router.include_router(watchlist_router, prefix="/watchlist", tags=["watchlist"])

__all__ = ["api_router"]
