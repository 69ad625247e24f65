"""Service wiring for route handlers."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.api.dependencies.auth import get_current_user
from portfolio_tracker.api.dependencies.database import get_session
from portfolio_tracker.models import User
from portfolio_tracker.services.portfolio import PortfolioService
from portfolio_tracker.services.quotes import QuoteGateway, get_quote_gateway
from portfolio_tracker.services.watchlist import WatchlistService


def get_gateway() -> QuoteGateway:
    return get_quote_gateway()


def get_portfolio_service(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: QuoteGateway = Depends(get_gateway),
) -> PortfolioService:
    return PortfolioService(session, gateway, user.id)


def get_watchlist_service(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: QuoteGateway = Depends(get_gateway),
) -> WatchlistService:
    return WatchlistService(session, gateway, user.id)


__all__ = ["get_gateway", "get_portfolio_service", "get_watchlist_service"]
