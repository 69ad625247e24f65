"""FastAPI dependencies."""

from .auth import get_current_token, get_current_user
from .database import get_database, get_session
from .services import get_gateway, get_portfolio_service, get_watchlist_service

__all__ = [
    "get_current_token",
    "get_current_user",
    "get_database",
    "get_gateway",
    "get_portfolio_service",
    "get_session",
    "get_watchlist_service",
]
