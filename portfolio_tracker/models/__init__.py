"""ORM models registered on the shared declarative base."""

from .auth import AuthToken, User, UserProfile
from .portfolio import TRANSACTION_TYPES, Holding, Transaction, WatchlistItem
from .stock import Stock

__all__ = [
    "AuthToken",
    "Holding",
    "Stock",
    "TRANSACTION_TYPES",
    "Transaction",
    "User",
    "UserProfile",
    "WatchlistItem",
]
