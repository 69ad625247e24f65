"""Database helpers."""

from .base import Base
from .session import Database, database

__all__ = ["Base", "Database", "database"]
