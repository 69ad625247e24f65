"""Database engine and session utilities."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from portfolio_tracker.config import get_settings
from portfolio_tracker.db.base import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    # SQLite ignores ON DELETE CASCADE unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def mask_url(url: str) -> str:
    """Render ``url`` with any password replaced by ``***``."""

    return make_url(url).render_as_string(hide_password=True)


class Database:
    """Own the ledger's async engine and hand out sessions bound to it."""

    def __init__(self, url: str | None = None, *, echo: bool | None = None):
        settings = get_settings()
        self._url = url or settings.database_url
        self._engine: AsyncEngine = create_async_engine(
            self._url,
            future=True,
            echo=settings.database_echo if echo is None else echo,
        )
        if self.is_sqlite:
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = async_sessionmaker(
            bind=self._engine, expire_on_commit=False, class_=AsyncSession
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def safe_url(self) -> str:
        return mask_url(self._url)

    @property
    def is_sqlite(self) -> bool:
        return self._engine.dialect.name == "sqlite"

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create the user, ledger and watchlist tables if they are missing."""

        # Importing the models registers their tables on Base.metadata
        from portfolio_tracker import models  # noqa: F401

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
        logger.info("Database schema ready at %s", self.safe_url)

    async def dispose(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Yield an AsyncSession for FastAPI dependency usage."""

        async with self._session_factory() as session:
            yield session


# Shared database instance for the production application.
database = Database()


__all__ = ["Database", "database", "mask_url"]
