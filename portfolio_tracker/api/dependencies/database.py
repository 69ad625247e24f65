"""Session dependency bound to the application's database."""

from __future__ import annotations

from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.db.session import Database


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    async for session in get_database(request).get_session():
        yield session


__all__ = ["get_database", "get_session"]
