"""Authentication helpers for API routes."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.api.dependencies.database import get_session
from portfolio_tracker.core.telemetry import tag_current_user
from portfolio_tracker.models import AuthToken, User
from portfolio_tracker.models._common import utcnow


async def get_current_token(
    authorization: str | None = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> AuthToken:
    """Resolve the active, unexpired token named by the bearer header."""

    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token_value = authorization.split(" ", 1)[1].strip()
    stmt: Select[tuple[AuthToken]] = select(AuthToken).where(
        AuthToken.token == token_value,
        AuthToken.is_active.is_(True),
        AuthToken.expires_at > utcnow(),
    )
    result = await session.execute(stmt)
    auth_token = result.scalar_one_or_none()
    if auth_token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return auth_token


async def get_current_user(
    auth_token: AuthToken = Depends(get_current_token),
    session: AsyncSession = Depends(get_session),
) -> User:
    user = await session.get(User, auth_token.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    tag_current_user(user.id)
    return user


__all__ = ["get_current_token", "get_current_user"]
