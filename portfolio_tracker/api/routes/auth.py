"""Authentication routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.api.dependencies.auth import get_current_token, get_current_user
from portfolio_tracker.api.dependencies.database import get_session
from portfolio_tracker.core.security import hash_password, token_lifetime, verify_password
from portfolio_tracker.models import AuthToken, User, UserProfile
from portfolio_tracker.models._common import utcnow
from portfolio_tracker.schemas import (
    AuthResponse,
    DisplayPreferences,
    LoginRequest,
    NotificationPreferences,
    ProfileOut,
    ProfileUpdate,
    RegisterRequest,
    UserOut,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, session: AsyncSession = Depends(get_session)) -> AuthResponse:
    normalized_email = payload.email.strip().lower()
    existing = await session.execute(select(User).where(User.email == normalized_email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email is already registered")

    user = User(name=payload.name.strip(), email=normalized_email, password_hash=hash_password(payload.password))
    session.add(user)
    await session.flush()

    token = AuthToken.for_user(user.id, token_lifetime())
    session.add(token)
    await session.commit()
    await session.refresh(user)
    logger.info("Registered user %s", user.id)

    return AuthResponse(access_token=token.token, user=_to_user_out(user))


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_session)) -> AuthResponse:
    normalized_email = payload.email.strip().lower()
    query = await session.execute(select(User).where(User.email == normalized_email))
    user = query.scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.password_hash):
        logger.info("Rejected login for %s", normalized_email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    token = AuthToken.for_user(user.id, token_lifetime())
    session.add(token)
    await session.commit()
    await session.refresh(user)

    return AuthResponse(access_token=token.token, user=_to_user_out(user))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    auth_token: AuthToken = Depends(get_current_token),
    session: AsyncSession = Depends(get_session),
) -> Response:
    auth_token.is_active = False
    await session.commit()
    logger.info("Revoked token %s for user %s", auth_token.id, auth_token.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=ProfileOut)
async def read_profile(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ProfileOut:
    profile = await _load_profile(session, user)
    return _to_profile_out(user, profile)


@router.patch("/me", response_model=ProfileOut)
async def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ProfileOut:
    profile = await _load_profile(session, user)
    changes = payload.model_dump(exclude_unset=True, by_alias=True)
    for field_name, value in changes.items():
        if field_name in {"theme", "currency"} and value is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"{field_name} cannot be cleared",
            )
        if field_name == "currency":
            value = value.upper()
        setattr(profile, field_name, value)
    profile.updated_at = utcnow()
    await session.commit()
    await session.refresh(profile)
    logger.info("Updated profile fields %s for user %s", sorted(changes), user.id)
    return _to_profile_out(user, profile)


async def _load_profile(session: AsyncSession, user: User) -> UserProfile:
    profile = await session.get(UserProfile, user.id)
    if profile is None:
        profile = UserProfile(
            user_id=user.id,
            notification_preferences=NotificationPreferences().model_dump(by_alias=True),
            display_preferences=DisplayPreferences().model_dump(by_alias=True),
        )
        session.add(profile)
        await session.commit()
        await session.refresh(profile)
    return profile


def _to_profile_out(user: User, profile: UserProfile) -> ProfileOut:
    return ProfileOut(
        user_id=user.id,
        name=user.name,
        email=user.email,
        first_name=profile.first_name,
        last_name=profile.last_name,
        avatar_url=profile.avatar_url,
        currency=profile.currency or "USD",
        theme=profile.theme or "dark",
        notification_preferences=NotificationPreferences.model_validate(profile.notification_preferences or {}),
        display_preferences=DisplayPreferences.model_validate(profile.display_preferences or {}),
        updated_at=profile.updated_at or utcnow(),
    )


def _to_user_out(user: User) -> UserOut:
    return UserOut(id=user.id, name=user.name, email=user.email, created_at=user.created_at or utcnow())


__all__ = ["router"]
