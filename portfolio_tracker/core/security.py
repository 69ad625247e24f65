"""Password hashing and bearer-token issuance."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta

from passlib.context import CryptContext

from portfolio_tracker.config import get_settings

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# 32 random bytes, url-safe base64 encoded
TOKEN_BYTES = 32


def hash_password(plain_password: str) -> str:
    return _pwd_context.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return _pwd_context.verify(plain_password, password_hash)


def generate_token() -> str:
    """Opaque bearer token for the ``Authorization`` header."""

    return secrets.token_urlsafe(TOKEN_BYTES)


def token_lifetime() -> timedelta:
    return timedelta(days=get_settings().token_lifetime_days)


def token_expiry(issued_at: datetime, lifetime: timedelta | None = None) -> datetime:
    return issued_at + (lifetime if lifetime is not None else token_lifetime())


__all__ = ["generate_token", "hash_password", "token_expiry", "token_lifetime", "verify_password"]
