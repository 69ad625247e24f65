"""Column helpers shared by the ORM models."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import Numeric, String
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator, TypeEngine


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so we never store it."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class ExactDecimal(TypeDecorator):
    """Decimal column that round-trips without loss.

    ``NUMERIC`` on most backends; SQLite only has binary floats, so the value
    is kept there as its decimal string.
    """

    impl = Numeric(38, 12)
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(Numeric(38, 12))

    def process_bind_param(self, value: Optional[Any], dialect: Dialect) -> Optional[Any]:
        if value is None:
            return None
        value = Decimal(value)
        return str(value) if dialect.name == "sqlite" else value

    def process_result_value(self, value: Optional[Any], dialect: Dialect) -> Optional[Decimal]:
        if value is None:
            return None
        return Decimal(str(value))
