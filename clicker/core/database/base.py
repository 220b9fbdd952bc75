"""
ORM base class, mixins and column types shared by all models.

- `Base`: declarative base for every table.
- `IdMixin`: integer surrogate primary key.
- `TimestampMixin`: created_at / updated_at maintained by the ORM.
- `BigNumberType`: stores arbitrary-magnitude `Decimal` values as text so
  scores and costs beyond 64-bit or NUMERIC precision survive a round trip.
- `UTCDateTime`: timezone-aware datetimes on every backend (sqlite returns
  naive values, which are tagged as UTC on load).
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from clicker.domain.models.big_number import to_big


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Column types
# ============================================================================


class BigNumberType(TypeDecorator):
    """Text-backed arbitrary precision decimal column."""

    impl = String(120)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[str]:
        if value is None:
            return None
        return str(to_big(value))

    def process_result_value(self, value: Any, dialect: Any) -> Optional[Decimal]:
        if value is None:
            return None
        return to_big(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime column normalized to UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            # sqlite stores text; keep a single comparable representation
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# ============================================================================
# Declarative base & mixins
# ============================================================================


class Base(DeclarativeBase):
    pass


class IdMixin:
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utc_now, onupdate=utc_now
    )
