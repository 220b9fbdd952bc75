"""
Database subsystem: async SQLAlchemy engine, session/transaction management,
ORM base class and shared column types.
"""

from clicker.core.database.base import (
    Base,
    BigNumberType,
    IdMixin,
    TimestampMixin,
    UTCDateTime,
    utc_now,
)
from clicker.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "BigNumberType",
    "UTCDateTime",
    "utc_now",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
