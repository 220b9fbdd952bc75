"""
Database Models Package
========================

SQLAlchemy ORM models for the upgrade engine, grouped by domain.

- Schema-only, no business logic
- `Mapped[]` syntax with `mapped_column()`
- Arbitrary-magnitude quantities in `BigNumberType` columns
- Timezone-aware timestamps in `UTCDateTime` columns

Importing this package registers every table on `Base.metadata`.
"""

from clicker.core.database.base import Base

from .upgrades import PlayerUpgrade, PurchaseCompensation, UpgradePurchase

__all__ = [
    "Base",
    "PlayerUpgrade",
    "PurchaseCompensation",
    "UpgradePurchase",
]
