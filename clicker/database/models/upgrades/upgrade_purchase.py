"""
UpgradePurchase: append-only purchase history.
Pure schema only.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from clicker.core.database.base import Base, BigNumberType, IdMixin, UTCDateTime, utc_now


class UpgradePurchase(Base, IdMixin):
    """
    One committed purchase.

    Schema-only:
    - player_id / upgrade_id
    - levels bought and cost paid
    - transaction_id (saga correlation)
    - purchased_at
    """

    __tablename__ = "upgrade_purchases"
    __table_args__ = (
        Index("ix_upgrade_purchases_player_time", "player_id", "purchased_at"),
    )

    player_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    upgrade_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    levels: Mapped[int] = mapped_column(Integer, nullable=False)

    cost: Mapped[Decimal] = mapped_column(BigNumberType(), nullable=False)

    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    purchased_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
        index=True,
    )
