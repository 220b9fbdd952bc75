"""
PurchaseCompensation: durable outbox of deductions that need refunding.

Written in its own transaction when a purchase deducted currency on GameCore
but the local ledger write failed (or its outcome is unknown). Operators
reconcile pending rows and mark them resolved.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from clicker.core.database.base import Base, BigNumberType, IdMixin, UTCDateTime, utc_now
from clicker.domain.models.enums import CompensationStatus


class PurchaseCompensation(Base, IdMixin):
    __tablename__ = "purchase_compensations"
    __table_args__ = (
        Index("ix_purchase_compensations_status_created", "status", "created_at"),
    )

    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    player_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    upgrade_id: Mapped[str] = mapped_column(String(64), nullable=False)

    amount: Mapped[Decimal] = mapped_column(BigNumberType(), nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CompensationStatus.PENDING.value,
    )

    details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)

    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    resolution_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def is_pending(self) -> bool:
        return self.status == CompensationStatus.PENDING.value
