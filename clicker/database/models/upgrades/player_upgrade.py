"""
Player Upgrade Ledger
=====================

One row per (player, upgrade) holding the owned level.

Schema-only representation of:
- Ownership identity (player_id + upgrade_id, unique)
- Owned level (1..max_level of the catalog entry)
- First purchase and last upgrade timestamps

Levels only ever increase; the single exception is a full player reset,
which deletes every row for that player.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Index, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from clicker.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime, utc_now


class PlayerUpgrade(Base, IdMixin, TimestampMixin):
    """Owned upgrade level for a player."""

    # ========================================================================
    # TABLE CONFIGURATION
    # ========================================================================

    __tablename__ = "player_upgrades"
    __table_args__ = (
        UniqueConstraint("player_id", "upgrade_id", name="uq_player_upgrades_player_upgrade"),
        CheckConstraint("level >= 1", name="ck_player_upgrades_level_positive"),
        Index("ix_player_upgrades_player_last_upgraded", "player_id", "last_upgraded_at"),
    )

    # ========================================================================
    # IDENTITY
    # ========================================================================

    player_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
        doc="Player identifier (GameCore session key)",
    )

    upgrade_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        doc="Catalog upgrade id",
    )

    # ========================================================================
    # PROGRESSION
    # ========================================================================

    level: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Owned level",
    )

    purchased_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
        doc="First purchase time",
    )

    last_upgraded_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
        doc="Most recent level increase",
    )

    def __repr__(self) -> str:
        return (
            f"<PlayerUpgrade(player_id={self.player_id}, "
            f"upgrade_id={self.upgrade_id!r}, level={self.level})>"
        )
