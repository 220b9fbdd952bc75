"""
Upgrade repositories.

Query helpers over the ledger, purchase history and compensation outbox.
Sessions and transactions belong to the calling service.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from sqlalchemy import func, select

from clicker.database.models import PlayerUpgrade, PurchaseCompensation, UpgradePurchase
from clicker.domain.models.big_number import BIG_CONTEXT, big_sum
from clicker.domain.models.enums import CompensationStatus
from clicker.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession


class PlayerUpgradeRepository(BaseRepository[PlayerUpgrade]):
    def __init__(self, logger: Logger) -> None:
        super().__init__(PlayerUpgrade, logger)

    async def find_for_player(
        self, session: AsyncSession, player_id: uuid.UUID
    ) -> List[PlayerUpgrade]:
        return await self.find_many_where(
            session,
            PlayerUpgrade.player_id == player_id,
            order_by=[PlayerUpgrade.upgrade_id],
        )

    async def find_entry(
        self,
        session: AsyncSession,
        player_id: uuid.UUID,
        upgrade_id: str,
        for_update: bool = False,
    ) -> Optional[PlayerUpgrade]:
        return await self.find_one_where(
            session,
            PlayerUpgrade.player_id == player_id,
            PlayerUpgrade.upgrade_id == upgrade_id,
            for_update=for_update,
        )

    async def owned_levels(self, session: AsyncSession, player_id: uuid.UUID) -> Dict[str, int]:
        rows = await self.find_for_player(session, player_id)
        return {row.upgrade_id: row.level for row in rows}

    async def recently_upgraded(
        self, session: AsyncSession, player_id: uuid.UUID, limit: int = 5
    ) -> List[PlayerUpgrade]:
        return await self.find_many_where(
            session,
            PlayerUpgrade.player_id == player_id,
            order_by=[PlayerUpgrade.last_upgraded_at.desc(), PlayerUpgrade.upgrade_id],
            limit=limit,
        )

    async def delete_for_player(self, session: AsyncSession, player_id: uuid.UUID) -> int:
        return await self.delete_where(session, PlayerUpgrade.player_id == player_id)

    async def level_statistics(
        self, session: AsyncSession, upgrade_id: str
    ) -> Tuple[int, float, int, int]:
        """(owner count, average level, max level, sum of levels) for one upgrade."""
        stmt = select(
            func.count(PlayerUpgrade.id),
            func.avg(PlayerUpgrade.level),
            func.max(PlayerUpgrade.level),
            func.sum(PlayerUpgrade.level),
        ).where(PlayerUpgrade.upgrade_id == upgrade_id)
        count, avg, max_level, total = (await session.execute(stmt)).one()
        return int(count or 0), float(avg or 0.0), int(max_level or 0), int(total or 0)


class UpgradePurchaseRepository(BaseRepository[UpgradePurchase]):
    def __init__(self, logger: Logger) -> None:
        super().__init__(UpgradePurchase, logger)

    async def count_since(
        self, session: AsyncSession, player_id: uuid.UUID, since: datetime
    ) -> int:
        return await self.count(
            session,
            UpgradePurchase.player_id == player_id,
            UpgradePurchase.purchased_at >= since,
        )

    async def recent_for_player(
        self, session: AsyncSession, player_id: uuid.UUID, limit: int
    ) -> List[UpgradePurchase]:
        """Most recent purchases, newest first."""
        return await self.find_many_where(
            session,
            UpgradePurchase.player_id == player_id,
            order_by=[UpgradePurchase.purchased_at.desc(), UpgradePurchase.id.desc()],
            limit=limit,
        )

    async def oldest_since(
        self, session: AsyncSession, player_id: uuid.UUID, since: datetime
    ) -> Optional[UpgradePurchase]:
        rows = await self.find_many_where(
            session,
            UpgradePurchase.player_id == player_id,
            UpgradePurchase.purchased_at >= since,
            order_by=[UpgradePurchase.purchased_at, UpgradePurchase.id],
            limit=1,
        )
        return rows[0] if rows else None

    async def average_cost(
        self, session: AsyncSession, player_id: uuid.UUID, sample_size: int = 100
    ) -> Optional[Decimal]:
        """Mean cost of the player's `sample_size` newest purchases; None without history."""
        # costs are text-backed, so the mean is computed here rather than in SQL
        result = await session.execute(
            select(UpgradePurchase.cost)
            .where(UpgradePurchase.player_id == player_id)
            .order_by(UpgradePurchase.purchased_at.desc(), UpgradePurchase.id.desc())
            .limit(max(sample_size, 1))
        )
        costs = list(result.scalars().all())
        if not costs:
            return None
        return BIG_CONTEXT.divide(big_sum(costs), Decimal(len(costs)))


class PurchaseCompensationRepository(BaseRepository[PurchaseCompensation]):
    def __init__(self, logger: Logger) -> None:
        super().__init__(PurchaseCompensation, logger)

    async def find_by_transaction(
        self, session: AsyncSession, transaction_id: str, for_update: bool = False
    ) -> Optional[PurchaseCompensation]:
        return await self.find_one_where(
            session,
            PurchaseCompensation.transaction_id == transaction_id,
            for_update=for_update,
        )

    async def pending(self, session: AsyncSession, limit: int = 100) -> List[PurchaseCompensation]:
        return await self.find_many_where(
            session,
            PurchaseCompensation.status == CompensationStatus.PENDING.value,
            order_by=[PurchaseCompensation.created_at, PurchaseCompensation.id],
            limit=limit,
        )
