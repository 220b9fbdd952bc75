"""
Builds the per-request `PlayerUpgradeContext`.

Score and click count come from the live GameCore session, owned levels
from the local ledger. Nothing is cached: every purchase validates against a
fresh snapshot.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from clicker.core.exceptions import GameCoreUnavailableError
from clicker.domain.models.player import PlayerUpgradeContext
from clicker.modules.upgrade.calculation_engine import UpgradeCalculationEngine
from clicker.modules.upgrade.repository import PlayerUpgradeRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from clicker.core.infra.game_core_client import GameCoreClient


class PlayerContextService:
    def __init__(
        self,
        game_core: GameCoreClient,
        ledger_repo: PlayerUpgradeRepository,
        logger: Logger,
    ) -> None:
        self.game_core = game_core
        self._ledger = ledger_repo
        self.log = logger

    async def build(self, session: AsyncSession, player_id: uuid.UUID) -> PlayerUpgradeContext:
        """
        Raises:
            GameCoreUnavailableError: no live session, or GameCore unreachable
            GameCoreTimeoutError: GameCore did not answer in time
        """
        game_session = await self.game_core.get_session(player_id)
        if game_session is None:
            raise GameCoreUnavailableError("get_session", "no active game session", 404)

        owned = await self._ledger.owned_levels(session, player_id)
        total_levels = sum(owned.values())

        context = PlayerUpgradeContext(
            player_id=player_id,
            current_score=game_session.score,
            player_level=UpgradeCalculationEngine.player_level_for(total_levels),
            click_count=game_session.click_count,
            owned_upgrades=owned,
        )
        self.log.debug(
            "Player context built",
            extra={
                "player_id": str(player_id),
                "owned_upgrades": len(owned),
                "total_upgrade_level": total_levels,
                "player_level": context.player_level,
            },
        )
        return context
