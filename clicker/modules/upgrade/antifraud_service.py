"""
Anti-fraud risk scoring for upgrade purchases.

Five additive signals feed a risk score:

    rapid purchasing          more than N purchases in the time window   +0.3
    outsized purchase         cost > factor x historical average cost    +0.2
    negative score            player score below zero                    +0.8
    premature high value      low player level buying many levels        +0.4
    regular timing            bot-like evenly spaced recent purchases    +0.3

`risk >= block_threshold` blocks the purchase, `risk >= suspicious_threshold`
flags it for review. Signals are logged here and never returned to players.

Scoring failures fail open but flagged: the purchase is allowed and marked
suspicious with risk 0.5.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from clicker.core.exceptions import InvariantViolationError
from clicker.domain.models.player import PlayerUpgradeContext
from clicker.modules.shared.base_service import BaseService
from clicker.modules.upgrade.constants import FraudSettings
from clicker.modules.upgrade.repository import UpgradePurchaseRepository
from clicker.modules.upgrade.schemas import FraudAssessment

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from clicker.core.config.manager import ConfigManager
    from clicker.core.event.bus import EventBus


RAPID_PURCHASE_RISK = 0.3
OUTSIZED_PURCHASE_RISK = 0.2
NEGATIVE_SCORE_RISK = 0.8
PREMATURE_HIGH_VALUE_RISK = 0.4
REGULAR_TIMING_RISK = 0.3

ACTION_BLOCK = "Block purchase"
ACTION_FLAG = "Flag for review"
ACTION_ALLOW = "Allow"
ACTION_MONITOR = "Allow with monitoring"


class AntiFraudService(BaseService):
    """Scores a pending purchase against the player's recent history."""

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        purchase_repo: Optional[UpgradePurchaseRepository] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self.settings = FraudSettings.from_config(config_manager)
        self._purchases = purchase_repo or UpgradePurchaseRepository(self.log)

    async def assess(
        self,
        session: AsyncSession,
        context: PlayerUpgradeContext,
        upgrade_id: str,
        levels: int,
        estimated_cost: Decimal,
        now: Optional[datetime] = None,
    ) -> FraudAssessment:
        if not self.settings.enabled:
            return FraudAssessment(0.0, False, False, [], ACTION_ALLOW)

        now = now or datetime.now(timezone.utc)
        try:
            reasons = await self._collect_signals(
                session, context, levels, estimated_cost, now
            )
        except Exception as exc:
            self.log.error(
                "Error during fraud check",
                extra={
                    "player_id": str(context.player_id),
                    "upgrade_id": upgrade_id,
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return FraudAssessment(
                risk_score=0.5,
                is_suspicious=True,
                should_block=False,
                reasons=["Error during fraud check"],
                recommended_action=ACTION_MONITOR,
            )

        risk = round(sum(weight for _, weight in reasons), 4)
        should_block = risk >= self.settings.block_threshold
        is_suspicious = risk >= self.settings.suspicious_threshold
        action = ACTION_BLOCK if should_block else ACTION_FLAG if is_suspicious else ACTION_ALLOW
        factors = [name for name, _ in reasons]

        if is_suspicious:
            self.log.warning(
                "Anti-fraud check flagged purchase",
                extra={
                    "player_id": str(context.player_id),
                    "upgrade_id": upgrade_id,
                    "risk_score": risk,
                    "risk_factors": factors,
                    "recommended_action": action,
                },
            )

        return FraudAssessment(
            risk_score=risk,
            is_suspicious=is_suspicious,
            should_block=should_block,
            reasons=factors,
            recommended_action=action,
        )

    # ------------------------------------------------------------------ #
    # Signals
    # ------------------------------------------------------------------ #

    async def _collect_signals(
        self,
        session: AsyncSession,
        context: PlayerUpgradeContext,
        levels: int,
        estimated_cost: Decimal,
        now: datetime,
    ) -> List[tuple[str, float]]:
        s = self.settings
        reasons: List[tuple[str, float]] = []
        player_id = context.player_id

        window_start = now - timedelta(minutes=s.time_window_minutes)
        recent_count = await self._purchases.count_since(session, player_id, window_start)
        if recent_count > s.max_purchases_per_window:
            reasons.append(("Rapid purchasing pattern detected", RAPID_PURCHASE_RISK))

        average = await self._purchases.average_cost(
            session, player_id, s.average_cost_sample_size
        )
        if average is not None and average > 0 and estimated_cost.is_finite():
            if estimated_cost > average * s.outsized_purchase_factor:
                reasons.append(
                    ("Purchase amount significantly higher than average", OUTSIZED_PURCHASE_RISK)
                )

        if context.current_score < 0:
            violation = InvariantViolationError(
                "non_negative_score",
                "player score is negative",
                {"player_id": str(player_id), "score": str(context.current_score)},
            )
            self.log.error(str(violation), extra=violation.details)
            reasons.append(("Negative player score detected", NEGATIVE_SCORE_RISK))

        if (
            context.player_level < s.min_level_for_high_value_purchases
            and levels > s.high_value_purchase_threshold
        ):
            reasons.append(("High-value purchase from low-level player", PREMATURE_HIGH_VALUE_RISK))

        if await self._has_regular_timing(session, player_id):
            reasons.append(("Suspicious purchase timing pattern", REGULAR_TIMING_RISK))

        return reasons

    async def _has_regular_timing(self, session: AsyncSession, player_id: uuid.UUID) -> bool:
        s = self.settings
        recent = await self._purchases.recent_for_player(
            session, player_id, limit=s.timing_history_size
        )
        intervals = [
            (newer.purchased_at - older.purchased_at).total_seconds()
            for newer, older in zip(recent, recent[1:])
        ]
        if len(intervals) < 3:
            return False

        mean = sum(intervals) / len(intervals)
        is_regular = all(abs(i - mean) < s.timing_tolerance_seconds for i in intervals)
        return is_regular and mean < s.timing_max_interval_seconds
