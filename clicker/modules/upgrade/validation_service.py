"""
Purchase Validation Pipeline
============================

Nine ordered stages, all of which run; errors accumulate and the result is
valid only when none were recorded.

    1 request          upgrade id present, 0 < levels <= per-request cap
    2 player context   context belongs to the player, score non-negative
    3 upgrade status   active and not hidden
    4 currency         cost <= score and cost <= overcommit factor x score
    5 prerequisites    every unmet prerequisite is named
    6 level limit      levels fit below the upgrade's max level
    7 anti-fraud       block verdict is an error, suspicious is a warning
    8 duplicate        same upgrade bought within the duplicate window
    9 rate limit       purchases in the last minute at the configured max

Stages 3 to 6 depend only on the catalog entry and the player context and
are exposed separately (`validate_state`) so the purchase saga can re-check
them against a fresh context inside its transaction.

Every issue carries a machine code from the result error taxonomy:
VALIDATION_FAILED, UPGRADE_NOT_FOUND, PURCHASE_DENIED or RATE_LIMITED.
"""

from __future__ import annotations

import math
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Sequence

from clicker.domain.models.big_number import ZERO, format_big, to_text
from clicker.domain.models.player import PlayerUpgradeContext
from clicker.domain.models.upgrade import UpgradeDefinition
from clicker.modules.shared.base_service import BaseService
from clicker.modules.upgrade.antifraud_service import AntiFraudService
from clicker.modules.upgrade.calculation_engine import UpgradeCalculationEngine
from clicker.modules.upgrade.constants import (
    PURCHASE_DENIED,
    RATE_LIMITED,
    UPGRADE_NOT_FOUND,
    VALIDATION_FAILED,
    PurchaseSettings,
)
from clicker.modules.upgrade.repository import PlayerUpgradeRepository, UpgradePurchaseRepository
from clicker.modules.upgrade.schemas import (
    BulkPurchaseRequest,
    BulkValidationResult,
    ValidationResult,
    ValidationStage,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from clicker.core.config.manager import ConfigManager
    from clicker.core.event.bus import EventBus


RATE_LIMIT_WINDOW = timedelta(minutes=1)


class PurchaseValidationService(BaseService):
    """
    Runs the purchase validation pipeline.

    Reads the ledger and purchase history through the session it is given;
    never writes.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        engine: UpgradeCalculationEngine,
        antifraud: AntiFraudService,
        ledger_repo: Optional[PlayerUpgradeRepository] = None,
        purchase_repo: Optional[UpgradePurchaseRepository] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self.settings = PurchaseSettings.from_config(config_manager)
        self.engine = engine
        self.antifraud = antifraud
        self._ledger = ledger_repo or PlayerUpgradeRepository(self.log)
        self._purchases = purchase_repo or UpgradePurchaseRepository(self.log)

    # ========================================================================
    # FULL PIPELINE
    # ========================================================================

    async def validate_purchase(
        self,
        session: AsyncSession,
        player_id: uuid.UUID,
        upgrade_id: str,
        levels: int,
        context: PlayerUpgradeContext,
        upgrade: Optional[UpgradeDefinition],
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        now = now or datetime.now(timezone.utc)
        result = ValidationResult()

        # 1-2
        self._validate_request(result, upgrade_id, levels)
        self._validate_player_context(result, player_id, context)

        # 3-6
        if upgrade is None:
            if upgrade_id:
                result.add_error(
                    ValidationStage.UPGRADE_STATUS,
                    UPGRADE_NOT_FOUND,
                    f"Upgrade {upgrade_id} not found",
                )
            estimated_cost = ZERO
        else:
            estimated_cost = self._validate_state_into(result, upgrade, context, levels)

        # 7
        fraud = await self.antifraud.assess(
            session, context, upgrade_id, max(levels, 0), estimated_cost, now=now
        )
        result.validation_data["fraud"] = {
            "risk_score": fraud.risk_score,
            "recommended_action": fraud.recommended_action,
        }
        if fraud.should_block:
            result.add_error(
                ValidationStage.FRAUD,
                PURCHASE_DENIED,
                "Purchase blocked due to suspicious activity",
            )
        elif fraud.is_suspicious:
            result.add_warning("Purchase flagged for review")

        # 8
        if upgrade_id:
            await self._check_duplicate(session, result, player_id, upgrade_id, now)

        # 9
        await self._check_rate_limit(session, result, player_id, now)

        if not result.is_valid:
            self.log.info(
                "Purchase validation failed",
                extra={
                    "player_id": str(player_id),
                    "upgrade_id": upgrade_id,
                    "levels": levels,
                    "failed_stages": sorted({issue.stage.value for issue in result.errors}),
                },
            )
        return result

    # ========================================================================
    # STATE STAGES (3-6)
    # ========================================================================

    def validate_state(
        self, upgrade: UpgradeDefinition, context: PlayerUpgradeContext, levels: int
    ) -> ValidationResult:
        """Stages 3 to 6 only: status, currency, prerequisites, level limit."""
        result = ValidationResult()
        self._validate_state_into(result, upgrade, context, levels)
        return result

    def _validate_state_into(
        self,
        result: ValidationResult,
        upgrade: UpgradeDefinition,
        context: PlayerUpgradeContext,
        levels: int,
    ) -> Decimal:
        # 3. status
        if not upgrade.is_active:
            result.add_error(
                ValidationStage.UPGRADE_STATUS, VALIDATION_FAILED, "Upgrade is not currently active"
            )
        if upgrade.is_hidden:
            result.add_error(
                ValidationStage.UPGRADE_STATUS,
                VALIDATION_FAILED,
                "Upgrade is not available for purchase",
            )

        # 4. currency
        current_level = context.level_of(upgrade.upgrade_id)
        estimated_cost = self.engine.calculate_cost(upgrade, current_level, max(levels, 0))
        score = context.current_score
        can_afford = self.engine.can_afford(score, estimated_cost)
        result.validation_data["currency"] = {
            "estimated_cost": to_text(estimated_cost),
            "current_score": to_text(score),
            "can_afford": can_afford,
        }
        if not can_afford:
            result.add_error(
                ValidationStage.CURRENCY,
                VALIDATION_FAILED,
                f"Insufficient score. Required: {format_big(estimated_cost)}, "
                f"Available: {format_big(score)}",
            )
        if estimated_cost > score * self.settings.overcommit_factor:
            result.add_error(
                ValidationStage.CURRENCY,
                VALIDATION_FAILED,
                "Purchase amount exceeds reasonable limits",
            )

        # 5. prerequisites
        unmet = upgrade.unmet_prerequisites(context)
        result.validation_data["prerequisites"] = {"all_met": not unmet, "unmet": unmet}
        for description in unmet:
            result.add_error(ValidationStage.PREREQUISITES, VALIDATION_FAILED, description)

        # 6. level limit
        max_allowed = upgrade.max_level - current_level
        result.validation_data["limits"] = {
            "current_level": current_level,
            "max_allowed_levels": max_allowed,
            "requested_levels": levels,
        }
        if levels > max_allowed:
            if current_level >= upgrade.max_level:
                reason = "Upgrade is already at maximum level"
            else:
                reason = (
                    f"Can only purchase {max_allowed} more levels "
                    f"(current: {current_level}, max: {upgrade.max_level})"
                )
            result.add_error(
                ValidationStage.LEVEL_LIMIT,
                VALIDATION_FAILED,
                f"Cannot purchase {levels} levels. {reason}",
            )

        return estimated_cost

    # ========================================================================
    # REQUEST & CONTEXT STAGES (1-2)
    # ========================================================================

    def _validate_request(self, result: ValidationResult, upgrade_id: str, levels: int) -> None:
        if not upgrade_id or not upgrade_id.strip():
            result.add_error(ValidationStage.REQUEST, VALIDATION_FAILED, "Upgrade ID is required")
        if levels <= 0:
            result.add_error(
                ValidationStage.REQUEST,
                VALIDATION_FAILED,
                "Levels to purchase must be greater than 0",
            )
        elif levels > self.settings.max_levels_per_purchase:
            result.add_error(
                ValidationStage.REQUEST,
                VALIDATION_FAILED,
                f"Cannot purchase more than {self.settings.max_levels_per_purchase} levels at once",
            )

    @staticmethod
    def _validate_player_context(
        result: ValidationResult, player_id: uuid.UUID, context: PlayerUpgradeContext
    ) -> None:
        if context.player_id != player_id:
            result.add_error(
                ValidationStage.PLAYER_CONTEXT, VALIDATION_FAILED, "Player context mismatch"
            )
        if context.current_score < 0:
            result.add_error(
                ValidationStage.PLAYER_CONTEXT, VALIDATION_FAILED, "Invalid player score"
            )

    # ========================================================================
    # HISTORY STAGES (8-9)
    # ========================================================================

    async def _check_duplicate(
        self,
        session: AsyncSession,
        result: ValidationResult,
        player_id: uuid.UUID,
        upgrade_id: str,
        now: datetime,
    ) -> None:
        window = timedelta(seconds=self.settings.duplicate_window_seconds)
        entry = await self._ledger.find_entry(session, player_id, upgrade_id)
        if entry is None or entry.last_upgraded_at < now - window:
            return

        retry_after = max((entry.last_upgraded_at + window - now).total_seconds(), 0.0)
        result.add_error(
            ValidationStage.DUPLICATE,
            RATE_LIMITED,
            "Duplicate purchase detected. Please wait before making another purchase.",
            retry_after=retry_after,
        )

    async def _check_rate_limit(
        self,
        session: AsyncSession,
        result: ValidationResult,
        player_id: uuid.UUID,
        now: datetime,
    ) -> None:
        window_start = now - RATE_LIMIT_WINDOW
        recent = await self._purchases.count_since(session, player_id, window_start)
        if recent < self.settings.max_purchases_per_minute:
            return

        oldest = await self._purchases.oldest_since(session, player_id, window_start)
        if oldest is not None:
            retry_after = max((oldest.purchased_at + RATE_LIMIT_WINDOW - now).total_seconds(), 0.0)
        else:
            retry_after = RATE_LIMIT_WINDOW.total_seconds()

        wait = math.ceil(retry_after)
        result.add_error(
            ValidationStage.RATE_LIMIT,
            RATE_LIMITED,
            f"Purchase rate limit exceeded. Please wait {wait} seconds before purchasing again.",
            retry_after=retry_after,
        )

    # ========================================================================
    # BULK
    # ========================================================================

    def validate_bulk_purchase(
        self,
        requests: Sequence[BulkPurchaseRequest],
        max_total_spend: Decimal,
        context: PlayerUpgradeContext,
    ) -> BulkValidationResult:
        """
        Whole-request checks for a bulk purchase.

        Per-item state problems are reported as warnings: bulk purchases skip
        failing items rather than abort.
        """
        result = BulkValidationResult(is_valid=True)

        if len(requests) > self.settings.max_bulk_purchase_count:
            result.errors.append(
                f"Bulk purchase limit exceeded. Maximum {self.settings.max_bulk_purchase_count} "
                f"items allowed."
            )

        if max_total_spend > context.current_score:
            result.errors.append("Bulk purchase budget exceeds available score.")

        counts = Counter(r.upgrade_id for r in requests)
        duplicates = sorted(uid for uid, n in counts.items() if n > 1)
        if duplicates:
            result.errors.append(f"Duplicate upgrades in bulk purchase: {', '.join(duplicates)}")

        total = ZERO
        for request in requests:
            upgrade = self.engine.catalog.get(request.upgrade_id)
            if upgrade is None:
                result.errors.append(f"Upgrade {request.upgrade_id} not found.")
                continue

            current_level = context.level_of(upgrade.upgrade_id)
            total += self.engine.calculate_cost(upgrade, current_level, max(request.levels, 0))
            item = self.validate_state(upgrade, context, request.levels)
            result.warnings.extend(f"{request.upgrade_id}: {m}" for m in item.error_messages)

        result.total_estimated_cost = total
        result.is_valid = not result.errors
        return result
