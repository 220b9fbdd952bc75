"""
Upgrade Service
===============

Purpose
-------
Public entry point of the upgrade system. Wires the catalog, calculation
engine, validation pipeline, anti-fraud model and purchase saga together and
exposes the player-facing and operator-facing operations.

Responsibilities
----------------
- Purchases: single, bulk (shared running budget) and previews
- Recommendations: best upgrade for a budget, top-N by efficiency
- Read models: effects, available upgrades, progress, statistics
- Operations: player reset, compensation reconciliation

Error Model
-----------
- Malformed caller input (bad player id, negative budget) raises
  `ValidationError`; unknown upgrade ids on read APIs raise `NotFoundError`.
- Purchases never raise for business failures: they return a
  `PurchaseResult` whose `error_code` is one of VALIDATION_FAILED,
  RATE_LIMITED, PURCHASE_DENIED, SERVICE_UNAVAILABLE, DEDUCTION_FAILED,
  PERSISTENCE_FAILED, BUDGET_EXCEEDED or UPGRADE_NOT_FOUND.
- Read APIs that need GameCore fail closed: `GameCoreError` propagates.
- A failed player reset raises `DatabaseError` (retryable).

Usage
-----
    catalog = UpgradeCatalog.from_yaml("config/upgrades/catalog.yaml")
    async with GameCoreClient() as game_core:
        service = UpgradeService(catalog, game_core, ConfigManager, event_bus, logger)
        result = await service.purchase_upgrade(player_id, "click_power_1", levels=3)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError

from clicker.core.database.service import DatabaseService
from clicker.core.exceptions import DatabaseError, GameCoreError
from clicker.core.infra.audit_logger import AuditLogger
from clicker.core.logging.logger import LogContext
from clicker.core.validation import InputValidator
from clicker.database.models import PurchaseCompensation
from clicker.domain.models.big_number import ZERO, to_text
from clicker.domain.models.enums import CompensationStatus, UpgradeCategory
from clicker.domain.models.player import PlayerEffectSummary, PlayerUpgradeContext
from clicker.modules.shared.base_service import BaseService
from clicker.modules.shared.exceptions import (
    ClickerDomainException,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)
from clicker.modules.upgrade.antifraud_service import AntiFraudService
from clicker.modules.upgrade.calculation_engine import UpgradeCalculationEngine
from clicker.modules.upgrade.catalog import UpgradeCatalog
from clicker.modules.upgrade.constants import (
    BUDGET_EXCEEDED,
    EVENT_COMPENSATION_RESOLVED,
    EVENT_PLAYER_RESET,
    PURCHASE_DENIED,
    RATE_LIMITED,
    SERVICE_UNAVAILABLE,
    UPGRADE_NOT_FOUND,
    VALIDATION_FAILED,
)
from clicker.modules.upgrade.context_service import PlayerContextService
from clicker.modules.upgrade.repository import (
    PlayerUpgradeRepository,
    PurchaseCompensationRepository,
    UpgradePurchaseRepository,
)
from clicker.modules.upgrade.schemas import (
    AvailableUpgrade,
    BulkPurchaseRequest,
    BulkPurchaseResult,
    BulkValidationResult,
    CompensationRecord,
    PlayerProgress,
    PurchasePreview,
    PurchaseResult,
    RecentUpgrade,
    UpgradeRecommendation,
    UpgradeStatistics,
    ValidationResult,
)
from clicker.modules.upgrade.transaction_service import PurchaseTransactionService
from clicker.modules.upgrade.validation_service import PurchaseValidationService

if TYPE_CHECKING:
    from logging import Logger

    from clicker.core.config.manager import ConfigManager
    from clicker.core.event.bus import EventBus
    from clicker.core.infra.game_core_client import GameCoreClient


FLAGGED_WARNING = "Purchase flagged for review"


def _to_record(row: PurchaseCompensation) -> CompensationRecord:
    return CompensationRecord(
        transaction_id=row.transaction_id,
        player_id=str(row.player_id),
        upgrade_id=row.upgrade_id,
        amount=row.amount,
        reason=row.reason,
        status=row.status,
        created_at=row.created_at,
        details=dict(row.details or {}),
        resolved_at=row.resolved_at,
        resolution_note=row.resolution_note,
    )


class UpgradeService(BaseService):
    """Facade over the upgrade system; see module docstring."""

    def __init__(
        self,
        catalog: UpgradeCatalog,
        game_core: GameCoreClient,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self.catalog = catalog
        self.game_core = game_core
        self.engine = UpgradeCalculationEngine(catalog)

        self._ledger = PlayerUpgradeRepository(logger)
        self._purchases = UpgradePurchaseRepository(logger)
        self._compensations = PurchaseCompensationRepository(logger)

        self.context_service = PlayerContextService(game_core, self._ledger, logger)
        self.antifraud = AntiFraudService(
            config_manager, event_bus, logger, purchase_repo=self._purchases
        )
        self.validator = PurchaseValidationService(
            config_manager,
            event_bus,
            logger,
            self.engine,
            self.antifraud,
            ledger_repo=self._ledger,
            purchase_repo=self._purchases,
        )
        self.transactions = PurchaseTransactionService(
            config_manager,
            event_bus,
            logger,
            self.engine,
            self.validator,
            game_core,
            self.context_service,
            ledger_repo=self._ledger,
            purchase_repo=self._purchases,
            compensation_repo=self._compensations,
        )

    # ========================================================================
    # PURCHASES
    # ========================================================================

    async def purchase_upgrade(
        self,
        player_id: Any,
        upgrade_id: str,
        levels: int = 1,
        max_spend: Optional[Any] = None,
    ) -> PurchaseResult:
        """
        Validate and execute one purchase.

        With `max_spend`, the number of levels is reduced to what fits within
        `min(max_spend, score)`; a spend limit that buys nothing yields
        BUDGET_EXCEEDED.

        Raises:
            ValidationError: malformed player id, level count or spend limit
        """
        player_id = InputValidator.validate_player_id(player_id)
        levels = InputValidator.validate_integer(levels, "levels")
        spend_limit = (
            InputValidator.validate_amount(max_spend, "max_spend") if max_spend is not None else None
        )
        upgrade_id = (upgrade_id or "").strip()

        async with LogContext(
            player_id=player_id, upgrade_id=upgrade_id, operation="purchase_upgrade"
        ):
            upgrade = self.catalog.get(upgrade_id) if upgrade_id else None
            if upgrade_id and upgrade is None:
                return PurchaseResult.failure(
                    upgrade_id, UPGRADE_NOT_FOUND, [f"Upgrade {upgrade_id} not found"]
                )

            try:
                async with DatabaseService.get_session() as session:
                    context = await self.context_service.build(session, player_id)

                    if spend_limit is not None and upgrade is not None and levels > 0:
                        budget = min(spend_limit, context.current_score)
                        affordable = self.engine.max_affordable_levels(
                            upgrade, context.level_of(upgrade_id), budget
                        )
                        if affordable <= 0:
                            return PurchaseResult.failure(
                                upgrade_id,
                                BUDGET_EXCEEDED,
                                [f"Cannot afford any level of {upgrade.name} within the spending limit"],
                                new_level=context.level_of(upgrade_id),
                            )
                        levels = min(levels, affordable)

                    validation = await self.validator.validate_purchase(
                        session, player_id, upgrade_id, levels, context, upgrade
                    )
            except GameCoreError as exc:
                self.log_error("purchase_upgrade", exc, stage="player_context")
                return PurchaseResult.failure(
                    upgrade_id, SERVICE_UNAVAILABLE, ["Game service temporarily unavailable"]
                )
            except SQLAlchemyError as exc:
                self.log_error("purchase_upgrade", exc, stage="validation")
                return PurchaseResult.failure(
                    upgrade_id, SERVICE_UNAVAILABLE, ["Upgrade service temporarily unavailable"]
                )

            if not validation.is_valid:
                return await self._validation_failure(player_id, upgrade_id, levels, context, validation)

            fraud = validation.validation_data.get("fraud", {})
            result = await self.transactions.execute(
                player_id,
                upgrade,
                levels,
                max_spend=spend_limit,
                risk_score=fraud.get("risk_score"),
                flagged=FLAGGED_WARNING in validation.warnings,
            )
            result.warnings = list(validation.warnings) + result.warnings
            return result

    async def _validation_failure(
        self,
        player_id: uuid.UUID,
        upgrade_id: str,
        levels: int,
        context: PlayerUpgradeContext,
        validation: ValidationResult,
    ) -> PurchaseResult:
        if validation.first_error(PURCHASE_DENIED) is not None:
            # fraud signals stay server side
            error_code = PURCHASE_DENIED
            errors = [validation.first_error(PURCHASE_DENIED).message]
        elif validation.first_error(RATE_LIMITED) is not None:
            error_code = RATE_LIMITED
            errors = validation.error_messages
        elif validation.first_error(UPGRADE_NOT_FOUND) is not None:
            error_code = UPGRADE_NOT_FOUND
            errors = validation.error_messages
        else:
            error_code = VALIDATION_FAILED
            errors = validation.error_messages

        retry_after = max(
            (issue.retry_after for issue in validation.errors if issue.retry_after is not None),
            default=None,
        )

        first = validation.errors[0]
        try:
            await AuditLogger.log(
                player_id=player_id,
                transaction_type="upgrade_purchase_failed",
                details={
                    "upgrade_id": upgrade_id or "<missing>",
                    "levels": levels,
                    "cost": validation.validation_data.get("currency", {}).get("estimated_cost"),
                    "stage": first.stage.value,
                    "reason": error_code,
                },
                context="purchase_upgrade",
                bus=self.event_bus,
            )
        except ValidationError as exc:
            self.log_error("audit_purchase_failed", exc)

        return PurchaseResult.failure(
            upgrade_id,
            error_code,
            errors,
            new_level=context.level_of(upgrade_id) if upgrade_id else 0,
            warnings=list(validation.warnings),
            retry_after=retry_after,
        )

    async def bulk_purchase(
        self,
        player_id: Any,
        requests: Sequence[BulkPurchaseRequest],
        max_total_spend: Any,
    ) -> BulkPurchaseResult:
        """
        Purchase several upgrades in order against one shared budget.

        Each item spends at most what is left of `max_total_spend` (and at
        most its own `max_spend`). Items that fail or no longer fit are
        reported and skipped; they never abort the rest of the batch.
        """
        player_id = InputValidator.validate_player_id(player_id)
        remaining = InputValidator.validate_amount(max_total_spend, "max_total_spend")
        bulk = BulkPurchaseResult()

        self.log_operation(
            "bulk_purchase",
            player_id=str(player_id),
            items=len(requests),
            max_total_spend=to_text(remaining),
        )

        for request in requests:
            if remaining <= 0:
                result = PurchaseResult.failure(
                    request.upgrade_id, BUDGET_EXCEEDED, ["Bulk purchase budget exhausted"]
                )
            else:
                item_budget = remaining if request.max_spend is None else min(request.max_spend, remaining)
                try:
                    result = await self.purchase_upgrade(
                        player_id, request.upgrade_id, request.levels, max_spend=item_budget
                    )
                except ClickerDomainException as exc:
                    result = PurchaseResult.failure(request.upgrade_id, VALIDATION_FAILED, [exc.message])

            bulk.results.append(result)
            if result.success:
                remaining -= result.cost_paid
                bulk.total_spent += result.cost_paid
                bulk.success_count += 1
            else:
                bulk.fail_count += 1

        self.log.info(
            "Bulk purchase finished",
            extra={
                "player_id": str(player_id),
                "success_count": bulk.success_count,
                "fail_count": bulk.fail_count,
                "total_spent": to_text(bulk.total_spent),
            },
        )
        return bulk

    async def validate_bulk_purchase(
        self,
        player_id: Any,
        requests: Sequence[BulkPurchaseRequest],
        max_total_spend: Any,
    ) -> BulkValidationResult:
        player_id = InputValidator.validate_player_id(player_id)
        budget = InputValidator.validate_amount(max_total_spend, "max_total_spend")
        context = await self._context(player_id)
        return self.validator.validate_bulk_purchase(requests, budget, context)

    async def preview_purchase(
        self, player_id: Any, upgrade_id: str, levels: int = 1
    ) -> PurchasePreview:
        """
        Raises:
            NotFoundError: unknown upgrade id
        """
        player_id = InputValidator.validate_player_id(player_id)
        levels = InputValidator.validate_positive_integer(levels, "levels")
        upgrade = self.catalog.require(upgrade_id)
        context = await self._context(player_id)
        return self.engine.preview_purchase(upgrade, context, levels)

    # ========================================================================
    # RECOMMENDATIONS
    # ========================================================================

    async def get_recommendation(self, player_id: Any, budget: Any) -> UpgradeRecommendation:
        player_id = InputValidator.validate_player_id(player_id)
        amount = InputValidator.validate_amount(budget, "budget")
        context = await self._context(player_id)
        return self.engine.best_upgrade_for_budget(self.catalog.list_upgrades(), context, amount)

    async def get_top_recommendations(
        self, player_id: Any, count: int = 5
    ) -> List[UpgradeRecommendation]:
        """Best upgrades for the player's whole current score."""
        player_id = InputValidator.validate_player_id(player_id)
        count = InputValidator.validate_positive_integer(count, "count", max_value=50)
        context = await self._context(player_id)
        ranked = self.engine.rank_upgrades(
            self.catalog.list_upgrades(), context, context.current_score
        )
        return ranked[:count]

    # ========================================================================
    # READ MODELS
    # ========================================================================

    async def get_player_effects(self, player_id: Any) -> PlayerEffectSummary:
        """Effects recomputed from the ledger; does not contact GameCore."""
        player_id = InputValidator.validate_player_id(player_id)
        async with DatabaseService.get_session() as session:
            owned = await self._ledger.owned_levels(session, player_id)
        return self.engine.calculate_player_effects(owned)

    async def get_available_upgrades(
        self,
        player_id: Any,
        category: Optional[Union[UpgradeCategory, str]] = None,
        include_hidden: bool = False,
    ) -> List[AvailableUpgrade]:
        player_id = InputValidator.validate_player_id(player_id)
        if category is not None and not isinstance(category, UpgradeCategory):
            category = UpgradeCategory(
                InputValidator.validate_choice(
                    category, "category", [c.value for c in UpgradeCategory]
                )
            )
        context = await self._context(player_id)

        available: List[AvailableUpgrade] = []
        for upgrade in self.catalog.list_upgrades(category, include_hidden):
            current_level = upgrade.clamp_level(context.level_of(upgrade.upgrade_id))
            maxed = current_level >= upgrade.max_level
            available.append(
                AvailableUpgrade(
                    upgrade_id=upgrade.upgrade_id,
                    name=upgrade.name,
                    description=upgrade.description,
                    category=upgrade.category.value,
                    rarity=upgrade.rarity.value,
                    current_level=current_level,
                    max_level=upgrade.max_level,
                    next_level_cost=None if maxed else upgrade.next_level_cost(current_level),
                    next_level_effect_delta=(
                        ZERO if maxed else self.engine.calculate_effect_increase(upgrade, current_level, 1)
                    ),
                    can_purchase=self.engine.can_purchase(upgrade, context),
                    unmet_prerequisites=upgrade.unmet_prerequisites(context),
                )
            )
        return available

    async def get_player_progress(self, player_id: Any) -> PlayerProgress:
        player_id = InputValidator.validate_player_id(player_id)
        async with DatabaseService.get_session() as session:
            rows = await self._ledger.find_for_player(session, player_id)
            recent = await self._ledger.recently_upgraded(session, player_id, limit=5)

        by_category: Dict[str, int] = {}
        by_rarity: Dict[str, int] = {}
        total_levels = 0
        owned_count = 0

        for row in rows:
            upgrade = self.catalog.get(row.upgrade_id)
            if upgrade is None:
                continue
            level = upgrade.clamp_level(row.level)
            owned_count += 1
            total_levels += level
            by_category[upgrade.category.value] = by_category.get(upgrade.category.value, 0) + level
            by_rarity[upgrade.rarity.value] = by_rarity.get(upgrade.rarity.value, 0) + level

        max_levels = self.catalog.total_max_levels
        completion = round(total_levels / max_levels * 100, 2) if max_levels else 0.0

        return PlayerProgress(
            owned_count=owned_count,
            total_levels=total_levels,
            levels_by_category=by_category,
            levels_by_rarity=by_rarity,
            recent_upgrades=[
                RecentUpgrade(r.upgrade_id, r.level, r.last_upgraded_at) for r in recent
            ],
            completion_percentage=completion,
        )

    async def get_upgrade_statistics(self, upgrade_id: str) -> UpgradeStatistics:
        upgrade = self.catalog.require(upgrade_id)
        async with DatabaseService.get_session() as session:
            count, average, max_level, total = await self._ledger.level_statistics(
                session, upgrade.upgrade_id
            )
        return UpgradeStatistics(
            upgrade_id=upgrade.upgrade_id,
            owner_count=count,
            average_level=round(average, 2),
            max_level_reached=max_level,
            total_levels_purchased=total,
        )

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    async def reset_player_upgrades(self, player_id: Any, reason: str = "admin_reset") -> int:
        """Delete every ledger row of the player. Returns the number of rows removed."""
        player_id = InputValidator.validate_player_id(player_id)

        async with LogContext(player_id=player_id, operation="reset_player_upgrades"):
            try:
                async with DatabaseService.get_transaction() as session:
                    owned = await self._ledger.owned_levels(session, player_id)
                    deleted = await self._ledger.delete_for_player(session, player_id)
            except SQLAlchemyError as exc:
                error = DatabaseError("reset_player_upgrades", exc)
                self.log_error("reset_player_upgrades", error)
                raise error from exc

            total_removed = sum(owned.values())
            self.log.warning(
                "Player upgrades reset",
                extra={"records_deleted": deleted, "total_levels_removed": total_removed},
            )

            await AuditLogger.log(
                player_id=player_id,
                transaction_type="upgrade_reset",
                details={
                    "records_deleted": deleted,
                    "total_levels_removed": total_removed,
                    "reason": reason,
                },
                context="reset_player_upgrades",
                bus=self.event_bus,
            )
            await self.emit_event(
                EVENT_PLAYER_RESET,
                {
                    "player_id": str(player_id),
                    "records_deleted": deleted,
                    "total_levels_removed": total_removed,
                    "reason": reason,
                },
            )
        return deleted

    async def list_pending_compensations(self, limit: int = 100) -> List[CompensationRecord]:
        limit = InputValidator.validate_positive_integer(limit, "limit", max_value=1000)
        async with DatabaseService.get_session() as session:
            rows = await self._compensations.pending(session, limit=limit)
        return [_to_record(row) for row in rows]

    async def resolve_compensation(self, transaction_id: str, note: str) -> CompensationRecord:
        """
        Mark a pending compensation as handled by an operator.

        Raises:
            NotFoundError: no compensation for the transaction id
            InvalidOperationError: compensation already resolved
        """
        if not note or not note.strip():
            raise ValidationError("note", "Resolution note is required")

        async with DatabaseService.get_transaction() as session:
            row = await self._compensations.find_by_transaction(
                session, transaction_id, for_update=True
            )
            if row is None:
                raise NotFoundError("Compensation", transaction_id)
            if not row.is_pending:
                raise InvalidOperationError("resolve_compensation", "compensation already resolved")

            row.status = CompensationStatus.RESOLVED.value
            row.resolved_at = datetime.now(timezone.utc)
            row.resolution_note = note.strip()
            await session.flush()
            record = _to_record(row)

        await AuditLogger.log(
            player_id=record.player_id,
            transaction_type="upgrade_compensation_resolved",
            details={"upgrade_id": record.upgrade_id, "amount": to_text(record.amount), "note": record.resolution_note},
            context="resolve_compensation",
            transaction_id=transaction_id,
            bus=self.event_bus,
        )
        await self.emit_event(
            EVENT_COMPENSATION_RESOLVED,
            {
                "transaction_id": transaction_id,
                "player_id": record.player_id,
                "upgrade_id": record.upgrade_id,
                "amount": to_text(record.amount),
            },
        )
        self.log.info("Compensation resolved", extra={"transaction_id": transaction_id})
        return record

    # ========================================================================
    # HELPERS
    # ========================================================================

    async def _context(self, player_id: uuid.UUID) -> PlayerUpgradeContext:
        async with DatabaseService.get_session() as session:
            return await self.context_service.build(session, player_id)

    async def shutdown(self) -> None:
        """Let sagas detached by cancellation finish."""
        await self.transactions.drain()
