"""
Purchase Transaction Orchestrator
=================================

Purpose
-------
Carry one validated purchase across two systems that share no transaction:
the remote GameCore score ledger and the local upgrade ledger.

Saga
----
    VALIDATED -> CURRENCY_DEDUCTED -> LEDGER_UPDATED -> EFFECTS_APPLIED -> COMMITTED
    terminal failures: FAILED, COMPENSATION_PENDING

1. Open a local transaction and lock the ledger row.
2. Re-check status, currency, prerequisites and level limit against a fresh
   context (score may have changed since the pipeline ran).
3. Deduct the cost on GameCore. A refusal or transport error fails the
   purchase with nothing to undo. A timeout leaves the outcome unknown.
4. Create or raise the ledger row and append a purchase history row.
5. Commit.
6. Recompute effects from the ledger and push them to GameCore (best effort).

When 4 or 5 fails after a successful deduction, or the deduction timed out,
a `PurchaseCompensation` row is written in a separate transaction for
operators to refund. If that write fails as well, the full payload is logged
at CRITICAL.

Cancellation
------------
Cancelling the caller before the deduction is issued aborts the saga and
rolls back. Once the deduction is issued the saga finishes in the
background regardless of cancellation.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from clicker.core.database.service import DatabaseService
from clicker.core.exceptions import (
    GameCoreError,
    GameCoreTimeoutError,
    InvariantViolationError,
)
from clicker.core.infra.audit_logger import AuditLogger
from clicker.core.infra.game_core_client import EffectUpdate
from clicker.core.logging.logger import LogContext
from clicker.database.models import PlayerUpgrade, PurchaseCompensation, UpgradePurchase
from clicker.domain.models.big_number import ZERO, to_text
from clicker.domain.models.enums import SagaState
from clicker.domain.models.player import PlayerEffectSummary
from clicker.domain.models.upgrade import UpgradeDefinition
from clicker.modules.shared.base_service import BaseService
from clicker.modules.shared.exceptions import ValidationError
from clicker.modules.upgrade.calculation_engine import UpgradeCalculationEngine
from clicker.modules.upgrade.constants import (
    BUDGET_EXCEEDED,
    DEDUCTION_FAILED,
    EVENT_COMPENSATION_RECORDED,
    EVENT_EFFECTS_UPDATED,
    EVENT_PURCHASED,
    PERSISTENCE_FAILED,
    SERVICE_UNAVAILABLE,
    VALIDATION_FAILED,
)
from clicker.modules.upgrade.context_service import PlayerContextService
from clicker.modules.upgrade.repository import (
    PlayerUpgradeRepository,
    PurchaseCompensationRepository,
    UpgradePurchaseRepository,
)
from clicker.modules.upgrade.schemas import PurchaseResult
from clicker.modules.upgrade.validation_service import PurchaseValidationService

if TYPE_CHECKING:
    from logging import Logger

    from clicker.core.config.manager import ConfigManager
    from clicker.core.event.bus import EventBus
    from clicker.core.infra.game_core_client import GameCoreClient


OUTCOME_DEDUCTED = "deducted"
OUTCOME_UNKNOWN = "outcome_unknown"


@dataclass
class PurchaseSaga:
    """Mutable progress record of one purchase."""

    transaction_id: str
    player_id: uuid.UUID
    upgrade_id: str
    requested_levels: int
    levels: int = 0
    old_level: int = 0
    new_level: int = 0
    cost: Decimal = ZERO
    original_score: Optional[Decimal] = None
    state: SagaState = SagaState.VALIDATED
    history: List[SagaState] = field(default_factory=lambda: [SagaState.VALIDATED])
    deduction_issued: bool = False

    def advance(self, state: SagaState) -> None:
        self.state = state
        self.history.append(state)

    @property
    def currency_moved(self) -> bool:
        return SagaState.CURRENCY_DEDUCTED in self.history


class _SagaAborted(Exception):
    """Internal: unwinds the local transaction with a failure to report."""

    def __init__(
        self,
        error_code: str,
        errors: List[str],
        compensate: bool = False,
        outcome: str = OUTCOME_DEDUCTED,
    ) -> None:
        super().__init__("; ".join(errors))
        self.error_code = error_code
        self.errors = errors
        self.compensate = compensate
        self.outcome = outcome


class PurchaseTransactionService(BaseService):
    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        engine: UpgradeCalculationEngine,
        validator: PurchaseValidationService,
        game_core: GameCoreClient,
        context_service: PlayerContextService,
        ledger_repo: Optional[PlayerUpgradeRepository] = None,
        purchase_repo: Optional[UpgradePurchaseRepository] = None,
        compensation_repo: Optional[PurchaseCompensationRepository] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self.engine = engine
        self.validator = validator
        self.game_core = game_core
        self.context_service = context_service
        self._ledger = ledger_repo or PlayerUpgradeRepository(self.log)
        self._purchases = purchase_repo or UpgradePurchaseRepository(self.log)
        self._compensations = compensation_repo or PurchaseCompensationRepository(self.log)
        self._detached: Set[asyncio.Task[PurchaseResult]] = set()

    # ========================================================================
    # ENTRY POINT
    # ========================================================================

    async def execute(
        self,
        player_id: uuid.UUID,
        upgrade: UpgradeDefinition,
        levels: int,
        max_spend: Optional[Decimal] = None,
        risk_score: Optional[float] = None,
        flagged: bool = False,
    ) -> PurchaseResult:
        saga = PurchaseSaga(
            transaction_id=uuid.uuid4().hex,
            player_id=player_id,
            upgrade_id=upgrade.upgrade_id,
            requested_levels=levels,
        )
        task = asyncio.ensure_future(
            self._run(saga, upgrade, max_spend, risk_score, flagged)
        )
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            self._detached.add(task)
            task.add_done_callback(self._detached.discard)
            if not saga.deduction_issued:
                task.cancel()
            else:
                self.log.warning(
                    "Purchase cancelled after deduction; saga continues",
                    extra={"transaction_id": saga.transaction_id},
                )
            raise

    async def drain(self) -> None:
        """Wait for sagas still running or unwinding after their caller was cancelled."""
        if self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)

    # ========================================================================
    # SAGA
    # ========================================================================

    async def _run(
        self,
        saga: PurchaseSaga,
        upgrade: UpgradeDefinition,
        max_spend: Optional[Decimal],
        risk_score: Optional[float],
        flagged: bool,
    ) -> PurchaseResult:
        async with LogContext(
            player_id=saga.player_id,
            upgrade_id=saga.upgrade_id,
            operation="purchase_saga",
            transaction_id=saga.transaction_id,
        ):
            try:
                owned = await self._execute_local(saga, upgrade, max_spend)
            except _SagaAborted as aborted:
                if aborted.compensate:
                    return await self._compensate(saga, aborted)
                return await self._fail(saga, aborted.error_code, aborted.errors)
            except SQLAlchemyError as exc:
                if saga.currency_moved:
                    return await self._compensate(
                        saga,
                        _SagaAborted(
                            PERSISTENCE_FAILED,
                            [f"Ledger commit failed: {type(exc).__name__}"],
                            compensate=True,
                        ),
                    )
                self.log_error("purchase_saga", exc, stage="local_transaction")
                return await self._fail(saga, SERVICE_UNAVAILABLE, ["Upgrade service temporarily unavailable"])
            except GameCoreError as exc:
                self.log_error("purchase_saga", exc, stage="player_context")
                return await self._fail(saga, SERVICE_UNAVAILABLE, ["Game service temporarily unavailable"])

            return await self._finish(saga, owned, risk_score, flagged)

    async def _execute_local(
        self,
        saga: PurchaseSaga,
        upgrade: UpgradeDefinition,
        max_spend: Optional[Decimal],
    ) -> Dict[str, int]:
        """Steps 1 to 5; returns the owned levels as committed."""
        async with DatabaseService.get_transaction() as session:
            entry = await self._ledger.find_entry(
                session, saga.player_id, saga.upgrade_id, for_update=True
            )
            context = await self.context_service.build(session, saga.player_id)
            saga.original_score = context.current_score
            saga.old_level = context.level_of(saga.upgrade_id)

            levels = saga.requested_levels
            if max_spend is not None:
                budget = min(max_spend, context.current_score)
                affordable = self.engine.max_affordable_levels(upgrade, saga.old_level, budget)
                levels = min(levels, affordable)
                if levels <= 0:
                    raise _SagaAborted(
                        BUDGET_EXCEEDED,
                        [f"Cannot afford any level of {upgrade.name} within the spending limit"],
                    )

            recheck = self.validator.validate_state(upgrade, context, levels)
            if not recheck.is_valid:
                raise _SagaAborted(VALIDATION_FAILED, recheck.error_messages)

            saga.levels = levels
            saga.new_level = saga.old_level + levels
            saga.cost = self.engine.calculate_cost(upgrade, saga.old_level, levels)

            await self._deduct(saga)

            now = datetime.now(timezone.utc)
            try:
                if entry is None:
                    self._ledger.add(
                        session,
                        PlayerUpgrade(
                            player_id=saga.player_id,
                            upgrade_id=saga.upgrade_id,
                            level=saga.new_level,
                            purchased_at=now,
                            last_upgraded_at=now,
                        ),
                    )
                else:
                    entry.level = saga.new_level
                    entry.last_upgraded_at = now

                self._purchases.add(
                    session,
                    UpgradePurchase(
                        player_id=saga.player_id,
                        upgrade_id=saga.upgrade_id,
                        levels=saga.levels,
                        cost=saga.cost,
                        transaction_id=saga.transaction_id,
                        purchased_at=now,
                    ),
                )
                await session.flush()
            except IntegrityError as exc:
                violation = InvariantViolationError(
                    "duplicate_ledger_row",
                    "concurrent purchase created the same ledger row",
                    {"player_id": str(saga.player_id), "upgrade_id": saga.upgrade_id},
                )
                self.log.error(str(violation), extra=violation.details)
                raise _SagaAborted(
                    PERSISTENCE_FAILED, ["Purchase could not be recorded"], compensate=True
                ) from exc
            except SQLAlchemyError as exc:
                raise _SagaAborted(
                    PERSISTENCE_FAILED,
                    [f"Purchase could not be recorded: {type(exc).__name__}"],
                    compensate=True,
                ) from exc

            saga.advance(SagaState.LEDGER_UPDATED)
            owned = dict(context.owned_upgrades)
            owned[saga.upgrade_id] = saga.new_level

        return owned

    async def _deduct(self, saga: PurchaseSaga) -> None:
        saga.deduction_issued = True
        reason = f"Upgrade purchase: {saga.upgrade_id} x{saga.levels} ({saga.transaction_id})"
        try:
            deducted = await self.game_core.deduct_score(saga.player_id, saga.cost, reason)
        except GameCoreTimeoutError as exc:
            raise _SagaAborted(
                SERVICE_UNAVAILABLE,
                ["Score deduction timed out; the purchase will be reconciled"],
                compensate=True,
                outcome=OUTCOME_UNKNOWN,
            ) from exc
        except GameCoreError as exc:
            self.log_error("deduct_score", exc, transaction_id=saga.transaction_id)
            raise _SagaAborted(SERVICE_UNAVAILABLE, ["Game service temporarily unavailable"]) from exc

        if not deducted:
            raise _SagaAborted(DEDUCTION_FAILED, ["Score deduction was refused"])
        saga.advance(SagaState.CURRENCY_DEDUCTED)

    # ========================================================================
    # COMPLETION
    # ========================================================================

    async def _finish(
        self,
        saga: PurchaseSaga,
        owned: Dict[str, int],
        risk_score: Optional[float],
        flagged: bool,
    ) -> PurchaseResult:
        effects = self.engine.calculate_player_effects(owned)
        if await self._push_effects(saga, effects):
            saga.advance(SagaState.EFFECTS_APPLIED)
        saga.advance(SagaState.COMMITTED)

        remaining = (saga.original_score or ZERO) - saga.cost

        try:
            await AuditLogger.log_purchase(
                player_id=saga.player_id,
                upgrade_id=saga.upgrade_id,
                levels=saga.levels,
                old_level=saga.old_level,
                new_level=saga.new_level,
                cost=saga.cost,
                original_score=saga.original_score,
                risk_score=risk_score,
                flagged=flagged,
                transaction_id=saga.transaction_id,
                bus=self.event_bus,
            )
        except ValidationError as exc:
            self.log_error("audit_purchase", exc, transaction_id=saga.transaction_id)

        await self.emit_event(
            EVENT_PURCHASED,
            {
                "player_id": str(saga.player_id),
                "upgrade_id": saga.upgrade_id,
                "levels": saga.levels,
                "old_level": saga.old_level,
                "new_level": saga.new_level,
                "cost": to_text(saga.cost),
                "transaction_id": saga.transaction_id,
            },
        )
        await self.emit_event(
            EVENT_EFFECTS_UPDATED,
            {"player_id": str(saga.player_id), "effects": effects.to_dict()},
        )

        self.log.info(
            "Upgrade purchased",
            extra={
                "levels": saga.levels,
                "new_level": saga.new_level,
                "cost": to_text(saga.cost),
                "saga_states": [s.value for s in saga.history],
                "success": True,
            },
        )

        warnings = []
        if saga.levels < saga.requested_levels:
            warnings.append(
                f"Purchased {saga.levels} of {saga.requested_levels} requested levels within the spending limit"
            )

        return PurchaseResult(
            success=True,
            upgrade_id=saga.upgrade_id,
            levels_purchased=saga.levels,
            new_level=saga.new_level,
            cost_paid=saga.cost,
            remaining_score=remaining,
            updated_effects=effects,
            warnings=warnings,
            transaction_id=saga.transaction_id,
            saga_state=saga.state,
        )

    async def _push_effects(self, saga: PurchaseSaga, effects: PlayerEffectSummary) -> bool:
        update = EffectUpdate(
            click_power_bonus=effects.total_click_power_bonus,
            passive_income_bonus=effects.total_passive_income_bonus,
            multiplier_bonus=effects.total_multiplier,
            source_upgrade_id=saga.upgrade_id,
        )
        try:
            applied = await self.game_core.apply_effects(saga.player_id, update)
        except GameCoreError as exc:
            self.log.warning(
                "Effect propagation failed; ledger remains authoritative",
                extra={"error_type": type(exc).__name__, "error": str(exc)},
            )
            return False
        if not applied:
            self.log.warning("GameCore rejected effect update")
        return applied

    # ========================================================================
    # FAILURE PATHS
    # ========================================================================

    async def _fail(self, saga: PurchaseSaga, error_code: str, errors: List[str]) -> PurchaseResult:
        saga.advance(SagaState.FAILED)
        self.log.info(
            "Purchase failed",
            extra={
                "error_code": error_code,
                "errors": errors,
                "saga_states": [s.value for s in saga.history],
            },
        )
        try:
            await AuditLogger.log(
                player_id=saga.player_id,
                transaction_type="upgrade_purchase_failed",
                details={
                    "upgrade_id": saga.upgrade_id,
                    "levels": saga.levels or saga.requested_levels,
                    "cost": to_text(saga.cost),
                    "stage": "saga",
                    "reason": error_code,
                },
                context="purchase_saga",
                transaction_id=saga.transaction_id,
                bus=self.event_bus,
            )
        except ValidationError as exc:
            self.log_error("audit_purchase_failed", exc, transaction_id=saga.transaction_id)
        return PurchaseResult.failure(
            saga.upgrade_id,
            error_code,
            errors,
            new_level=saga.old_level,
            transaction_id=saga.transaction_id,
            saga_state=saga.state,
        )

    async def _compensate(self, saga: PurchaseSaga, aborted: _SagaAborted) -> PurchaseResult:
        saga.advance(SagaState.COMPENSATION_PENDING)
        reason = "; ".join(aborted.errors)
        payload: Dict[str, Any] = {
            "transaction_id": saga.transaction_id,
            "player_id": str(saga.player_id),
            "upgrade_id": saga.upgrade_id,
            "amount": to_text(saga.cost),
            "levels": saga.levels,
            "old_level": saga.old_level,
            "outcome": aborted.outcome,
            "reason": reason,
        }

        recorded = False
        try:
            async with DatabaseService.get_transaction() as session:
                self._compensations.add(
                    session,
                    PurchaseCompensation(
                        transaction_id=saga.transaction_id,
                        player_id=saga.player_id,
                        upgrade_id=saga.upgrade_id,
                        amount=saga.cost,
                        reason=reason,
                        details={
                            "levels": saga.levels,
                            "old_level": saga.old_level,
                            "outcome": aborted.outcome,
                        },
                    ),
                )
            recorded = True
            self.log.error("Purchase compensation recorded", extra=payload)
        except Exception:
            self.log.critical(
                "Purchase compensation could not be recorded; manual refund required",
                extra=payload,
                exc_info=True,
            )

        try:
            await AuditLogger.log_compensation(
                player_id=saga.player_id,
                upgrade_id=saga.upgrade_id,
                amount=saga.cost,
                reason=reason,
                outcome=aborted.outcome,
                levels=saga.levels,
                compensation_recorded=recorded,
                transaction_id=saga.transaction_id,
                bus=self.event_bus,
            )
        except ValidationError as exc:
            self.log_error("audit_compensation", exc, transaction_id=saga.transaction_id)

        await self.emit_event(
            EVENT_COMPENSATION_RECORDED,
            {**payload, "compensation_recorded": recorded},
        )

        return PurchaseResult.failure(
            saga.upgrade_id,
            aborted.error_code,
            aborted.errors,
            new_level=saga.old_level,
            transaction_id=saga.transaction_id,
            saga_state=saga.state,
        )
