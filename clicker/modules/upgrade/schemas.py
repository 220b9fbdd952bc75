"""
Result and request types returned by the upgrade services.

All monetary fields are `Decimal`; `to_dict()` renders them as decimal
strings so arbitrary magnitudes survive JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from clicker.domain.models.big_number import ZERO, to_text
from clicker.domain.models.enums import SagaState
from clicker.domain.models.player import PlayerEffectSummary
from clicker.modules.shared.exceptions import (
    PurchaseDeniedError,
    RateLimitError,
    ValidationError,
)


def _num(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


# ============================================================================
# VALIDATION
# ============================================================================


class ValidationStage(str, Enum):
    REQUEST = "request"
    PLAYER_CONTEXT = "player_context"
    UPGRADE_STATUS = "upgrade_status"
    CURRENCY = "currency"
    PREREQUISITES = "prerequisites"
    LEVEL_LIMIT = "level_limit"
    FRAUD = "fraud"
    DUPLICATE = "duplicate"
    RATE_LIMIT = "rate_limit"


@dataclass(frozen=True)
class ValidationIssue:
    stage: ValidationStage
    code: str
    message: str
    retry_after: Optional[float] = None


@dataclass
class ValidationResult:
    is_valid: bool = True
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    validation_data: Dict[str, Any] = field(default_factory=dict)

    def add_error(
        self,
        stage: ValidationStage,
        code: str,
        message: str,
        retry_after: Optional[float] = None,
    ) -> None:
        self.errors.append(ValidationIssue(stage, code, message, retry_after))
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def error_messages(self) -> List[str]:
        return [issue.message for issue in self.errors]

    def first_error(self, code: str) -> Optional[ValidationIssue]:
        return next((issue for issue in self.errors if issue.code == code), None)

    def raise_if_invalid(self) -> None:
        """
        Raise the most severe failure as a domain exception.

        Fraud denial outranks rate limiting, which outranks plain validation.
        """
        if self.is_valid:
            return
        if self.first_error("PURCHASE_DENIED") is not None:
            raise PurchaseDeniedError()
        rate_limited = self.first_error("RATE_LIMITED")
        if rate_limited is not None:
            raise RateLimitError("purchase_upgrade", rate_limited.retry_after or 0.0)
        first = self.errors[0]
        raise ValidationError(first.stage.value, first.message)


@dataclass(frozen=True)
class FraudAssessment:
    risk_score: float
    is_suspicious: bool
    should_block: bool
    reasons: List[str] = field(default_factory=list)
    recommended_action: str = "Allow"


# ============================================================================
# PURCHASE
# ============================================================================


@dataclass
class PurchaseResult:
    success: bool
    upgrade_id: str
    levels_purchased: int = 0
    new_level: int = 0
    cost_paid: Decimal = ZERO
    remaining_score: Optional[Decimal] = None
    updated_effects: Optional[PlayerEffectSummary] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error_code: Optional[str] = None
    retry_after: Optional[float] = None
    transaction_id: Optional[str] = None
    saga_state: Optional[SagaState] = None

    @classmethod
    def failure(
        cls,
        upgrade_id: str,
        error_code: str,
        errors: List[str],
        **kwargs: Any,
    ) -> PurchaseResult:
        return cls(success=False, upgrade_id=upgrade_id, error_code=error_code, errors=list(errors), **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "upgrade_id": self.upgrade_id,
            "levels_purchased": self.levels_purchased,
            "new_level": self.new_level,
            "cost_paid": _num(self.cost_paid),
            "remaining_score": _num(self.remaining_score),
            "updated_effects": self.updated_effects.to_dict() if self.updated_effects else None,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "error_code": self.error_code,
            "retry_after": self.retry_after,
            "transaction_id": self.transaction_id,
        }


@dataclass(frozen=True)
class BulkPurchaseRequest:
    upgrade_id: str
    levels: int = 1
    max_spend: Optional[Decimal] = None


@dataclass
class BulkPurchaseResult:
    results: List[PurchaseResult] = field(default_factory=list)
    total_spent: Decimal = ZERO
    success_count: int = 0
    fail_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "total_spent": to_text(self.total_spent),
            "success_count": self.success_count,
            "fail_count": self.fail_count,
        }


@dataclass
class BulkValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    total_estimated_cost: Decimal = ZERO


# ============================================================================
# CALCULATIONS
# ============================================================================


@dataclass(frozen=True)
class BulkUpgradeCalculation:
    upgrade_id: str
    current_level: int
    levels: int
    total_cost: Decimal
    remaining_budget: Decimal

    @property
    def target_level(self) -> int:
        return self.current_level + self.levels


@dataclass
class PurchasePreview:
    upgrade_id: str
    current_level: int
    levels: int
    target_level: int
    cost: Decimal
    current_effect: Decimal
    new_effect: Decimal
    effect_delta: Decimal
    can_afford: bool
    warnings: List[str] = field(default_factory=list)
    projected_effects: Optional[PlayerEffectSummary] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "upgrade_id": self.upgrade_id,
            "current_level": self.current_level,
            "levels": self.levels,
            "target_level": self.target_level,
            "cost": to_text(self.cost),
            "current_effect": to_text(self.current_effect),
            "new_effect": to_text(self.new_effect),
            "effect_delta": to_text(self.effect_delta),
            "can_afford": self.can_afford,
            "warnings": list(self.warnings),
            "projected_effects": self.projected_effects.to_dict() if self.projected_effects else None,
        }


@dataclass(frozen=True)
class UpgradeRecommendation:
    upgrade_id: Optional[str]
    upgrade_name: Optional[str]
    levels: int
    cost: Decimal
    effect_increase: Decimal
    efficiency_score: Decimal
    reasoning: str

    @classmethod
    def none_affordable(cls) -> UpgradeRecommendation:
        return cls(
            upgrade_id=None,
            upgrade_name=None,
            levels=0,
            cost=ZERO,
            effect_increase=ZERO,
            efficiency_score=ZERO,
            reasoning="No affordable upgrades found within budget",
        )

    @property
    def found(self) -> bool:
        return self.upgrade_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "upgrade_id": self.upgrade_id,
            "upgrade_name": self.upgrade_name,
            "levels": self.levels,
            "cost": to_text(self.cost),
            "effect_increase": to_text(self.effect_increase),
            "efficiency_score": to_text(self.efficiency_score),
            "reasoning": self.reasoning,
        }


# ============================================================================
# READ MODELS
# ============================================================================


@dataclass(frozen=True)
class AvailableUpgrade:
    upgrade_id: str
    name: str
    description: str
    category: str
    rarity: str
    current_level: int
    max_level: int
    next_level_cost: Optional[Decimal]
    next_level_effect_delta: Decimal
    can_purchase: bool
    unmet_prerequisites: List[str] = field(default_factory=list)

    @property
    def is_maxed(self) -> bool:
        return self.current_level >= self.max_level


@dataclass(frozen=True)
class RecentUpgrade:
    upgrade_id: str
    level: int
    last_upgraded_at: datetime


@dataclass
class PlayerProgress:
    owned_count: int
    total_levels: int
    levels_by_category: Dict[str, int]
    levels_by_rarity: Dict[str, int]
    recent_upgrades: List[RecentUpgrade]
    completion_percentage: float


@dataclass(frozen=True)
class UpgradeStatistics:
    upgrade_id: str
    owner_count: int
    average_level: float
    max_level_reached: int
    total_levels_purchased: int


@dataclass(frozen=True)
class CompensationRecord:
    transaction_id: str
    player_id: str
    upgrade_id: str
    amount: Decimal
    reason: str
    status: str
    created_at: datetime
    details: Dict[str, Any] = field(default_factory=dict)
    resolved_at: Optional[datetime] = None
    resolution_note: Optional[str] = None
