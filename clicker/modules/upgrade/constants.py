"""
Upgrade system constants.

Single source of truth for:
- Result error codes
- Purchase validation limits and anti-fraud thresholds (typed views over
  `upgrades.validation.*` and `upgrades.fraud.*` in ConfigManager)
- Category efficiency weights used by recommendations
- Event names
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from clicker.domain.models.big_number import to_big
from clicker.domain.models.enums import UpgradeCategory


# ============================================================================
# ERROR CODES
# ============================================================================

VALIDATION_FAILED = "VALIDATION_FAILED"
RATE_LIMITED = "RATE_LIMITED"
PURCHASE_DENIED = "PURCHASE_DENIED"
SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
DEDUCTION_FAILED = "DEDUCTION_FAILED"
PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
UPGRADE_NOT_FOUND = "UPGRADE_NOT_FOUND"


# ============================================================================
# EVENTS
# ============================================================================

EVENT_PURCHASED = "upgrade.purchased"
EVENT_EFFECTS_UPDATED = "upgrade.effects_updated"
EVENT_COMPENSATION_RECORDED = "upgrade.compensation_recorded"
EVENT_COMPENSATION_RESOLVED = "upgrade.compensation_resolved"
EVENT_PLAYER_RESET = "upgrade.player_reset"


# ============================================================================
# CATEGORY WEIGHTS
# ============================================================================


def category_weight(category: UpgradeCategory, total_upgrade_level: int) -> Decimal:
    """
    Recommendation weight for a category given the player's total upgrade level.

    Early game favours click power, mid game passive income, late game
    multipliers and prestige.
    """
    t = total_upgrade_level
    if category is UpgradeCategory.CLICK_POWER:
        return Decimal("1.5") if t < 50 else Decimal("1.0")
    if category is UpgradeCategory.PASSIVE_INCOME:
        return Decimal("1.3") if t > 25 else Decimal("0.8")
    if category is UpgradeCategory.MULTIPLIERS:
        return Decimal("2.0") if t > 100 else Decimal("1.2")
    if category is UpgradeCategory.PRESTIGE:
        return Decimal("3.0") if t > 500 else Decimal("0.5")
    if category is UpgradeCategory.AUTOMATION:
        return Decimal("1.1")
    return Decimal("1.4")


# ============================================================================
# TUNABLES
# ============================================================================


@dataclass(frozen=True)
class PurchaseSettings:
    max_levels_per_purchase: int = 100
    max_bulk_purchase_count: int = 10
    overcommit_factor: Decimal = Decimal(2)
    duplicate_window_seconds: int = 30
    max_purchases_per_minute: int = 5

    @classmethod
    def from_config(cls, config_manager: Any) -> PurchaseSettings:
        def get(key: str, default: Any) -> Any:
            return config_manager.get(f"upgrades.validation.{key}", default)

        return cls(
            max_levels_per_purchase=int(get("max_levels_per_purchase", 100)),
            max_bulk_purchase_count=int(get("max_bulk_purchase_count", 10)),
            overcommit_factor=to_big(get("overcommit_factor", 2)),
            duplicate_window_seconds=int(get("duplicate_window_seconds", 30)),
            max_purchases_per_minute=int(get("max_purchases_per_minute", 5)),
        )


@dataclass(frozen=True)
class FraudSettings:
    enabled: bool = True
    time_window_minutes: int = 5
    max_purchases_per_window: int = 10
    outsized_purchase_factor: Decimal = Decimal(10)
    average_cost_sample_size: int = 100
    min_level_for_high_value_purchases: int = 10
    high_value_purchase_threshold: int = 50
    suspicious_threshold: float = 0.5
    block_threshold: float = 0.8
    timing_history_size: int = 10
    timing_tolerance_seconds: float = 2.0
    timing_max_interval_seconds: float = 10.0

    @classmethod
    def from_config(cls, config_manager: Any) -> FraudSettings:
        def get(key: str, default: Any) -> Any:
            return config_manager.get(f"upgrades.fraud.{key}", default)

        return cls(
            enabled=bool(get("enabled", True)),
            time_window_minutes=int(get("time_window_minutes", 5)),
            max_purchases_per_window=int(get("max_purchases_per_window", 10)),
            outsized_purchase_factor=to_big(get("outsized_purchase_factor", 10)),
            average_cost_sample_size=int(get("average_cost_sample_size", 100)),
            min_level_for_high_value_purchases=int(get("min_level_for_high_value_purchases", 10)),
            high_value_purchase_threshold=int(get("high_value_purchase_threshold", 50)),
            suspicious_threshold=float(get("suspicious_threshold", 0.5)),
            block_threshold=float(get("block_threshold", 0.8)),
            timing_history_size=int(get("timing_history_size", 10)),
            timing_tolerance_seconds=float(get("timing_tolerance_seconds", 2)),
            timing_max_interval_seconds=float(get("timing_max_interval_seconds", 10)),
        )
