"""
Upgrade Calculation Engine
==========================

Purpose
-------
Pure numeric core of the upgrade system: costs over level ranges, effect
aggregation into a player summary, affordability and eligibility checks,
budget optimisation and purchase previews.

Domain
------
- Range cost: sum of per-level costs, evaluated level by level
- Effect summary: click power and passive income add, Multipliers-category
  effects compose (percentage effects add value/100, all others multiply)
- Efficiency: effect gained by one more level per unit of its cost, weighted
  by category for the player's stage of the game
- Best upgrade for budget: highest weighted efficiency, ties by upgrade id

Design Decisions
----------------
- No I/O, no clock, no randomness: identical inputs give identical outputs,
  so effects can be recomputed from the ledger at any time.
- Every evaluation clamps to the upgrade's max level.
- Infinite values (caps, exhausted one-time costs) never meet `0` or another
  infinity in arithmetic; such combinations are resolved explicitly.
"""

from __future__ import annotations

from decimal import Decimal, localcontext
from typing import Dict, Iterable, List, Mapping

from clicker.core.logging.logger import get_logger
from clicker.domain.models.big_number import BIG_CONTEXT, HUNDRED, ZERO, format_big
from clicker.domain.models.enums import CurveKind, UpgradeCategory
from clicker.domain.models.player import PlayerEffectSummary, PlayerUpgradeContext
from clicker.domain.models.upgrade import UpgradeDefinition
from clicker.modules.upgrade.catalog import UpgradeCatalog
from clicker.modules.upgrade.constants import category_weight
from clicker.modules.upgrade.schemas import (
    BulkUpgradeCalculation,
    PurchasePreview,
    UpgradeRecommendation,
)

logger = get_logger(__name__)


def _difference(new: Decimal, old: Decimal) -> Decimal:
    if not new.is_finite() and not old.is_finite():
        return ZERO
    with localcontext(BIG_CONTEXT):
        return new - old


def _product(left: Decimal, right: Decimal) -> Decimal:
    if left == 0 or right == 0:
        return ZERO
    with localcontext(BIG_CONTEXT):
        return left * right


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator, with 0 for a non-positive or infinite denominator."""
    if denominator <= 0 or not denominator.is_finite():
        return ZERO
    with localcontext(BIG_CONTEXT):
        return numerator / denominator


class UpgradeCalculationEngine:
    """
    Stateless calculations over an `UpgradeCatalog`.

    Examples
    --------
    >>> engine = UpgradeCalculationEngine(catalog)
    >>> engine.max_affordable_levels(catalog.require("click_power_1"), 0, Decimal(50))
    4
    """

    def __init__(self, catalog: UpgradeCatalog) -> None:
        self.catalog = catalog

    # ========================================================================
    # COSTS & EFFECTS
    # ========================================================================

    @staticmethod
    def calculate_cost(upgrade: UpgradeDefinition, current_level: int, levels: int) -> Decimal:
        return upgrade.cost_for_levels(current_level, levels)

    @staticmethod
    def calculate_effect_increase(
        upgrade: UpgradeDefinition, from_level: int, levels: int
    ) -> Decimal:
        """Effect gained by going from `from_level` to `from_level + levels`."""
        return _difference(upgrade.effect_at(from_level + levels), upgrade.effect_at(from_level))

    def calculate_player_effects(self, owned_upgrades: Mapping[str, int]) -> PlayerEffectSummary:
        """
        Aggregate effects of every owned upgrade.

        Upgrade ids missing from the catalog are skipped (retired upgrades keep
        their ledger rows but contribute nothing).
        """
        summary = PlayerEffectSummary()
        category_effects: Dict[UpgradeCategory, Decimal] = {}

        with localcontext(BIG_CONTEXT):
            for upgrade_id in sorted(owned_upgrades):
                level = max(owned_upgrades[upgrade_id], 0)
                upgrade = self.catalog.get(upgrade_id)
                if upgrade is None:
                    logger.debug(
                        "Owned upgrade not in catalog; skipped",
                        extra={"upgrade_id": upgrade_id},
                    )
                    continue

                level = upgrade.clamp_level(level)
                summary.total_upgrade_level += level
                contribution = ZERO

                for curve in upgrade.effect_curves:
                    value = curve.effect_at(level)
                    contribution += value
                    category = curve.target_category
                    category_effects[category] = category_effects.get(category, ZERO) + value

                    if category is UpgradeCategory.CLICK_POWER:
                        summary.total_click_power_bonus += value
                    elif category is UpgradeCategory.PASSIVE_INCOME:
                        summary.total_passive_income_bonus += value
                    elif category is UpgradeCategory.MULTIPLIERS and level > 0:
                        if curve.kind is CurveKind.PERCENTAGE:
                            summary.total_multiplier += value / HUNDRED
                        else:
                            summary.total_multiplier = _product(summary.total_multiplier, value)

                summary.upgrade_contributions[upgrade_id] = contribution

        summary.category_effects = category_effects
        return summary

    # ========================================================================
    # AFFORDABILITY & ELIGIBILITY
    # ========================================================================

    @staticmethod
    def can_afford(score: Decimal, cost: Decimal) -> bool:
        return score >= cost

    def can_purchase(self, upgrade: UpgradeDefinition, context: PlayerUpgradeContext) -> bool:
        """Purchasable, below max level, prerequisites met, and one level affordable."""
        if not upgrade.is_purchasable:
            return False

        current_level = context.level_of(upgrade.upgrade_id)
        if current_level >= upgrade.max_level:
            return False

        if upgrade.unmet_prerequisites(context):
            return False

        return self.can_afford(context.current_score, self.calculate_cost(upgrade, current_level, 1))

    @staticmethod
    def max_affordable_levels(
        upgrade: UpgradeDefinition, current_level: int, budget: Decimal
    ) -> int:
        """Largest n such that the next n levels cost at most `budget` in total."""
        current_level = upgrade.clamp_level(current_level)
        affordable = 0
        total = ZERO

        with localcontext(BIG_CONTEXT):
            for level in range(current_level, upgrade.max_level):
                candidate = total + upgrade.cost_curve.cost_at(level)
                if candidate > budget:
                    break
                total = candidate
                affordable += 1

        return affordable

    def calculate_bulk_upgrade(
        self, upgrade: UpgradeDefinition, current_level: int, budget: Decimal
    ) -> BulkUpgradeCalculation:
        levels = self.max_affordable_levels(upgrade, current_level, budget)
        total_cost = self.calculate_cost(upgrade, current_level, levels)
        return BulkUpgradeCalculation(
            upgrade_id=upgrade.upgrade_id,
            current_level=upgrade.clamp_level(current_level),
            levels=levels,
            total_cost=total_cost,
            remaining_budget=_difference(budget, total_cost),
        )

    # ========================================================================
    # RECOMMENDATIONS
    # ========================================================================

    def calculate_efficiency(
        self, upgrade: UpgradeDefinition, current_level: int, context: PlayerUpgradeContext
    ) -> Decimal:
        """Weighted effect gained per unit of cost for the next single level."""
        if current_level >= upgrade.max_level:
            return ZERO

        cost = self.calculate_cost(upgrade, current_level, 1)
        increase = self.calculate_effect_increase(upgrade, current_level, 1)
        weight = category_weight(upgrade.category, context.total_upgrade_level)
        return _product(_ratio(increase, cost), weight)

    def rank_upgrades(
        self,
        candidates: Iterable[UpgradeDefinition],
        context: PlayerUpgradeContext,
        budget: Decimal,
    ) -> List[UpgradeRecommendation]:
        """
        Recommendations for every purchasable upgrade with at least one
        affordable level and positive efficiency, best first.

        Ordering: efficiency descending, then upgrade id ascending.
        """
        ranked: List[UpgradeRecommendation] = []

        for upgrade in candidates:
            if not self.can_purchase(upgrade, context):
                continue

            current_level = context.level_of(upgrade.upgrade_id)
            levels = self.max_affordable_levels(upgrade, current_level, budget)
            if levels <= 0:
                continue

            efficiency = self.calculate_efficiency(upgrade, current_level, context)
            if efficiency <= 0:
                continue

            ranked.append(
                UpgradeRecommendation(
                    upgrade_id=upgrade.upgrade_id,
                    upgrade_name=upgrade.name,
                    levels=levels,
                    cost=self.calculate_cost(upgrade, current_level, levels),
                    effect_increase=self.calculate_effect_increase(upgrade, current_level, levels),
                    efficiency_score=efficiency,
                    reasoning=f"Best efficiency at {efficiency:.2f} effect per cost unit",
                )
            )

        ranked.sort(key=lambda r: r.upgrade_id or "")
        ranked.sort(key=lambda r: r.efficiency_score, reverse=True)
        return ranked

    def best_upgrade_for_budget(
        self,
        candidates: Iterable[UpgradeDefinition],
        context: PlayerUpgradeContext,
        budget: Decimal,
    ) -> UpgradeRecommendation:
        ranked = self.rank_upgrades(candidates, context, budget)
        if not ranked:
            return UpgradeRecommendation.none_affordable()
        return ranked[0]

    # ========================================================================
    # PREVIEW
    # ========================================================================

    def preview_purchase(
        self, upgrade: UpgradeDefinition, context: PlayerUpgradeContext, levels: int
    ) -> PurchasePreview:
        current_level = upgrade.clamp_level(context.level_of(upgrade.upgrade_id))
        requested = max(levels, 0)
        target_level = min(current_level + requested, upgrade.max_level)
        actual = target_level - current_level

        cost = self.calculate_cost(upgrade, current_level, actual)
        current_effect = upgrade.effect_at(current_level)
        new_effect = upgrade.effect_at(target_level)
        can_afford = self.can_afford(context.current_score, cost)

        warnings: List[str] = []
        if not can_afford:
            warnings.append(
                f"Insufficient funds. Need {format_big(cost)}, have {format_big(context.current_score)}"
            )
        if actual < requested:
            warnings.append(
                f"Can only purchase {actual} levels instead of {requested} "
                f"(max level {upgrade.max_level})"
            )

        projected_score = context.current_score - cost if can_afford else context.current_score
        projected = context.with_levels(upgrade.upgrade_id, target_level, projected_score)

        return PurchasePreview(
            upgrade_id=upgrade.upgrade_id,
            current_level=current_level,
            levels=actual,
            target_level=target_level,
            cost=cost,
            current_effect=current_effect,
            new_effect=new_effect,
            effect_delta=_difference(new_effect, current_effect),
            can_afford=can_afford,
            warnings=warnings,
            projected_effects=self.calculate_player_effects(projected.owned_upgrades),
        )

    @staticmethod
    def player_level_for(total_upgrade_level: int) -> int:
        """Player level derived from owned upgrade levels (one per ten, minimum 1)."""
        return max(1, total_upgrade_level // 10)
