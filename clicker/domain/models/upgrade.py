"""
Upgrade catalog value objects.

Everything here is immutable and shared across requests:

- `CostCurve` / `EffectCurve`: pure functions of level, clamped to a cap
- `Prerequisite`: one unlock requirement evaluated against a player context
- `UpgradeDefinition`: a catalog entry tying curves and prerequisites together

Curves are evaluated under `BIG_CONTEXT`; costs that overflow become
`UNBOUNDED` and are then clamped to the curve cap.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, localcontext
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

from clicker.domain.models.base import DomainValidationError
from clicker.domain.models.big_number import (
    BIG_CONTEXT,
    ONE,
    UNBOUNDED,
    ZERO,
    to_big,
)
from clicker.domain.models.enums import (
    CurveKind,
    PrerequisiteType,
    UpgradeCategory,
    UpgradeRarity,
)

if TYPE_CHECKING:
    from clicker.domain.models.player import PlayerUpgradeContext


COST_CURVE_KINDS = frozenset(
    {CurveKind.LINEAR, CurveKind.EXPONENTIAL, CurveKind.COMPOUND, CurveKind.ONE_TIME}
)


def _coerce(instance: Any, name: str, value: Any) -> Decimal:
    try:
        converted = to_big(value)
    except ValueError as exc:
        raise DomainValidationError(f"{type(instance).__name__}.{name}: {exc}") from exc
    object.__setattr__(instance, name, converted)
    return converted


def _scaled(base: Decimal, factor: Decimal, exponent: int) -> Decimal:
    """base * factor^exponent without producing 0 * Infinity."""
    if base == 0:
        return ZERO
    with localcontext(BIG_CONTEXT):
        return base * factor ** exponent


# ============================================================================
# CURVES
# ============================================================================


@dataclass(frozen=True)
class CostCurve:
    """Price of buying the level *after* `level` (i.e. going from level to level+1)."""

    base_cost: Decimal
    multiplier: Decimal
    kind: CurveKind = CurveKind.EXPONENTIAL
    cap: Decimal = UNBOUNDED

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", CurveKind(self.kind))
        if self.kind not in COST_CURVE_KINDS:
            raise DomainValidationError(f"Unsupported cost curve kind: {self.kind.value}")
        for name in ("base_cost", "multiplier", "cap"):
            if _coerce(self, name, getattr(self, name)) < 0:
                raise DomainValidationError(f"CostCurve.{name} must be non-negative")
        # exponential cost is non-decreasing in level
        if self.kind is CurveKind.EXPONENTIAL and self.multiplier < ONE:
            raise DomainValidationError(
                f"Exponential CostCurve.multiplier must be at least 1, got {self.multiplier}"
            )

    def cost_at(self, level: int) -> Decimal:
        level = max(level, 0)

        with localcontext(BIG_CONTEXT):
            if self.kind is CurveKind.LINEAR:
                raw = self.base_cost * (ONE + level * self.multiplier)
            elif self.kind is CurveKind.EXPONENTIAL:
                raw = _scaled(self.base_cost, self.multiplier, level)
            elif self.kind is CurveKind.COMPOUND:
                raw = _scaled(self.base_cost, ONE + self.multiplier, level)
            else:
                raw = self.base_cost if level == 0 else UNBOUNDED

        return min(raw, self.cap)

    def total_cost_for_range(self, from_level: int, to_level: int) -> Decimal:
        """Sum of `cost_at(l)` for l in [from_level, to_level); empty range is 0."""
        total = ZERO
        with localcontext(BIG_CONTEXT):
            for level in range(from_level, to_level):
                total += self.cost_at(level)
        return total


@dataclass(frozen=True)
class EffectCurve:
    """Cumulative effect of owning `level` levels, aimed at one category."""

    target_category: UpgradeCategory
    base_value: Decimal
    scaling_factor: Decimal = ONE
    kind: CurveKind = CurveKind.LINEAR
    cap: Decimal = UNBOUNDED

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_category", UpgradeCategory(self.target_category))
        object.__setattr__(self, "kind", CurveKind(self.kind))
        _coerce(self, "base_value", self.base_value)
        _coerce(self, "scaling_factor", self.scaling_factor)
        if _coerce(self, "cap", self.cap) < 0:
            raise DomainValidationError("EffectCurve.cap must be non-negative")

    def effect_at(self, level: int) -> Decimal:
        if level <= 0:
            return ZERO

        with localcontext(BIG_CONTEXT):
            if self.kind in (CurveKind.LINEAR, CurveKind.PERCENTAGE):
                raw = self.base_value * level
            elif self.kind is CurveKind.EXPONENTIAL:
                raw = _scaled(self.base_value, self.scaling_factor, level)
            elif self.kind is CurveKind.COMPOUND:
                raw = _scaled(self.base_value, ONE + self.scaling_factor, level)
            elif self.kind is CurveKind.THRESHOLD:
                raw = self.base_value if level >= self.scaling_factor else ZERO
            else:
                raw = self.base_value

        return min(raw, self.cap)


# ============================================================================
# PREREQUISITES
# ============================================================================


@dataclass(frozen=True)
class Prerequisite:
    """
    One unlock requirement.

    `required_value` holds the score, click count or duration (seconds)
    threshold; `required_level` the player or upgrade level; `target_id` the
    upgrade or achievement id.
    """

    type: PrerequisiteType
    description: str = ""
    required_value: Decimal = ZERO
    required_level: int = 0
    target_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", PrerequisiteType(self.type))
        _coerce(self, "required_value", self.required_value)
        if self.type in (PrerequisiteType.OTHER_UPGRADE, PrerequisiteType.ACHIEVEMENT):
            if not self.target_id:
                raise DomainValidationError(
                    f"Prerequisite of type {self.type.value} requires target_id"
                )
        if not self.description:
            object.__setattr__(self, "description", self._default_description())

    def _default_description(self) -> str:
        if self.type is PrerequisiteType.PLAYER_LEVEL:
            return f"Requires player level {self.required_level}"
        if self.type is PrerequisiteType.TOTAL_SCORE:
            return f"Requires {self.required_value} total score"
        if self.type is PrerequisiteType.CLICK_COUNT:
            return f"Requires {self.required_value} clicks"
        if self.type is PrerequisiteType.OTHER_UPGRADE:
            return f"Requires {self.target_id} level {self.required_level}"
        if self.type is PrerequisiteType.ACHIEVEMENT:
            return f"Requires achievement {self.target_id}"
        return f"Requires {self.required_value} seconds played"

    def is_satisfied(self, context: PlayerUpgradeContext) -> bool:
        if self.type is PrerequisiteType.PLAYER_LEVEL:
            return context.player_level >= self.required_level
        if self.type is PrerequisiteType.TOTAL_SCORE:
            return context.current_score >= self.required_value
        if self.type is PrerequisiteType.CLICK_COUNT:
            return context.click_count >= self.required_value
        if self.type is PrerequisiteType.OTHER_UPGRADE:
            return context.level_of(self.target_id or "") >= self.required_level
        # Achievement and time-played tracking live outside this service;
        # both evaluate as satisfied until that integration exists.
        return True


# ============================================================================
# CATALOG ENTRY
# ============================================================================


@dataclass(frozen=True)
class UpgradeDefinition:
    upgrade_id: str
    name: str
    category: UpgradeCategory
    rarity: UpgradeRarity
    cost_curve: CostCurve
    effect_curves: Tuple[EffectCurve, ...]
    prerequisites: Tuple[Prerequisite, ...] = ()
    max_level: int = 1
    description: str = ""
    is_active: bool = True
    is_hidden: bool = False
    sort_order: int = 0
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.upgrade_id:
            raise DomainValidationError("UpgradeDefinition.upgrade_id is required")
        if self.max_level < 1:
            raise DomainValidationError(
                f"Upgrade {self.upgrade_id}: max_level must be at least 1"
            )
        if not self.effect_curves:
            raise DomainValidationError(
                f"Upgrade {self.upgrade_id}: at least one effect curve is required"
            )
        object.__setattr__(self, "category", UpgradeCategory(self.category))
        object.__setattr__(self, "rarity", UpgradeRarity(self.rarity))
        object.__setattr__(self, "effect_curves", tuple(self.effect_curves))
        object.__setattr__(self, "prerequisites", tuple(self.prerequisites))
        object.__setattr__(self, "tags", tuple(self.tags))

    @property
    def is_purchasable(self) -> bool:
        return self.is_active and not self.is_hidden

    def clamp_level(self, level: int) -> int:
        return min(max(level, 0), self.max_level)

    def cost_for_levels(self, current_level: int, levels: int) -> Decimal:
        """Cost of buying `levels` levels from `current_level`, truncated at max level."""
        start = self.clamp_level(current_level)
        end = min(start + max(levels, 0), self.max_level)
        return self.cost_curve.total_cost_for_range(start, end)

    def next_level_cost(self, current_level: int) -> Decimal:
        if self.clamp_level(current_level) >= self.max_level:
            return UNBOUNDED
        return self.cost_curve.cost_at(self.clamp_level(current_level))

    def effect_at(self, level: int) -> Decimal:
        """Combined value of all effect curves at `level` (clamped to max level)."""
        clamped = self.clamp_level(level)
        total = ZERO
        with localcontext(BIG_CONTEXT):
            for curve in self.effect_curves:
                total += curve.effect_at(clamped)
        return total

    def unmet_prerequisites(self, context: PlayerUpgradeContext) -> List[str]:
        return [p.description for p in self.prerequisites if not p.is_satisfied(context)]
