"""
Unit Tests for Upgrade Curves and Definitions
=============================================

Test Coverage
-------------
- Cost curves: all kinds, caps, overflow, range sums
- Effect curves: all kinds, caps, non-positive levels
- Prerequisites: evaluation and default descriptions
- UpgradeDefinition: level clamping and validation

Testing Strategy
----------------
- Pure domain tests (no I/O)
- Exact decimal expectations
"""

from decimal import Decimal

import pytest

from clicker.domain.models import (
    UNBOUNDED,
    CostCurve,
    CurveKind,
    DomainValidationError,
    EffectCurve,
    Prerequisite,
    PrerequisiteType,
    UpgradeCategory,
    UpgradeDefinition,
    UpgradeRarity,
)


def _definition(max_level=3, cost=None, effects=None, prerequisites=()):
    return UpgradeDefinition(
        upgrade_id="test_upgrade",
        name="Test Upgrade",
        category=UpgradeCategory.CLICK_POWER,
        rarity=UpgradeRarity.COMMON,
        cost_curve=cost or CostCurve(Decimal(10), Decimal("1.15")),
        effect_curves=effects or (EffectCurve(UpgradeCategory.CLICK_POWER, Decimal(1)),),
        prerequisites=prerequisites,
        max_level=max_level,
    )


# ============================================================================
# COST CURVES
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestCostCurve:
    """Cost of buying the next level."""

    def test_exponential_cost_is_exact(self):
        """Exponential costs should be exact decimals, not float approximations."""
        curve = CostCurve(Decimal(10), Decimal("1.15"), CurveKind.EXPONENTIAL)

        assert curve.cost_at(0) == Decimal(10)
        assert curve.cost_at(1) == Decimal("11.5")
        assert curve.cost_at(2) == Decimal("13.225")
        assert curve.cost_at(3) == Decimal("15.20875")

    def test_float_multiplier_is_converted_through_repr(self):
        """A YAML float 1.15 should behave exactly like Decimal('1.15')."""
        curve = CostCurve(10, 1.15)
        assert curve.multiplier == Decimal("1.15")
        assert curve.cost_at(2) == Decimal("13.225")

    def test_linear_cost(self):
        """Linear: base * (1 + level * multiplier)."""
        curve = CostCurve(Decimal(10), Decimal("0.5"), CurveKind.LINEAR)
        assert curve.cost_at(0) == Decimal(10)
        assert curve.cost_at(2) == Decimal(20)

    def test_compound_cost(self):
        """Compound: base * (1 + multiplier)^level."""
        curve = CostCurve(Decimal(100), Decimal("0.1"), CurveKind.COMPOUND)
        assert curve.cost_at(2) == Decimal("121")

    def test_one_time_cost_is_unaffordable_after_first_level(self):
        """OneTime: base at level 0, unbounded afterwards."""
        curve = CostCurve(Decimal(500), Decimal(1), CurveKind.ONE_TIME)
        assert curve.cost_at(0) == Decimal(500)
        assert curve.cost_at(1) == UNBOUNDED

    def test_cap_clamps_cost(self):
        """Costs never exceed the curve cap."""
        curve = CostCurve(Decimal(10), Decimal(2), cap=Decimal(100))
        assert curve.cost_at(3) == Decimal(80)
        assert curve.cost_at(4) == Decimal(100)
        assert curve.cost_at(40) == Decimal(100)

    def test_overflow_becomes_unbounded_then_capped(self):
        """Astronomical exponents overflow to infinity, which the cap still clamps."""
        uncapped = CostCurve(Decimal(10), Decimal(10))
        capped = CostCurve(Decimal(10), Decimal(10), cap=Decimal("1e100"))

        assert uncapped.cost_at(1_000_000_000) == UNBOUNDED
        assert capped.cost_at(1_000_000_000) == Decimal("1e100")

    def test_negative_level_is_treated_as_zero(self):
        curve = CostCurve(Decimal(10), Decimal("1.15"))
        assert curve.cost_at(-5) == curve.cost_at(0)

    def test_exponential_cost_is_monotonic(self):
        """Costs never decrease as level grows for multiplier >= 1."""
        curve = CostCurve(Decimal(10), Decimal("1.15"))
        costs = [curve.cost_at(level) for level in range(60)]
        assert costs == sorted(costs)

    @pytest.mark.parametrize(
        "kind, multiplier",
        [
            (CurveKind.LINEAR, Decimal("0.5")),
            (CurveKind.LINEAR, Decimal(0)),
            (CurveKind.EXPONENTIAL, Decimal("1.15")),
            (CurveKind.EXPONENTIAL, Decimal(1)),
            (CurveKind.COMPOUND, Decimal("0.1")),
            (CurveKind.COMPOUND, Decimal(0)),
        ],
    )
    def test_growing_kinds_are_monotonic(self, kind, multiplier):
        """cost_at(l) <= cost_at(l + 1) for every growing kind and valid multiplier."""
        curve = CostCurve(Decimal(10), multiplier, kind)
        costs = [curve.cost_at(level) for level in range(80)]
        assert all(a <= b for a, b in zip(costs, costs[1:]))

    @pytest.mark.parametrize(
        "kind, multiplier",
        [
            (CurveKind.LINEAR, Decimal(3)),
            (CurveKind.EXPONENTIAL, Decimal(2)),
            (CurveKind.COMPOUND, Decimal(1)),
            (CurveKind.ONE_TIME, Decimal(1)),
        ],
    )
    def test_cap_bounds_every_cost_kind(self, kind, multiplier):
        """No level of any cost kind is priced above a finite cap."""
        cap = Decimal(100)
        curve = CostCurve(Decimal(40), multiplier, kind, cap=cap)

        costs = [curve.cost_at(level) for level in range(50)]

        assert all(cost <= cap for cost in costs)
        assert costs[-1] == cap

    def test_exponential_multiplier_below_one_rejected(self):
        """A decaying exponential curve would make later levels cheaper."""
        with pytest.raises(DomainValidationError, match="at least 1"):
            CostCurve(Decimal(10), Decimal("0.9"), CurveKind.EXPONENTIAL)

    def test_compound_negative_rate_rejected(self):
        with pytest.raises(DomainValidationError, match="multiplier must be non-negative"):
            CostCurve(Decimal(10), Decimal("-0.1"), CurveKind.COMPOUND)

    def test_multiplier_below_one_allowed_for_non_exponential_kinds(self):
        """Linear and compound multipliers are rates, so fractions are valid."""
        assert CostCurve(Decimal(10), Decimal("0.5"), CurveKind.LINEAR).cost_at(1) == Decimal(15)
        assert CostCurve(Decimal(100), Decimal("0.1"), CurveKind.COMPOUND).cost_at(1) == Decimal(110)

    def test_range_sum_is_additive(self):
        """total(a, c) == total(a, b) + total(b, c)."""
        curve = CostCurve(Decimal(10), Decimal("1.15"))
        assert curve.total_cost_for_range(0, 7) == (
            curve.total_cost_for_range(0, 3) + curve.total_cost_for_range(3, 7)
        )

    def test_empty_range_costs_nothing(self):
        curve = CostCurve(Decimal(10), Decimal("1.15"))
        assert curve.total_cost_for_range(5, 5) == Decimal(0)
        assert curve.total_cost_for_range(5, 2) == Decimal(0)

    def test_negative_base_cost_rejected(self):
        with pytest.raises(DomainValidationError):
            CostCurve(Decimal(-1), Decimal("1.15"))

    def test_threshold_is_not_a_cost_curve(self):
        with pytest.raises(DomainValidationError, match="Unsupported cost curve kind"):
            CostCurve(Decimal(10), Decimal(1), CurveKind.THRESHOLD)

    def test_non_numeric_value_rejected(self):
        with pytest.raises(DomainValidationError):
            CostCurve("lots", Decimal(1))


# ============================================================================
# EFFECT CURVES
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestEffectCurve:
    """Cumulative effect of owning N levels."""

    def test_linear_effect(self):
        curve = EffectCurve(UpgradeCategory.CLICK_POWER, Decimal(5))
        assert curve.effect_at(4) == Decimal(20)

    def test_zero_and_negative_levels_have_no_effect(self):
        curve = EffectCurve(UpgradeCategory.CLICK_POWER, Decimal(5))
        assert curve.effect_at(0) == Decimal(0)
        assert curve.effect_at(-3) == Decimal(0)

    def test_percentage_effect_scales_linearly(self):
        curve = EffectCurve(UpgradeCategory.MULTIPLIERS, Decimal(5), kind=CurveKind.PERCENTAGE)
        assert curve.effect_at(4) == Decimal(20)

    def test_exponential_effect(self):
        curve = EffectCurve(
            UpgradeCategory.MULTIPLIERS, Decimal(2), Decimal(3), CurveKind.EXPONENTIAL
        )
        assert curve.effect_at(2) == Decimal(18)

    def test_compound_effect(self):
        curve = EffectCurve(
            UpgradeCategory.PASSIVE_INCOME, Decimal(1), Decimal("0.5"), CurveKind.COMPOUND
        )
        assert curve.effect_at(2) == Decimal("2.25")

    def test_threshold_effect_switches_on_at_threshold(self):
        """Threshold: base value once level reaches the scaling factor."""
        curve = EffectCurve(
            UpgradeCategory.SPECIAL, Decimal(50), Decimal(10), CurveKind.THRESHOLD
        )
        assert curve.effect_at(9) == Decimal(0)
        assert curve.effect_at(10) == Decimal(50)
        assert curve.effect_at(11) == Decimal(50)

    def test_one_time_effect_is_constant(self):
        curve = EffectCurve(UpgradeCategory.AUTOMATION, Decimal(7), kind=CurveKind.ONE_TIME)
        assert curve.effect_at(1) == Decimal(7)
        assert curve.effect_at(9) == Decimal(7)

    def test_cap_clamps_every_kind(self):
        for kind in (CurveKind.LINEAR, CurveKind.PERCENTAGE, CurveKind.EXPONENTIAL):
            curve = EffectCurve(
                UpgradeCategory.CLICK_POWER, Decimal(10), Decimal(2), kind, cap=Decimal(15)
            )
            assert curve.effect_at(5) == Decimal(15), kind

    def test_linear_effect_is_monotonic(self):
        curve = EffectCurve(UpgradeCategory.CLICK_POWER, Decimal("0.5"))
        effects = [curve.effect_at(level) for level in range(30)]
        assert effects == sorted(effects)


# ============================================================================
# PREREQUISITES
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestPrerequisite:
    """Unlock requirements against a player context."""

    def test_other_upgrade_requires_target(self):
        with pytest.raises(DomainValidationError, match="requires target_id"):
            Prerequisite(PrerequisiteType.OTHER_UPGRADE, required_level=10)

    def test_other_upgrade_boundary(self, make_context):
        prereq = Prerequisite(
            PrerequisiteType.OTHER_UPGRADE, target_id="click_power_1", required_level=10
        )
        assert prereq.is_satisfied(make_context(owned={"click_power_1": 10}))
        assert not prereq.is_satisfied(make_context(owned={"click_power_1": 9}))

    def test_total_score(self, make_context):
        prereq = Prerequisite(PrerequisiteType.TOTAL_SCORE, required_value=Decimal(500))
        assert prereq.is_satisfied(make_context(score=500))
        assert not prereq.is_satisfied(make_context(score="499.99"))

    def test_player_level_and_click_count(self, make_context):
        level = Prerequisite(PrerequisiteType.PLAYER_LEVEL, required_level=3)
        clicks = Prerequisite(PrerequisiteType.CLICK_COUNT, required_value=Decimal(100))

        assert level.is_satisfied(make_context(player_level=3))
        assert not level.is_satisfied(make_context(player_level=2))
        assert clicks.is_satisfied(make_context(click_count=100))
        assert not clicks.is_satisfied(make_context(click_count=99))

    def test_untracked_requirements_are_satisfied(self, make_context):
        """Achievements and play time are not tracked here and always pass."""
        achievement = Prerequisite(PrerequisiteType.ACHIEVEMENT, target_id="first_click")
        played = Prerequisite(PrerequisiteType.TIME_PLAYED, required_value=Decimal(3600))

        assert achievement.is_satisfied(make_context())
        assert played.is_satisfied(make_context())

    def test_default_description(self):
        prereq = Prerequisite(
            PrerequisiteType.OTHER_UPGRADE, target_id="click_power_1", required_level=10
        )
        assert prereq.description == "Requires click_power_1 level 10"


# ============================================================================
# UPGRADE DEFINITION
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestUpgradeDefinition:
    """Catalog entry behaviour."""

    def test_max_level_must_be_positive(self):
        with pytest.raises(DomainValidationError, match="max_level"):
            _definition(max_level=0)

    def test_effect_curve_required(self):
        with pytest.raises(DomainValidationError, match="effect curve"):
            UpgradeDefinition(
                upgrade_id="empty",
                name="Empty",
                category=UpgradeCategory.SPECIAL,
                rarity=UpgradeRarity.COMMON,
                cost_curve=CostCurve(Decimal(1), Decimal(1)),
                effect_curves=(),
            )

    def test_cost_for_levels_truncates_at_max_level(self):
        """Levels beyond max are never priced."""
        upgrade = _definition(max_level=3)
        assert upgrade.cost_for_levels(2, 5) == upgrade.cost_curve.cost_at(2)
        assert upgrade.cost_for_levels(3, 1) == Decimal(0)

    def test_next_level_cost_at_max_is_unbounded(self):
        upgrade = _definition(max_level=3)
        assert upgrade.next_level_cost(3) == UNBOUNDED
        assert upgrade.next_level_cost(0) == Decimal(10)

    def test_effect_is_clamped_to_max_level(self):
        upgrade = _definition(max_level=3)
        assert upgrade.effect_at(10) == upgrade.effect_at(3) == Decimal(3)

    def test_effect_sums_all_curves(self):
        upgrade = _definition(
            effects=(
                EffectCurve(UpgradeCategory.CLICK_POWER, Decimal(1)),
                EffectCurve(UpgradeCategory.PASSIVE_INCOME, Decimal(2)),
            )
        )
        assert upgrade.effect_at(2) == Decimal(6)

    def test_unmet_prerequisites_are_named(self, make_context):
        upgrade = _definition(
            prerequisites=(
                Prerequisite(
                    PrerequisiteType.OTHER_UPGRADE,
                    "Requires Stronger Fingers level 10",
                    target_id="click_power_1",
                    required_level=10,
                ),
            )
        )
        assert upgrade.unmet_prerequisites(make_context(owned={"click_power_1": 9})) == [
            "Requires Stronger Fingers level 10"
        ]
        assert upgrade.unmet_prerequisites(make_context(owned={"click_power_1": 10})) == []

    def test_hidden_upgrade_is_not_purchasable(self):
        upgrade = UpgradeDefinition(
            upgrade_id="secret",
            name="Secret",
            category=UpgradeCategory.SPECIAL,
            rarity=UpgradeRarity.LEGENDARY,
            cost_curve=CostCurve(Decimal(1), Decimal(1)),
            effect_curves=(EffectCurve(UpgradeCategory.SPECIAL, Decimal(1)),),
            is_hidden=True,
        )
        assert not upgrade.is_purchasable
