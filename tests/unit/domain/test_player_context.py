"""
Unit Tests for Player Views
===========================

Test Coverage
-------------
- PlayerUpgradeContext immutability and derived values
- PlayerEffectSummary serialization
"""

import uuid
from decimal import Decimal

import pytest

from clicker.domain.models import (
    DomainEvent,
    PlayerEffectSummary,
    PlayerUpgradeContext,
    UpgradeCategory,
    format_big,
    to_text,
)


@pytest.mark.unit
@pytest.mark.domain
class TestPlayerUpgradeContext:
    """Per-request player snapshot."""

    def test_score_is_coerced_to_decimal(self):
        context = PlayerUpgradeContext(player_id=uuid.uuid4(), current_score="1234.5")
        assert context.current_score == Decimal("1234.5")

    def test_owned_upgrades_are_read_only(self):
        owned = {"click_power_1": 3}
        context = PlayerUpgradeContext(uuid.uuid4(), Decimal(0), owned_upgrades=owned)

        with pytest.raises(TypeError):
            context.owned_upgrades["click_power_1"] = 99  # type: ignore[index]

        owned["click_power_1"] = 50
        assert context.level_of("click_power_1") == 3

    def test_level_of_unknown_or_negative_is_zero(self):
        context = PlayerUpgradeContext(
            uuid.uuid4(), Decimal(0), owned_upgrades={"broken": -4}
        )
        assert context.level_of("missing") == 0
        assert context.level_of("broken") == 0
        assert context.total_upgrade_level == 0

    def test_with_levels_returns_projection(self):
        context = PlayerUpgradeContext(
            uuid.uuid4(), Decimal(100), owned_upgrades={"click_power_1": 2}
        )
        projected = context.with_levels("click_power_1", 5, Decimal(40))

        assert projected.level_of("click_power_1") == 5
        assert projected.current_score == Decimal(40)
        assert context.level_of("click_power_1") == 2
        assert context.current_score == Decimal(100)


@pytest.mark.unit
@pytest.mark.domain
class TestPlayerEffectSummary:
    """Aggregated effect totals."""

    def test_defaults_are_neutral(self):
        summary = PlayerEffectSummary()
        assert summary.total_click_power_bonus == Decimal(0)
        assert summary.total_multiplier == Decimal(1)

    def test_to_dict_renders_decimals_as_strings(self):
        summary = PlayerEffectSummary(
            total_click_power_bonus=Decimal("12.5"),
            category_effects={UpgradeCategory.CLICK_POWER: Decimal("12.5")},
            upgrade_contributions={"click_power_1": Decimal("12.5")},
            total_upgrade_level=12,
        )
        data = summary.to_dict()

        assert data["total_click_power_bonus"] == "12.5"
        assert data["category_effects"] == {"click_power": "12.5"}
        assert data["total_upgrade_level"] == 12


@pytest.mark.unit
@pytest.mark.domain
class TestFormatting:
    def test_format_big_switches_to_scientific(self):
        assert format_big(Decimal("49.93375")) == "49.93"
        assert format_big(Decimal("1e20")) == "1.000e+20"
        assert format_big(Decimal("Infinity")) == "∞"

    def test_to_text_drops_trailing_zeros(self):
        """Equal values share one wire form regardless of decimal scale."""
        assert to_text(Decimal("49.933750")) == "49.93375"
        assert to_text(Decimal("10") * Decimal("1.15") ** 0) == "10"
        assert to_text(Decimal("1E+2")) == "100"
        assert to_text(Decimal("0.000")) == "0"
        assert to_text(Decimal("9.99e1000")) == "9.99E+1000"
        assert to_text(Decimal("Infinity")) == "Infinity"

    def test_domain_event_payload_includes_timestamp(self):
        event = DomainEvent("upgrade.purchased", {"upgrade_id": "click_power_1"})
        payload = event.to_payload()
        assert payload["upgrade_id"] == "click_power_1"
        assert "occurred_at" in payload
