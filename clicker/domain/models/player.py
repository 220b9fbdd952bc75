"""
Per-request player views used by the calculation engine.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping

from clicker.domain.models.big_number import ONE, ZERO, to_big, to_text
from clicker.domain.models.enums import UpgradeCategory


@dataclass(frozen=True)
class PlayerUpgradeContext:
    """
    Snapshot of everything the engine needs to know about a player.

    Built fresh for every request from the GameCore session (score, clicks)
    and the upgrade ledger (owned levels); never cached.
    """

    player_id: uuid.UUID
    current_score: Decimal
    player_level: int = 1
    click_count: Decimal = ZERO
    owned_upgrades: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "current_score", to_big(self.current_score))
        object.__setattr__(self, "click_count", to_big(self.click_count))
        object.__setattr__(
            self, "owned_upgrades", MappingProxyType(dict(self.owned_upgrades))
        )

    def level_of(self, upgrade_id: str) -> int:
        return max(self.owned_upgrades.get(upgrade_id, 0), 0)

    @property
    def total_upgrade_level(self) -> int:
        return sum(max(level, 0) for level in self.owned_upgrades.values())

    def with_levels(self, upgrade_id: str, level: int, score: Decimal) -> PlayerUpgradeContext:
        """Copy with one upgrade at `level` and the score replaced (for projections)."""
        owned = dict(self.owned_upgrades)
        owned[upgrade_id] = level
        return PlayerUpgradeContext(
            player_id=self.player_id,
            current_score=score,
            player_level=self.player_level,
            click_count=self.click_count,
            owned_upgrades=owned,
        )


@dataclass
class PlayerEffectSummary:
    total_click_power_bonus: Decimal = ZERO
    total_passive_income_bonus: Decimal = ZERO
    total_multiplier: Decimal = ONE
    category_effects: Dict[UpgradeCategory, Decimal] = field(default_factory=dict)
    upgrade_contributions: Dict[str, Decimal] = field(default_factory=dict)
    total_upgrade_level: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_click_power_bonus": to_text(self.total_click_power_bonus),
            "total_passive_income_bonus": to_text(self.total_passive_income_bonus),
            "total_multiplier": to_text(self.total_multiplier),
            "category_effects": {c.value: to_text(v) for c, v in self.category_effects.items()},
            "upgrade_contributions": {k: to_text(v) for k, v in self.upgrade_contributions.items()},
            "total_upgrade_level": self.total_upgrade_level,
        }
