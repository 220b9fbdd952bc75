"""
Type-safe enumerations for the upgrade domain.

Values are lowercase snake_case strings so they serialize unchanged into
YAML catalog files, JSON payloads and database columns.
"""

from __future__ import annotations

from enum import Enum


class UpgradeCategory(str, Enum):
    CLICK_POWER = "click_power"
    PASSIVE_INCOME = "passive_income"
    MULTIPLIERS = "multipliers"
    AUTOMATION = "automation"
    SPECIAL = "special"
    PRESTIGE = "prestige"


class UpgradeRarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class CurveKind(str, Enum):
    """Growth shape of a cost or effect curve."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    PERCENTAGE = "percentage"
    COMPOUND = "compound"
    THRESHOLD = "threshold"
    ONE_TIME = "one_time"


class PrerequisiteType(str, Enum):
    PLAYER_LEVEL = "player_level"
    TOTAL_SCORE = "total_score"
    CLICK_COUNT = "click_count"
    OTHER_UPGRADE = "other_upgrade"
    ACHIEVEMENT = "achievement"
    TIME_PLAYED = "time_played"


class CompensationStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class SagaState(str, Enum):
    """Purchase saga progression; the last three are terminal."""

    VALIDATED = "validated"
    CURRENCY_DEDUCTED = "currency_deducted"
    LEDGER_UPDATED = "ledger_updated"
    EFFECTS_APPLIED = "effects_applied"
    COMMITTED = "committed"
    FAILED = "failed"
    COMPENSATION_PENDING = "compensation_pending"
