"""
Pure domain models: numeric values, curves, catalog entries and player views.

Nothing in this package touches the database or the network.
"""

from clicker.domain.models.base import DomainEvent, DomainValidationError
from clicker.domain.models.big_number import (
    BIG_CONTEXT,
    HUNDRED,
    ONE,
    UNBOUNDED,
    ZERO,
    big_sum,
    format_big,
    to_big,
    to_text,
)
from clicker.domain.models.enums import (
    CompensationStatus,
    CurveKind,
    PrerequisiteType,
    SagaState,
    UpgradeCategory,
    UpgradeRarity,
)
from clicker.domain.models.player import PlayerEffectSummary, PlayerUpgradeContext
from clicker.domain.models.upgrade import (
    CostCurve,
    EffectCurve,
    Prerequisite,
    UpgradeDefinition,
)

__all__ = [
    "DomainEvent",
    "DomainValidationError",
    "BIG_CONTEXT",
    "ZERO",
    "ONE",
    "HUNDRED",
    "UNBOUNDED",
    "to_big",
    "big_sum",
    "format_big",
    "to_text",
    "UpgradeCategory",
    "UpgradeRarity",
    "CurveKind",
    "PrerequisiteType",
    "CompensationStatus",
    "SagaState",
    "CostCurve",
    "EffectCurve",
    "Prerequisite",
    "UpgradeDefinition",
    "PlayerUpgradeContext",
    "PlayerEffectSummary",
]
