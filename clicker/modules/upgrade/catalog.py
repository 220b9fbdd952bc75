"""
Upgrade catalog loading.

The catalog is read once at startup (from `config/upgrades/catalog.yaml`
through ConfigManager, or from an explicit YAML file) and exposed as an
immutable mapping of upgrade id to `UpgradeDefinition`. Requests share it
without locking.
"""

from __future__ import annotations

from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

import yaml

from clicker.core.exceptions import ConfigurationError
from clicker.core.logging.logger import get_logger
from clicker.domain.models.base import DomainValidationError
from clicker.domain.models.big_number import ONE, UNBOUNDED, ZERO
from clicker.domain.models.enums import CurveKind, PrerequisiteType, UpgradeCategory
from clicker.domain.models.upgrade import (
    CostCurve,
    EffectCurve,
    Prerequisite,
    UpgradeDefinition,
)
from clicker.modules.shared.exceptions import NotFoundError

logger = get_logger(__name__)

CATALOG_CONFIG_KEY = "upgrades.catalog"


# ============================================================================
# ENTRY PARSING
# ============================================================================


def _parse_cost(data: Mapping[str, Any]) -> CostCurve:
    return CostCurve(
        base_cost=data["base"],
        multiplier=data.get("multiplier", ONE),
        kind=CurveKind(data.get("kind", CurveKind.EXPONENTIAL.value)),
        cap=data.get("cap", UNBOUNDED),
    )


def _parse_effect(data: Mapping[str, Any]) -> EffectCurve:
    return EffectCurve(
        target_category=UpgradeCategory(data["category"]),
        base_value=data["base"],
        scaling_factor=data.get("scaling", ONE),
        kind=CurveKind(data.get("kind", CurveKind.LINEAR.value)),
        cap=data.get("cap", UNBOUNDED),
    )


def _parse_prerequisite(data: Mapping[str, Any]) -> Prerequisite:
    return Prerequisite(
        type=PrerequisiteType(data["type"]),
        description=data.get("description", ""),
        required_value=data.get("value", ZERO),
        required_level=int(data.get("level", 0)),
        target_id=data.get("upgrade_id") or data.get("achievement_id"),
    )


def parse_definition(entry: Mapping[str, Any]) -> UpgradeDefinition:
    """
    Build an `UpgradeDefinition` from one catalog entry.

    Raises:
        DomainValidationError: missing keys, unknown enum values or invalid numbers
    """
    upgrade_id = entry.get("id", "<missing id>")
    try:
        return UpgradeDefinition(
            upgrade_id=entry["id"],
            name=entry["name"],
            description=entry.get("description", ""),
            category=UpgradeCategory(entry["category"]),
            rarity=entry.get("rarity", "common"),
            cost_curve=_parse_cost(entry["cost"]),
            effect_curves=tuple(_parse_effect(e) for e in entry.get("effects", [])),
            prerequisites=tuple(_parse_prerequisite(p) for p in entry.get("prerequisites") or []),
            max_level=int(entry.get("max_level", 1)),
            is_active=bool(entry.get("active", True)),
            is_hidden=bool(entry.get("hidden", False)),
            sort_order=int(entry.get("sort_order", 0)),
            tags=tuple(entry.get("tags", [])),
        )
    except DomainValidationError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise DomainValidationError(f"Invalid catalog entry '{upgrade_id}': {exc}") from exc


# ============================================================================
# CATALOG
# ============================================================================


class UpgradeCatalog:
    """
    Immutable id -> definition map.

    Iteration yields definitions ordered by `sort_order`, then id.
    """

    def __init__(self, definitions: Iterable[UpgradeDefinition]) -> None:
        upgrades: Dict[str, UpgradeDefinition] = {}
        for definition in definitions:
            if definition.upgrade_id in upgrades:
                raise DomainValidationError(f"Duplicate upgrade id: {definition.upgrade_id}")
            upgrades[definition.upgrade_id] = definition

        self._upgrades: Mapping[str, UpgradeDefinition] = MappingProxyType(upgrades)
        self._ordered = tuple(
            sorted(upgrades.values(), key=lambda d: (d.sort_order, d.upgrade_id))
        )
        self._warn_dangling_prerequisites()

    def _warn_dangling_prerequisites(self) -> None:
        for definition in self._ordered:
            for prereq in definition.prerequisites:
                if (
                    prereq.type is PrerequisiteType.OTHER_UPGRADE
                    and prereq.target_id not in self._upgrades
                ):
                    logger.warning(
                        "Catalog prerequisite references unknown upgrade",
                        extra={"upgrade_id": definition.upgrade_id, "missing": prereq.target_id},
                    )

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_entries(cls, entries: Sequence[Mapping[str, Any]]) -> UpgradeCatalog:
        catalog = cls(parse_definition(entry) for entry in entries)
        logger.info("Upgrade catalog loaded", extra={"upgrade_count": len(catalog)})
        return catalog

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> UpgradeCatalog:
        """
        Load a catalog file shaped like `config/upgrades/catalog.yaml`.

        Raises:
            ConfigurationError: the file is missing or is not valid YAML
            DomainValidationError: an entry is malformed
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(CATALOG_CONFIG_KEY, f"Cannot read catalog file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(CATALOG_CONFIG_KEY, f"Catalog file {path} must contain a mapping")
        entries = (data.get("upgrades") or {}).get("catalog") or []
        return cls.from_entries(entries)

    @classmethod
    def from_config(cls, config_manager: Any) -> UpgradeCatalog:
        return cls.from_entries(config_manager.get(CATALOG_CONFIG_KEY, []) or [])

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get(self, upgrade_id: str) -> Optional[UpgradeDefinition]:
        return self._upgrades.get(upgrade_id)

    def require(self, upgrade_id: str) -> UpgradeDefinition:
        """
        Raises:
            NotFoundError: unknown upgrade id (error_code UPGRADE_NOT_FOUND)
        """
        definition = self._upgrades.get(upgrade_id)
        if definition is None:
            raise NotFoundError("Upgrade", upgrade_id)
        return definition

    def list_upgrades(
        self,
        category: Optional[UpgradeCategory] = None,
        include_hidden: bool = False,
    ) -> List[UpgradeDefinition]:
        return [
            d
            for d in self._ordered
            if (include_hidden or not d.is_hidden)
            and (category is None or d.category is category)
        ]

    @property
    def total_max_levels(self) -> int:
        return sum(d.max_level for d in self._ordered)

    def __contains__(self, upgrade_id: object) -> bool:
        return upgrade_id in self._upgrades

    def __iter__(self) -> Iterator[UpgradeDefinition]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._upgrades)
