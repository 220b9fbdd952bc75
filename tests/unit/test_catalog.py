"""
Unit tests for the upgrade catalog and its configuration sources.
"""

from decimal import Decimal

import pytest

from clicker.core.exceptions import ConfigurationError
from clicker.domain.models import CurveKind, DomainValidationError, PrerequisiteType, UpgradeCategory
from clicker.modules.shared.exceptions import NotFoundError
from clicker.modules.upgrade.catalog import UpgradeCatalog, parse_definition
from clicker.modules.upgrade.constants import FraudSettings, PurchaseSettings, category_weight


def _entry(**overrides):
    entry = {
        "id": "tap_1",
        "name": "Tap",
        "category": "click_power",
        "cost": {"base": 5, "multiplier": "1.1"},
        "effects": [{"category": "click_power", "base": 1}],
        "max_level": 10,
    }
    entry.update(overrides)
    return entry


@pytest.mark.unit
class TestSeedCatalog:
    """The shipped catalog.yaml."""

    def test_all_seed_upgrades_present(self, catalog):
        assert [u.upgrade_id for u in catalog] == [
            "click_power_1",
            "passive_income_1",
            "multiplier_1",
            "click_power_2",
            "passive_income_2",
        ]

    def test_click_power_1_curve(self, catalog):
        upgrade = catalog.require("click_power_1")
        assert upgrade.cost_curve.base_cost == Decimal(10)
        assert upgrade.cost_curve.multiplier == Decimal("1.15")
        assert upgrade.cost_curve.kind is CurveKind.EXPONENTIAL
        assert upgrade.max_level == 500

    def test_multiplier_1_requires_click_power_1_level_10(self, catalog):
        (prereq,) = catalog.require("multiplier_1").prerequisites
        assert prereq.type is PrerequisiteType.OTHER_UPGRADE
        assert prereq.target_id == "click_power_1"
        assert prereq.required_level == 10
        assert prereq.description == "Requires Stronger Fingers level 10"

    def test_passive_income_1_requires_score(self, catalog):
        (prereq,) = catalog.require("passive_income_1").prerequisites
        assert prereq.type is PrerequisiteType.TOTAL_SCORE
        assert prereq.required_value == Decimal(500)

    def test_total_max_levels(self, catalog):
        assert catalog.total_max_levels == 500 + 100 + 10 + 200 + 75

    def test_from_config_matches_from_yaml(self, catalog, config_manager):
        from_config = UpgradeCatalog.from_config(config_manager)
        assert [u.upgrade_id for u in from_config] == [u.upgrade_id for u in catalog]


@pytest.mark.unit
class TestCatalogLookup:
    """Lookup and filtering."""

    def test_require_unknown_raises_not_found(self, catalog):
        with pytest.raises(NotFoundError) as exc_info:
            catalog.require("nope")
        assert exc_info.value.error_code == "UPGRADE_NOT_FOUND"

    def test_get_unknown_returns_none(self, catalog):
        assert catalog.get("nope") is None
        assert "nope" not in catalog
        assert "click_power_1" in catalog

    def test_list_by_category(self, catalog):
        ids = [u.upgrade_id for u in catalog.list_upgrades(UpgradeCategory.CLICK_POWER)]
        assert ids == ["click_power_1", "click_power_2"]

    def test_hidden_upgrades_excluded_by_default(self):
        catalog = UpgradeCatalog.from_entries(
            [_entry(), _entry(id="secret", name="Secret", hidden=True)]
        )
        assert [u.upgrade_id for u in catalog.list_upgrades()] == ["tap_1"]
        assert len(catalog.list_upgrades(include_hidden=True)) == 2


@pytest.mark.unit
class TestCatalogParsing:
    """Entry validation."""

    def test_duplicate_ids_rejected(self):
        with pytest.raises(DomainValidationError, match="Duplicate upgrade id"):
            UpgradeCatalog.from_entries([_entry(), _entry()])

    def test_missing_key_rejected(self):
        entry = _entry()
        del entry["cost"]
        with pytest.raises(DomainValidationError, match="tap_1"):
            parse_definition(entry)

    def test_decaying_exponential_cost_rejected(self):
        entry = _entry(cost={"base": 5, "multiplier": "0.5", "kind": "exponential"})
        with pytest.raises(DomainValidationError, match="at least 1"):
            parse_definition(entry)

    def test_unknown_category_rejected(self):
        with pytest.raises(DomainValidationError):
            parse_definition(_entry(category="telepathy"))

    def test_dangling_prerequisite_is_logged(self, caplog):
        entry = _entry(
            prerequisites=[{"type": "other_upgrade", "upgrade_id": "ghost", "level": 1}]
        )
        UpgradeCatalog.from_entries([entry])
        assert any("unknown upgrade" in r.getMessage() for r in caplog.records)

    def test_missing_catalog_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            UpgradeCatalog.from_yaml(tmp_path / "absent.yaml")
        assert exc_info.value.config_key == "upgrades.catalog"

    def test_catalog_file_must_be_a_mapping(self, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            UpgradeCatalog.from_yaml(path)


@pytest.mark.unit
class TestSettings:
    """Typed views over upgrades.* configuration."""

    def test_purchase_settings_from_yaml(self, config_manager):
        settings = PurchaseSettings.from_config(config_manager)
        assert settings.max_levels_per_purchase == 100
        assert settings.duplicate_window_seconds == 30
        assert settings.overcommit_factor == Decimal(2)

    def test_fraud_settings_from_yaml(self, config_manager):
        settings = FraudSettings.from_config(config_manager)
        assert settings.block_threshold == 0.8
        assert settings.suspicious_threshold == 0.5
        assert settings.average_cost_sample_size == 100

    def test_missing_keys_fall_back_to_defaults(self, mocker):
        empty = mocker.MagicMock()
        empty.get = lambda key, default=None: default
        assert PurchaseSettings.from_config(empty) == PurchaseSettings()

    def test_category_weights(self):
        assert category_weight(UpgradeCategory.CLICK_POWER, 10) == Decimal("1.5")
        assert category_weight(UpgradeCategory.CLICK_POWER, 50) == Decimal("1.0")
        assert category_weight(UpgradeCategory.MULTIPLIERS, 101) == Decimal("2.0")
        assert category_weight(UpgradeCategory.PRESTIGE, 10) == Decimal("0.5")
        assert category_weight(UpgradeCategory.SPECIAL, 0) == Decimal("1.4")
