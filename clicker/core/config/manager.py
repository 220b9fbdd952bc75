"""
ConfigManager: YAML-backed tunable configuration for the upgrade engine.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable values (validation
  limits, fraud thresholds, duplicate windows, catalog data).
- Compose defaults from every YAML file below the `config/` directory.

Responsibilities
----------------
- Load and deep-merge all YAML files under the configured directory.
- Serve reads from an in-memory mapping with hit/miss metrics.
- Fall back to built-in defaults when files are missing or malformed.

Non-Responsibilities
--------------------
- Environment/static settings (see `clicker.core.config.config.Config`).
- Interpreting values (services build typed settings from raw values).

Key Design Decisions
--------------------
- Class-level singleton; services receive the class (or a test double exposing
  the same `get(key, default)` signature) through their constructor.
- YAML files are composed by deep merge so each concern owns its own file,
  e.g. `config/upgrades/settings.yaml` and `config/upgrades/catalog.yaml`.
- Read errors never raise: a missing key returns the caller's default.

Dependencies
------------
- PyYAML for parsing.
- `clicker.core.logging.logger.get_logger` for structured logging.
"""

from __future__ import annotations

import copy
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

import yaml

from clicker.core.config.config import Config
from clicker.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Built-in defaults (used when YAML is absent)
# ============================================================================

_BUILTIN_DEFAULTS: Dict[str, Any] = {
    "upgrades": {
        "validation": {
            "max_levels_per_purchase": 100,
            "max_bulk_purchase_count": 10,
            "overcommit_factor": 2,
            "duplicate_window_seconds": 30,
            "max_purchases_per_minute": 5,
        },
        "fraud": {
            "enabled": True,
            "time_window_minutes": 5,
            "max_purchases_per_window": 10,
            "outsized_purchase_factor": 10,
            "average_cost_sample_size": 100,
            "min_level_for_high_value_purchases": 10,
            "high_value_purchase_threshold": 50,
            "suspicious_threshold": 0.5,
            "block_threshold": 0.8,
            "timing_history_size": 10,
            "timing_tolerance_seconds": 2,
            "timing_max_interval_seconds": 10,
        },
    },
}


@dataclass
class ConfigMetrics:
    gets: int = 0
    hits: int = 0
    misses: int = 0
    files_loaded: int = 0
    load_errors: int = 0
    total_get_time_ms: float = 0.0


class ConfigManager:
    """
    Read-only tunable configuration with dot-notation access.

    Examples
    --------
    >>> ConfigManager.initialize()
    >>> ConfigManager.get("upgrades.validation.max_levels_per_purchase", 100)
    100
    """

    _values: Dict[str, Any] = {}
    _initialized: bool = False
    _config_dir: Optional[Path] = None
    _metrics: ConfigMetrics = ConfigMetrics()

    # =========================================================================
    # YAML LOADING
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> None:
        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return

        yaml_files = sorted(config_dir.rglob("*.yaml")) + sorted(config_dir.rglob("*.yml"))

        for yaml_file in yaml_files:
            relative = str(yaml_file.relative_to(config_dir))
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                cls._metrics.load_errors += 1
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": relative,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._values, data)
                cls._metrics.files_loaded += 1
                logger.debug("Loaded YAML config", extra={"file": relative})
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={"file": relative, "root_type": type(data).__name__},
                )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """Load built-in defaults, then overlay every YAML file in `config_dir`."""
        cls._config_dir = Path(config_dir) if config_dir else Config.CONFIG_DIR
        cls._metrics = ConfigMetrics()
        cls._values = copy.deepcopy(_BUILTIN_DEFAULTS)
        cls._load_yaml_configs(cls._config_dir)
        cls._initialized = True

        logger.info(
            "ConfigManager initialized",
            extra={
                "config_dir": str(cls._config_dir),
                "yaml_file_count": cls._metrics.files_loaded,
                "top_level_keys": len(cls._values),
            },
        )

    @classmethod
    def reset(cls) -> None:
        """Drop all loaded values; next read re-initializes from disk."""
        cls._values = {}
        cls._initialized = False

    # =========================================================================
    # READ API
    # =========================================================================

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Returns `default` when any segment of the path is missing.
        """
        start_time = time.perf_counter()
        cls._metrics.gets += 1

        if not cls._initialized:
            cls.initialize(cls._config_dir)

        try:
            value: Any = cls._values
            for part in key.split("."):
                if not isinstance(value, dict) or part not in value:
                    cls._metrics.misses += 1
                    return default
                value = value[part]

            cls._metrics.hits += 1
            return default if value is None else value
        finally:
            cls._metrics.total_get_time_ms += (time.perf_counter() - start_time) * 1000

    @classmethod
    def get_all_keys(cls) -> List[str]:
        return list(cls._values.keys())

    @classmethod
    def health_snapshot(cls) -> Dict[str, Any]:
        return {
            "initialized": cls._initialized,
            "config_dir": str(cls._config_dir) if cls._config_dir else None,
            **asdict(cls._metrics),
        }
