"""
Static configuration management for the Clicker upgrade engine.

Purpose
-------
Provides centralized static configuration loaded from environment variables
with sensible defaults, type validation, and bounds checking. This module
handles configuration that is fixed at process startup: database and remote
game-session endpoints, environment type, and logging settings.

Responsibilities
----------------
- Load configuration from environment variables with .env support
- Provide type-safe access to all static configuration values
- Validate critical settings on startup
- Create required directories (logs)
- Track configuration loading metrics

Non-Responsibilities
--------------------
- Gameplay tuning values (handled by ConfigManager and YAML files)
- Upgrade catalog data (handled by UpgradeCatalog)
- Secrets management (use environment variables)

Architecture Notes
------------------
- Singleton pattern via class methods (no instantiation)
- Auto-loads on module import via Config.validate()
- Metrics track which values came from environment vs defaults

Environment Variables
---------------------
- DATABASE_URL: async SQLAlchemy URL (postgresql+asyncpg or sqlite+aiosqlite)
- DATABASE_POOL_SIZE / DATABASE_MAX_OVERFLOW / DATABASE_POOL_RECYCLE
- DATABASE_STATEMENT_TIMEOUT_MS: per-transaction statement timeout (postgres)
- GAME_CORE_BASE_URL: base URL of the remote game session service
- GAME_CORE_TIMEOUT_SECONDS: total timeout for a single remote call
- ENVIRONMENT: development / testing / staging / production
- LOG_LEVEL, LOG_JSON, LOG_COLORS
"""

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# ============================================================================
# Enums
# ============================================================================


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse environment string safely with fallback to development.

        Example
        -------
        >>> Environment.from_string("PRODUCTION") == Environment.PRODUCTION
        True
        """
        try:
            return cls(value.lower())
        except ValueError:
            logging.warning(
                f"Unknown environment '{value}', defaulting to development"
            )
            return cls.DEVELOPMENT


# ============================================================================
# Configuration Metrics Tracker
# ============================================================================


class _ConfigLoadMetrics:
    """Tracks which values came from the environment and which were rejected."""

    def __init__(self) -> None:
        self.env_vars_loaded: Dict[str, bool] = {}
        self.validation_errors: Dict[str, str] = {}
        self.defaults_used: Dict[str, Any] = {}
        self.last_reload: Optional[str] = None

    def record_env_load(self, key: str, from_env: bool, default: Any) -> None:
        self.env_vars_loaded[key] = from_env
        if not from_env:
            self.defaults_used[key] = default

    def record_validation_error(self, key: str, error: str) -> None:
        self.validation_errors[key] = error

    def get_summary(self) -> Dict[str, Any]:
        return {
            "total_configs": len(self.env_vars_loaded),
            "from_environment": sum(1 for v in self.env_vars_loaded.values() if v),
            "from_defaults": sum(1 for v in self.env_vars_loaded.values() if not v),
            "validation_errors": len(self.validation_errors),
            "defaults_used": list(self.defaults_used.keys()),
            "last_reload": self.last_reload,
        }


# ============================================================================
# Main Configuration Class
# ============================================================================


class Config:
    """
    Centralized static configuration.

    Usage
    -----
    >>> db_url = Config.DATABASE_URL
    >>> if Config.is_testing():
    ...     ...
    """

    _metrics: Optional[_ConfigLoadMetrics] = None
    _validated: bool = False

    # =========================================================================
    # Database
    # =========================================================================

    DATABASE_URL: str = "sqlite+aiosqlite:///./clicker.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False
    DATABASE_POOL_RECYCLE: int = 3600
    DATABASE_STATEMENT_TIMEOUT_MS: int = 5000

    # =========================================================================
    # Remote game session service
    # =========================================================================

    GAME_CORE_BASE_URL: str = "http://localhost:5002"
    GAME_CORE_TIMEOUT_SECONDS: float = 30.0

    # =========================================================================
    # Environment / Logging
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_COLORS: bool = True

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR = PROJECT_ROOT / "logs"
    CONFIG_DIR = PROJECT_ROOT / "config"

    SERVICE_NAME: str = "clicker-upgrades"
    SERVICE_VERSION: str = "1.0.0"

    # =========================================================================
    # Parsing helpers
    # =========================================================================

    @classmethod
    def _init_metrics(cls) -> None:
        if cls._metrics is None:
            cls._metrics = _ConfigLoadMetrics()

    @classmethod
    def _reject(cls, key: str, error: str) -> None:
        logging.warning(error)
        if cls._metrics:
            cls._metrics.record_validation_error(key, error)

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """Parse an integer from the environment, falling back on bad input."""
        cls._init_metrics()
        raw_value = os.getenv(key)

        if raw_value is None:
            cls._metrics.record_env_load(key, False, default)
            return default

        try:
            value = int(raw_value)
        except ValueError:
            cls._reject(key, f"{key}='{raw_value}' is not a valid integer, using default {default}")
            return default

        if min_val is not None and value < min_val:
            cls._reject(key, f"{key}={value} is below minimum {min_val}, using default {default}")
            return default
        if max_val is not None and value > max_val:
            cls._reject(key, f"{key}={value} exceeds maximum {max_val}, using default {default}")
            return default

        cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_float(cls, key: str, default: float, min_val: float = 0.0) -> float:
        cls._init_metrics()
        raw_value = os.getenv(key)

        if raw_value is None:
            cls._metrics.record_env_load(key, False, default)
            return default

        try:
            value = float(raw_value)
        except ValueError:
            cls._reject(key, f"{key}='{raw_value}' is not a valid number, using default {default}")
            return default

        if value <= min_val:
            cls._reject(key, f"{key}={value} must be greater than {min_val}, using default {default}")
            return default

        cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_bool(cls, key: str, default: Optional[bool]) -> Optional[bool]:
        """Recognizes true/false, yes/no, 1/0, on/off (case-insensitive)."""
        cls._init_metrics()
        raw_value = os.getenv(key)

        if raw_value is None:
            cls._metrics.record_env_load(key, False, default)
            return default

        normalized = raw_value.lower().strip()
        if normalized in {"true", "yes", "1", "on"}:
            value = True
        elif normalized in {"false", "no", "0", "off"}:
            value = False
        else:
            cls._reject(key, f"{key}='{raw_value}' is not a valid boolean, using default {default}")
            return default

        cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_str(cls, key: str, default: str) -> str:
        cls._init_metrics()
        cls._metrics.record_env_load(key, key in os.environ, default)
        return os.getenv(key, default)

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """Load all configuration from environment variables."""
        cls._init_metrics()

        cls.DATABASE_URL = cls._safe_str("DATABASE_URL", cls.DATABASE_URL)
        cls.DATABASE_POOL_SIZE = cls._safe_int(
            "DATABASE_POOL_SIZE", 20, min_val=1, max_val=200
        )
        cls.DATABASE_MAX_OVERFLOW = cls._safe_int(
            "DATABASE_MAX_OVERFLOW", 10, min_val=0, max_val=200
        )
        cls.DATABASE_ECHO = bool(cls._safe_bool("DATABASE_ECHO", False))
        cls.DATABASE_POOL_RECYCLE = cls._safe_int(
            "DATABASE_POOL_RECYCLE", 3600, min_val=60
        )
        cls.DATABASE_STATEMENT_TIMEOUT_MS = cls._safe_int(
            "DATABASE_STATEMENT_TIMEOUT_MS", 5000, min_val=100, max_val=600_000
        )

        cls.GAME_CORE_BASE_URL = cls._safe_str(
            "GAME_CORE_BASE_URL", "http://localhost:5002"
        ).rstrip("/")
        cls.GAME_CORE_TIMEOUT_SECONDS = cls._safe_float(
            "GAME_CORE_TIMEOUT_SECONDS", 30.0
        )

        cls.ENVIRONMENT = Environment.from_string(
            cls._safe_str("ENVIRONMENT", "development")
        ).value
        cls.DEBUG = bool(cls._safe_bool("DEBUG", False))
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO")
        cls.LOG_JSON = cls._safe_bool("LOG_JSON", None)
        cls.LOG_COLORS = bool(cls._safe_bool("LOG_COLORS", True))

        cls._metrics.last_reload = datetime.now(timezone.utc).isoformat()

    @classmethod
    def validate(cls) -> None:
        """
        Load and validate configuration once.

        Raises
        ------
        ValueError
            If a critical value is missing while running in production.
        """
        if cls._validated:
            return

        logger = logging.getLogger(__name__)
        cls.load()

        if not cls.DATABASE_URL:
            if cls.is_production():
                raise ValueError("DATABASE_URL environment variable is required")
            logger.warning("DATABASE_URL not set; database features unavailable")

        if cls.is_production() and cls.DATABASE_URL.startswith("sqlite"):
            logger.warning("Production environment using sqlite database")

        if cls.LOG_LEVEL.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            logger.warning(f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
            cls.LOG_LEVEL = "INFO"

        cls.LOGS_DIR.mkdir(exist_ok=True)
        cls._validated = True

        if cls._metrics and cls._metrics.validation_errors:
            logger.warning(f"Configuration warnings: {cls._metrics.validation_errors}")

        logger.debug(
            "Configuration loaded",
            extra={**cls.get_config_summary(), "sources": cls._metrics.get_summary() if cls._metrics else {}},
        )

    # =========================================================================
    # Environment Checks
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT.lower() == Environment.PRODUCTION.value

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT.lower() == Environment.TESTING.value

    # =========================================================================
    # Summary
    # =========================================================================

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Non-sensitive configuration summary for diagnostics."""
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "database_backend": cls.DATABASE_URL.split(":", 1)[0],
            "database_pool_size": cls.DATABASE_POOL_SIZE,
            "game_core_base_url": cls.GAME_CORE_BASE_URL,
            "game_core_timeout_seconds": cls.GAME_CORE_TIMEOUT_SECONDS,
            "service_version": cls.SERVICE_VERSION,
        }


# Auto-validate on import
Config.validate()
