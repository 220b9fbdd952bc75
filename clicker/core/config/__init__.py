"""
Configuration subsystem.

- **config.py**: static configuration from environment variables (.env)
- **manager.py**: tunable values composed from YAML files under `config/`

`ConfigManager` is imported from `clicker.core.config.manager` directly; it
depends on the logging subsystem, which itself reads `Config`.
"""

from clicker.core.config.config import Config, Environment

__all__ = ["Config", "Environment"]
