"""
burnwatch configuration.

Provides:
- Pydantic-based settings (environment variables, .env files)
- YAML files describing SLO targets, budgets and alert rules
"""

from burnwatch.config.loader import (
    MonitoringConfig,
    get_config_path,
    load_config,
    parse_config,
)
from burnwatch.config.settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Config files
    "MonitoringConfig",
    "get_config_path",
    "load_config",
    "parse_config",
]
