"""
Monitoring configuration file loading.

A config file is YAML with three optional lists::

    targets:   SLO targets
    budgets:   cost budgets
    rules:     alert rules

Search order:
1. Explicit path (--config flag)
2. burnwatch.yaml (current directory)
3. ~/.burnwatch/config.yaml (user home)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from burnwatch.alerts.models import AlertRule
from burnwatch.core.errors import ConfigurationError
from burnwatch.costs.models import BudgetConfig
from burnwatch.slos.models import SLOTarget

logger = structlog.get_logger()

SECTIONS = ("targets", "budgets", "rules")


@dataclass
class MonitoringConfig:
    """Validated targets, budgets and rules from one config source."""

    targets: list[SLOTarget] = field(default_factory=list)
    budgets: list[BudgetConfig] = field(default_factory=list)
    rules: list[AlertRule] = field(default_factory=list)
    source: Path | None = None

    def merge(self, other: MonitoringConfig) -> MonitoringConfig:
        """Entries in ``other`` replace entries with the same identity."""
        targets = {t.key: t for t in self.targets} | {t.key: t for t in other.targets}
        budgets = {b.service: b for b in self.budgets} | {b.service: b for b in other.budgets}
        rules = {r.id: r for r in self.rules} | {r.id: r for r in other.rules}
        return MonitoringConfig(
            targets=list(targets.values()),
            budgets=list(budgets.values()),
            rules=list(rules.values()),
            source=other.source or self.source,
        )


def get_config_path(explicit_path: str | Path | None = None) -> Path | None:
    """
    Find the configuration file to use.

    Returns:
        Path to config file or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        return path if path.exists() else None

    cwd_config = Path.cwd() / "burnwatch.yaml"
    if cwd_config.exists():
        return cwd_config

    home_config = Path.home() / ".burnwatch" / "config.yaml"
    if home_config.exists():
        return home_config

    return None


def load_config(path: str | Path) -> MonitoringConfig:
    """
    Load and validate a YAML config file.

    Raises:
        ConfigurationError: If the file is missing, is not valid YAML, or
            contains invalid entries (every invalid entry is listed in
            ``details["errors"]``)
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    config = parse_config(data)
    config.source = path
    logger.info(
        "config_loaded",
        path=str(path),
        targets=len(config.targets),
        budgets=len(config.budgets),
        rules=len(config.rules),
    )
    return config


def parse_config(data: dict[str, Any]) -> MonitoringConfig:
    """Build a MonitoringConfig from a parsed mapping."""
    if not isinstance(data, dict):
        raise ConfigurationError("Config must be a mapping")

    unknown = sorted(set(data) - set(SECTIONS))
    if unknown:
        logger.warning("config_unknown_sections", sections=unknown)

    errors: list[str] = []
    targets = _parse_section(data, "targets", SLOTarget.from_dict, errors)
    budgets = _parse_section(data, "budgets", BudgetConfig.from_dict, errors)
    rules = _parse_section(data, "rules", AlertRule.from_dict, errors)

    if errors:
        raise ConfigurationError(f"{len(errors)} invalid config entries", {"errors": errors})

    return MonitoringConfig(targets=targets, budgets=budgets, rules=rules)


def _parse_section(data: dict[str, Any], section: str, build: Any, errors: list[str]) -> list[Any]:
    entries = data.get(section) or []
    if not isinstance(entries, list):
        errors.append(f"{section}: must be a list")
        return []

    parsed = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            errors.append(f"{section}[{index}]: must be a mapping")
            continue
        try:
            parsed.append(build(entry))
        except ConfigurationError as exc:
            errors.append(f"{section}[{index}]: {exc.message}")
    return parsed
