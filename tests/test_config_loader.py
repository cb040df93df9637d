"""Tests for config/loader.py and defaults.py."""

import pytest

from burnwatch.config.loader import MonitoringConfig, get_config_path, load_config, parse_config
from burnwatch.core.errors import ConfigurationError
from burnwatch.defaults import default_config

VALID_CONFIG = """\
targets:
  - service: api
    metric: availability
    target: 99.9
    window: 30d
    errorBudget: 0.1
budgets:
  - service: ahrefs
    dailyLimit: 50
    monthlyLimit: 1000
    alertThresholds: [0.5, 0.75, 0.9]
rules:
  - id: queue-backup
    name: Queue Backup
    metric: queue_depth
    condition: gt
    threshold: 1000
    severity: warning
    cooldownMinutes: 15
    channels: [slack]
"""


class TestLoadConfig:
    """Tests for load_config."""

    def test_loads_valid_file(self, tmp_path):
        path = tmp_path / "burnwatch.yaml"
        path.write_text(VALID_CONFIG)

        config = load_config(path)

        assert config.source == path
        assert config.targets[0].key == "api:availability"
        assert config.budgets[0].alert_thresholds == (0.5, 0.75, 0.9)
        assert config.rules[0].cooldown_minutes == 15

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "burnwatch.yaml"
        path.write_text("targets: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_empty_file_is_empty_config(self, tmp_path):
        path = tmp_path / "burnwatch.yaml"
        path.write_text("")

        config = load_config(path)

        assert config.targets == config.budgets == config.rules == []


class TestParseConfig:
    """Tests for parse_config error collection."""

    def test_every_invalid_entry_reported(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(
                {
                    "targets": [
                        {"service": "api", "metric": "availability", "target": 99, "window": "1y", "error_budget": 1}
                    ],
                    "budgets": "not-a-list",
                    "rules": [{"id": "ok", "metric": "cpu"}, {"id": "bad", "metric": "cpu", "condition": "near"}],
                }
            )

        errors = exc_info.value.details["errors"]
        assert len(errors) == 3
        assert errors[0].startswith("targets[0]:")
        assert errors[1] == "budgets: must be a list"
        assert errors[2].startswith("rules[1]:")

    def test_non_mapping_entry(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config({"rules": ["queue-backup"]})

        assert exc_info.value.details["errors"] == ["rules[0]: must be a mapping"]

    def test_unknown_sections_ignored(self):
        config = parse_config({"dashboards": [{"id": "x"}]})

        assert config == MonitoringConfig()


class TestMerge:
    """Tests for MonitoringConfig.merge."""

    def test_later_entries_replace_by_identity(self):
        base = parse_config(
            {
                "budgets": [
                    {"service": "ahrefs", "daily_limit": 50, "monthly_limit": 1000},
                    {"service": "anthropic", "daily_limit": 30, "monthly_limit": 600},
                ]
            }
        )
        override = parse_config({"budgets": [{"service": "ahrefs", "daily_limit": 5, "monthly_limit": 100}]})

        merged = base.merge(override)

        assert {b.service: b.daily_limit for b in merged.budgets} == {"ahrefs": 5, "anthropic": 30}


class TestConfigPath:
    """Tests for config file discovery."""

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("")

        assert get_config_path(path) == path
        assert get_config_path(tmp_path / "missing.yaml") is None

    def test_working_directory_then_home(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        (home / ".burnwatch").mkdir(parents=True)
        (home / ".burnwatch" / "config.yaml").write_text("")
        work = tmp_path / "work"
        work.mkdir()
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.chdir(work)

        assert get_config_path() == home / ".burnwatch" / "config.yaml"

        (work / "burnwatch.yaml").write_text("")
        assert get_config_path() == work / "burnwatch.yaml"


class TestDefaults:
    """Tests for the built-in config."""

    def test_defaults_are_valid(self):
        config = default_config()

        assert {b.service for b in config.budgets} == {"ahrefs", "anthropic", "infrastructure", "total"}
        assert "queue-backup" in {r.id for r in config.rules}
        assert all(t.error_budget > 0 for t in config.targets)
