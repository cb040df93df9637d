"""Tests for the burnwatch CLI."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from burnwatch.cli.main import build_parser, run
from burnwatch.cli.replay import ReplayClock, read_records
from burnwatch.config.settings import get_settings
from burnwatch.core.errors import ExitCode, ValidationError

CONFIG = """\
targets:
  - service: worker
    metric: error_rate
    target: 1
    window: 1h
    errorBudget: 5
budgets:
  - service: ahrefs
    dailyLimit: 50
    monthlyLimit: 1000
"""

T0 = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "burnwatch.yaml"
    path.write_text(CONFIG)
    return path


def _write_records(path, records):
    path.write_text("\n".join(json.dumps(r) for r in records) + "\n")
    return path


def _metric(value, seconds):
    return {
        "kind": "metric",
        "service": "worker",
        "metric": "error_rate",
        "value": value,
        "timestamp": (T0 + timedelta(seconds=seconds)).isoformat(),
    }


class TestMain:
    """Tests for the top-level parser."""

    def test_no_command_prints_help(self, capsys):
        assert run([]) == 0
        assert "validate-config" in capsys.readouterr().out

    def test_subcommands_registered(self):
        args = build_parser().parse_args(["replay", "records.jsonl", "--notify", "-f", "json"])

        assert args.command == "replay"
        assert args.notify is True
        assert args.output_format == "json"


class TestValidateConfig:
    """Tests for burnwatch validate-config."""

    def test_valid_config(self, config_file, capsys):
        assert run(["validate-config", str(config_file)]) == ExitCode.SUCCESS
        assert "1 targets, 1 budgets, 0 rules are valid" in capsys.readouterr().out

    def test_invalid_config_lists_errors(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("budgets:\n  - service: ahrefs\n    dailyLimit: -1\n    monthlyLimit: 10\n")

        assert run(["validate-config", str(path), "--format", "json"]) == ExitCode.CONFIG_ERROR

        output = json.loads(capsys.readouterr().out)
        assert output["valid"] is False
        assert output["errors"][0].startswith("budgets[0]:")

    def test_missing_config(self, tmp_path):
        assert run(["validate-config", str(tmp_path / "missing.yaml")]) == ExitCode.CONFIG_ERROR

    def test_config_found_in_working_directory(self, config_file, capsys):
        assert run(["validate-config"]) == ExitCode.SUCCESS
        assert "1 targets, 1 budgets, 0 rules are valid" in capsys.readouterr().out

    def test_no_config_anywhere(self):
        assert run(["validate-config"]) == ExitCode.CONFIG_ERROR


class TestReplay:
    """Tests for burnwatch replay."""

    def test_healthy_replay_exits_zero(self, tmp_path, config_file):
        records = _write_records(tmp_path / "records.jsonl", [_metric(0, i) for i in range(10)])

        assert run(["replay", str(records), "--config", str(config_file)]) == ExitCode.SUCCESS

    def test_replay_with_active_alert_warns(self, tmp_path, config_file, capsys):
        records = _write_records(
            tmp_path / "records.jsonl",
            [_metric(0, i) for i in range(24)]
            + [_metric(1, 24), {"kind": "tick", "timestamp": (T0 + timedelta(minutes=1)).isoformat()}],
        )

        code = run(["replay", str(records), "--config", str(config_file), "--format", "json"])

        assert code == ExitCode.WARNING
        report = json.loads(capsys.readouterr().out)
        assert "slo_warning" in {a["type"] for a in report["active_alerts"]}
        assert report["delivery"]["sent"] == 0

    def test_replay_costs(self, tmp_path, config_file, capsys):
        records = _write_records(
            tmp_path / "records.jsonl",
            [
                {
                    "kind": "cost",
                    "service": "ahrefs",
                    "operation": "keywords",
                    "cost": 5,
                    "timestamp": (T0 + timedelta(minutes=i)).isoformat(),
                }
                for i in range(5)
            ],
        )

        code = run(["replay", str(records), "--config", str(config_file), "--format", "json"])

        report = json.loads(capsys.readouterr().out)
        assert code == ExitCode.WARNING
        assert report["costs"][0]["daily"]["cost"] == 25
        assert [a["type"] for a in report["active_alerts"]] == ["budget_alert"]

    def test_replay_uses_config_from_working_directory(self, tmp_path, config_file, capsys):
        records = _write_records(
            tmp_path / "records.jsonl",
            [{"kind": "cost", "service": "ahrefs", "operation": "keywords", "cost": 5, "timestamp": T0.isoformat()}],
        )

        assert run(["replay", str(records), "--format", "json"]) == ExitCode.SUCCESS

        report = json.loads(capsys.readouterr().out)
        assert [c["service"] for c in report["costs"]] == ["ahrefs"]
        assert [s["service"] for s in report["slos"]] == ["worker"]

    def test_invalid_record_is_validation_error(self, tmp_path, config_file):
        records = tmp_path / "records.jsonl"
        records.write_text('{"kind": "metric", "service": "worker"}\n')

        assert run(["replay", str(records), "--config", str(config_file)]) == ExitCode.VALIDATION_ERROR


class TestReadRecords:
    """Tests for replay file parsing."""

    def test_comments_and_epoch_timestamps(self, tmp_path):
        path = tmp_path / "records.jsonl"
        path.write_text(
            "# captured from staging\n"
            '{"kind": "health", "service": "api", "healthy": true, "timestamp": 1773144000}\n'
            "\n"
            '{"kind": "tick", "timestamp": "2026-03-10T12:05:00"}\n'
        )

        records = read_records(path)

        assert [r["kind"] for r in records] == ["health", "tick"]
        assert records[0]["timestamp"] == datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
        assert records[1]["timestamp"].tzinfo is timezone.utc

    @pytest.mark.parametrize(
        "line",
        ['{"kind": "reboot"}', "not json", '{"kind": "tick", "timestamp": "yesterday"}'],
    )
    def test_invalid_lines(self, tmp_path, line):
        path = tmp_path / "records.jsonl"
        path.write_text(line + "\n")

        with pytest.raises(ValidationError):
            read_records(path)

    def test_replay_clock_only_moves_forward(self):
        clock = ReplayClock(T0)

        clock.advance_to(T0 + timedelta(minutes=5))
        clock.advance_to(T0)

        assert clock() == T0 + timedelta(minutes=5)
