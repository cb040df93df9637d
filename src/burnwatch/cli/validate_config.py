"""
CLI command for validating a monitoring config file.

Commands:
    burnwatch validate-config                               - Validate ./burnwatch.yaml or ~/.burnwatch/config.yaml
    burnwatch validate-config <config.yaml>                 - Validate and summarise
    burnwatch validate-config <config.yaml> --format json   - Output as JSON
"""

from __future__ import annotations

import argparse

from burnwatch.cli.ux import console, error, header, print_table, success
from burnwatch.config.loader import get_config_path, load_config
from burnwatch.core.errors import ConfigurationError, ExitCode, main_with_error_handling


@main_with_error_handling()
def validate_config_command(config_file: str | None = None, output_format: str = "table") -> int:
    """
    Validate targets, budgets and alert rules in a YAML config file.

    Exit codes:
        0 - Config is valid
        10 - Config is missing, unparseable or has invalid entries

    Args:
        config_file: Path to the YAML config; searched for when omitted
        output_format: Output format ("table" or "json")

    Returns:
        Exit code
    """
    try:
        path = config_file or get_config_path()
        if path is None:
            raise ConfigurationError(
                "No config file found", {"searched": ["burnwatch.yaml", "~/.burnwatch/config.yaml"]}
            )
        config = load_config(path)
    except ConfigurationError as exc:
        errors = exc.details.get("errors", [])
        if output_format == "json":
            console.print_json(data={"valid": False, "errors": errors, **exc.to_dict()})
        else:
            error(exc.message)
            for line in errors:
                console.print(f"  [muted]- {line}[/muted]")
        return ExitCode.CONFIG_ERROR

    if output_format == "json":
        console.print_json(
            data={
                "valid": True,
                "targets": [t.to_dict() for t in config.targets],
                "budgets": [b.to_dict() for b in config.budgets],
                "rules": [r.to_dict() for r in config.rules],
            }
        )
        return ExitCode.SUCCESS

    header(f"Config: {path}")
    if config.targets:
        print_table(
            "SLO targets",
            ["Service", "Metric", "Kind", "Target", "Window", "Error budget"],
            [
                [t.service, t.metric, t.kind.value if t.kind else "", str(t.target), t.window, str(t.error_budget)]
                for t in config.targets
            ],
            numeric=("Target", "Error budget"),
        )
    if config.budgets:
        print_table(
            "Budgets",
            ["Service", "Daily", "Monthly", "Thresholds"],
            [
                [
                    b.service,
                    f"{b.currency} {b.daily_limit:.2f}",
                    f"{b.currency} {b.monthly_limit:.2f}",
                    ", ".join(f"{t:.0%}" for t in b.alert_thresholds),
                ]
                for b in config.budgets
            ],
            numeric=("Daily", "Monthly"),
        )
    if config.rules:
        print_table(
            "Alert rules",
            ["Id", "Metric", "Condition", "Severity", "Cooldown", "Channels"],
            [
                [
                    r.id,
                    r.metric,
                    f"{r.condition.value} {r.threshold}",
                    r.severity.value,
                    f"{r.cooldown_minutes:g}m",
                    ", ".join(c.type.value for c in r.channels) or "-",
                ]
                for r in config.rules
            ],
        )

    success(
        f"{len(config.targets)} targets, {len(config.budgets)} budgets, "
        f"{len(config.rules)} rules are valid"
    )
    return ExitCode.SUCCESS


def register_validate_config_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register validate-config subcommand parser."""
    parser = subparsers.add_parser(
        "validate-config",
        help="Validate SLO targets, budgets and alert rules in a config file",
    )
    parser.add_argument(
        "config_file",
        nargs="?",
        help="Path to config YAML file (default: burnwatch.yaml, then ~/.burnwatch/config.yaml)",
    )
    parser.add_argument(
        "--format",
        "-f",
        dest="output_format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )


def handle_validate_config_command(args: argparse.Namespace) -> int:
    """Handle validate-config command from CLI args."""
    return validate_config_command(
        config_file=getattr(args, "config_file", None),
        output_format=getattr(args, "output_format", "table"),
    )
