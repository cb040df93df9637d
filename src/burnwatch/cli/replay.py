"""
CLI command for replaying recorded metrics and costs through the engine.

Each line of the input is a JSON object with a ``kind``:

    {"kind": "metric", "service": "api", "metric": "availability", "value": 1, "timestamp": "..."}
    {"kind": "cost", "service": "ahrefs", "operation": "keywords", "cost": 2.5, "timestamp": "..."}
    {"kind": "health", "service": "api", "healthy": false}
    {"kind": "tick", "timestamp": "..."}

The engine clock follows the newest timestamp seen, so burn rates and budget
windows behave as they did when the records were captured.

Commands:
    burnwatch replay <records.jsonl>   (config from ./burnwatch.yaml or ~/.burnwatch/config.yaml)
    burnwatch replay <records.jsonl> --config <config.yaml>
    burnwatch replay <records.jsonl> --config <config.yaml> --notify
"""

from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from burnwatch.cli.ux import console, header, info, print_table, styled_status, warning
from burnwatch.config.loader import get_config_path
from burnwatch.config.settings import get_settings
from burnwatch.core.errors import ExitCode, ValidationError, main_with_error_handling
from burnwatch.core.timeutils import ensure_utc, utcnow
from burnwatch.engine import MonitoringEngine, create_engine
from burnwatch.logging import bind_context

RECORD_KINDS = ("metric", "cost", "health", "tick")


class ReplayClock:
    """Clock that only moves forward, to the newest timestamp replayed so far."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance_to(self, timestamp: datetime) -> None:
        if timestamp > self.now:
            self.now = timestamp


def read_records(path: str | Path) -> list[dict[str, Any]]:
    """
    Parse a JSON-lines replay file.

    Raises:
        ValidationError: If the file is missing or a line is not a valid record
    """
    path = Path(path)
    if not path.exists():
        raise ValidationError(f"Replay file not found: {path}")

    records = []
    with open(path) as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValidationError(f"Invalid JSON on line {lineno}", {"error": str(exc)}) from exc
            if not isinstance(record, dict) or record.get("kind") not in RECORD_KINDS:
                raise ValidationError(f"Unknown record kind on line {lineno}", {"line": lineno})
            if "timestamp" in record:
                record["timestamp"] = _parse_timestamp(record["timestamp"], lineno)
            record["_line"] = lineno
            records.append(record)
    return records


def apply_record(engine: MonitoringEngine, clock: ReplayClock, record: dict[str, Any]) -> None:
    """Feed one replay record into the engine."""
    timestamp = record.get("timestamp")
    if timestamp is not None:
        clock.advance_to(timestamp)

    kind = record["kind"]
    try:
        if kind == "metric":
            engine.record_metric(
                record["service"],
                record["metric"],
                float(record["value"]),
                timestamp,
                record.get("tags"),
            )
        elif kind == "cost":
            engine.record_cost(
                record["service"],
                record["operation"],
                float(record["cost"]),
                record.get("currency", "USD"),
                timestamp,
                record.get("metadata"),
            )
        elif kind == "health":
            engine.record_health(record["service"], bool(record["healthy"]), record.get("details"))
        else:
            engine.tick()
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(
            f"Invalid {kind} record on line {record['_line']}", {"error": str(exc)}
        ) from exc


async def replay(
    records: list[dict[str, Any]],
    engine: MonitoringEngine,
    clock: ReplayClock,
) -> int:
    """Replay records, then deliver whatever alerts were queued."""
    log = bind_context(replay_start=clock().isoformat())
    for record in records:
        apply_record(engine, clock, record)
    delivered = await engine.alerts.drain()
    log.info(
        "replay_finished",
        records=len(records),
        deliveries=delivered,
        replay_end=clock().isoformat(),
    )
    return delivered


@main_with_error_handling()
def replay_command(
    records_file: str,
    config_file: str | None = None,
    notify: bool = False,
    output_format: str = "table",
) -> int:
    """
    Replay a JSON-lines file of metric, cost and health records.

    Exit codes:
        0 - Replay finished with no active alerts
        1 - Replay finished with active alerts
        10 - Config error
        12 - Invalid replay file

    Args:
        records_file: Path to the JSON-lines records
        config_file: Path to the YAML config with targets, budgets and rules;
            burnwatch.yaml or ~/.burnwatch/config.yaml is used when omitted
        notify: Deliver notifications to configured channels
        output_format: Output format ("table" or "json")

    Returns:
        Exit code
    """
    records = read_records(records_file)
    timestamps = [r["timestamp"] for r in records if r.get("timestamp")]
    clock = ReplayClock(min(timestamps) if timestamps else None)
    settings = get_settings().model_copy(update={"alerting_enabled": notify})
    engine = create_engine(
        settings, config_path=config_file or get_config_path(), clock=clock, fallback_to_disabled=False
    )

    asyncio.run(replay(records, engine, clock))
    report = engine.status_report()

    if output_format == "json":
        console.print_json(data=report)
    else:
        _print_report(report, records_file, notify)

    return ExitCode.WARNING if report["active_alerts"] else ExitCode.SUCCESS


def _print_report(report: dict[str, Any], records_file: str, notify: bool) -> None:
    header(f"Replay: {records_file}")

    if report["slos"]:
        print_table(
            "SLO status",
            ["Service", "Metric", "Value", "Budget used", "Burn/h", "Exhaustion", "Status", "Trend"],
            [
                [
                    s["service"],
                    s["metric"],
                    f"{s['current_value']:.3f}",
                    f"{s['error_budget_used']:.4f} / {s['error_budget']}",
                    f"{s['burn_rate']:.4f}",
                    f"{s['time_to_exhaustion_hours']:.1f}h" if s["time_to_exhaustion_hours"] is not None else "-",
                    styled_status(s["status"]),
                    s["trend"],
                ]
                for s in report["slos"]
            ],
            numeric=("Value", "Budget used", "Burn/h", "Exhaustion"),
        )

    if report["costs"]:
        print_table(
            "Budgets",
            ["Budget", "Today", "Month"],
            [
                [
                    c["service"],
                    f"{c['currency']} {c['daily']['cost']:.2f} ({c['daily']['percentage']:.1f}%)",
                    f"{c['currency']} {c['monthly']['cost']:.2f} ({c['monthly']['percentage']:.1f}%)",
                ]
                for c in report["costs"]
            ],
            numeric=("Today", "Month"),
        )

    if report["active_alerts"]:
        print_table(
            "Active alerts",
            ["Id", "Type", "Severity", "Message"],
            [
                [a["id"], a["type"], styled_status(a["severity"]), a["message"]]
                for a in report["active_alerts"]
            ],
        )
        warning(f"{len(report['active_alerts'])} active alerts")
    else:
        info("No active alerts")

    stats = report["alert_stats"]
    delivery = report["delivery"]
    console.print(
        f"[muted]alerts: {stats['total']} total, {stats['suppressed_count']} suppressed; "
        f"deliveries: {delivery['sent']} sent, {delivery['failed']} failed"
        f"{'' if notify else ' (notifications disabled)'}[/muted]"
    )


def register_replay_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register replay subcommand parser."""
    parser = subparsers.add_parser(
        "replay",
        help="Replay recorded metrics and costs through the engine",
    )
    parser.add_argument("records_file", help="Path to JSON-lines records file")
    parser.add_argument("--config", "-c", dest="config_file", help="Path to config YAML file")
    parser.add_argument(
        "--notify",
        action="store_true",
        help="Deliver notifications to configured channels (off by default)",
    )
    parser.add_argument(
        "--format",
        "-f",
        dest="output_format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )


def handle_replay_command(args: argparse.Namespace) -> int:
    """Handle replay command from CLI args."""
    return replay_command(
        records_file=args.records_file,
        config_file=getattr(args, "config_file", None),
        notify=getattr(args, "notify", False),
        output_format=getattr(args, "output_format", "table"),
    )


def _parse_timestamp(value: Any, lineno: int) -> datetime:
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValidationError(f"Invalid timestamp on line {lineno}", {"timestamp": value}) from exc
    return ensure_utc(parsed)
