"""burnwatch command line entry point."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from burnwatch.cli.replay import handle_replay_command, register_replay_parser
from burnwatch.cli.validate_config import (
    handle_validate_config_command,
    register_validate_config_parser,
)
from burnwatch.logging import configure_logging

HANDLERS = {
    "validate-config": handle_validate_config_command,
    "replay": handle_replay_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="burnwatch", description="SLO, cost and alerting engine")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: WARNING)",
    )
    parser.add_argument("--log-json", action="store_true", help="Render logs as JSON")

    subparsers = parser.add_subparsers(dest="command")
    register_validate_config_parser(subparsers)
    register_replay_parser(subparsers)
    return parser


def run(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(getattr(logging, args.log_level), json=args.log_json, command=args.command)
    return int(HANDLERS[args.command](args))


def main(argv: Sequence[str] | None = None) -> None:
    sys.exit(run(argv))


if __name__ == "__main__":
    main()
