"""
Error types and CLI exit codes.

Inside the engine only registration raises: a malformed target, budget, rule
or setting is a ConfigurationError. Channel failures are DeliveryErrors that
the dispatcher counts and logs, so they never reach whoever recorded the
metric or cost. The CLI maps every error to an exit code:

- 0: Success
- 1: Warning (command finished, but alerts are active)
- 10: Configuration error
- 11: Delivery error
- 12: Validation error (bad input file)
- 127: Unknown/internal error
- 130: Interrupted
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    SUCCESS = 0
    WARNING = 1
    CONFIG_ERROR = 10
    DELIVERY_ERROR = 11
    VALIDATION_ERROR = 12
    UNKNOWN_ERROR = 127
    INTERRUPTED = 130


class BurnwatchError(Exception):
    """Base error; ``details`` are structured fields for logs and JSON output."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, **self.details}


class ConfigurationError(BurnwatchError):
    """Malformed settings, SLO target, budget or alert rule."""

    exit_code = ExitCode.CONFIG_ERROR


class DeliveryError(BurnwatchError):
    """A notification channel could not be reached."""

    exit_code = ExitCode.DELIVERY_ERROR


class ValidationError(BurnwatchError):
    """An input file (such as a replay file) failed validation."""

    exit_code = ExitCode.VALIDATION_ERROR


F = TypeVar("F", bound=Callable[..., int])


def exit_code_for(exc: BaseException) -> ExitCode:
    if isinstance(exc, BurnwatchError):
        return exc.exit_code
    if isinstance(exc, KeyboardInterrupt):
        return ExitCode.INTERRUPTED
    return ExitCode.UNKNOWN_ERROR


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Turn any exception escaping a CLI command into its exit code.

    Args:
        show_traceback: Print the traceback of every failure to stderr;
            errors whose class sets ``show_traceback`` always print one
        log_errors: Log the failure as a structlog event
    """

    def decorator(func: F) -> F:
        command = func.__name__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except (Exception, KeyboardInterrupt) as exc:
                code = exit_code_for(exc)
                if log_errors:
                    _log_failure(command, exc, code)
                if show_traceback or getattr(exc, "show_traceback", False):
                    traceback.print_exc(file=sys.stderr)
                return code

        return wrapper  # type: ignore[return-value]

    return decorator


def _log_failure(command: str, exc: BaseException, code: ExitCode) -> None:
    if isinstance(exc, KeyboardInterrupt):
        logger.info("command_interrupted", command=command)
    elif isinstance(exc, BurnwatchError):
        logger.error("command_failed", command=command, exit_code=int(code), error=format_error_message(exc))
    else:
        logger.error(
            "command_crashed",
            command=command,
            exit_code=int(code),
            error_type=type(exc).__name__,
            message=str(exc),
        )


def format_error_message(error: BurnwatchError) -> str:
    """``message (key=value, ...)`` for display to users."""
    if not error.details:
        return error.message
    fields = ", ".join(f"{key}={value}" for key, value in error.details.items())
    return f"{error.message} ({fields})"
