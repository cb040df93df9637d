"""Core modules for burnwatch - errors and time helpers."""

from burnwatch.core.errors import (
    BurnwatchError,
    ConfigurationError,
    DeliveryError,
    ExitCode,
    ValidationError,
    exit_code_for,
    format_error_message,
    main_with_error_handling,
)
from burnwatch.core.timeutils import (
    Clock,
    parse_duration,
    start_of_day,
    start_of_month,
    utcnow,
)

__all__ = [
    # Errors
    "ExitCode",
    "BurnwatchError",
    "ConfigurationError",
    "DeliveryError",
    "ValidationError",
    "main_with_error_handling",
    "exit_code_for",
    "format_error_message",
    # Time
    "Clock",
    "parse_duration",
    "start_of_day",
    "start_of_month",
    "utcnow",
]
