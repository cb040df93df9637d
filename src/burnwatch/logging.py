"""structlog setup shared by the CLI and by applications embedding the engine."""

import logging
from typing import Any

import structlog


def configure_logging(level: int | str = logging.INFO, *, json: bool = True, **context: Any) -> None:
    """
    Route structlog events through stdlib logging.

    Args:
        level: Minimum stdlib level to emit
        json: Render JSON lines; otherwise the structlog console renderer
        **context: Fields bound to every event emitted afterwards
    """
    renderer: Any = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger().setLevel(level)

    structlog.contextvars.clear_contextvars()
    if context:
        structlog.contextvars.bind_contextvars(**context)


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Logger with ``kwargs`` bound to each of its events."""
    return structlog.get_logger().bind(**kwargs)
