"""
Structured logging setup.

Every module logs through ``structlog.get_logger(__name__)`` using event
names with key/value context. ``configure_logging`` routes those events
through the standard library so handlers and levels behave as usual.
"""

import logging
import sys
from typing import Union

import structlog

from ..config import LogFormat


def configure_logging(
    level: Union[str, int] = "info",
    fmt: LogFormat = LogFormat.CONSOLE,
) -> None:
    """
    Configure structlog and the root stdlib logger.

    Args:
        level: Log level name or number
        fmt: JSON for production, console for development
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == LogFormat.JSON
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


__all__ = ["configure_logging"]
