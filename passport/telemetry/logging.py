"""
Passport — Structured Logging

structlog over the standard library, so records from web3, uvicorn and
the Passport systems all render through one formatter. Every entry
carries the logger name, the level, an ISO timestamp and the instance
id; engine loggers add their `component`.

Console output for development, one JSON object per line otherwise.
Exceptions attached with `exc_info` (e.g. a failed compensation during
rollback) are rendered into the entry rather than dropped.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from passport.config import LoggingConfig

# Chatty third-party loggers held at WARNING regardless of the app level.
_QUIET_LOGGERS = (
    "web3",          # provider request/response dumps
    "aiohttp",       # AsyncHTTPProvider transport
    "urllib3",
    "asyncio",
    "uvicorn.access",
)


def setup_logging(config: LoggingConfig, instance_id: str = "") -> None:
    """Configure structlog and the root logger. Safe to call more than once."""
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.contextvars.clear_contextvars()
    if instance_id:
        structlog.contextvars.bind_contextvars(instance_id=instance_id)

    renderer: Any
    if config.format == "json":
        renderer = structlog.processors.JSONRenderer()
        exception_processors: list[Any] = [structlog.processors.format_exc_info]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        exception_processors = []

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *exception_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
