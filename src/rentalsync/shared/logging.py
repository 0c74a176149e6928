"""Structured logging configuration.

Every event carries ``service`` and ``search_backend`` so logs from the API
process and from operator commands can be told apart. The CLI logs to stderr
to keep its stdout readable.
"""

import logging
import sys
from typing import Any, TextIO, cast

import structlog

from rentalsync.config import get_settings

QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine")
HANDLER_NAME = "rentalsync"


def setup_logging(stream: TextIO | None = None) -> None:
    """Configure structlog over stdlib logging.

    Args:
        stream: Output stream; stdout when omitted
    """
    settings = get_settings()
    level = logging.DEBUG if settings.app_debug else logging.INFO
    output = stream or sys.stdout

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Any
    if settings.is_development:
        renderer = structlog.dev.ConsoleRenderer(colors=output.isatty())
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    # Replace our handler on repeated setup (tests, CLI after app import)
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)
    handler = logging.StreamHandler(output)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level)

    # One line per HTTP call or statement is noise at INFO
    for logger_name in QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        service="rentalsync",
        search_backend=settings.search_backend,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
