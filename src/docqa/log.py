"""structlog setup shared by the library and the CLI.

One processor chain feeds either a console renderer (default) or a JSON
renderer (``json_output=True`` or ``APP_ENV=production``). Stdlib logging is
routed through the same chain so litellm/httpx records look the same.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON rendering regardless of ``APP_ENV``.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)
