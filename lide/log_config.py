"""Structlog setup shared by lide modules and the uvicorn server."""

from __future__ import annotations

import logging
import logging.config
import sys

import structlog

from lide.settings import settings

# Requests are already logged by the HTTP middleware with a request id.
QUIET_LOGGERS = ("uvicorn.access",)


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(level: str | None = None, log_format: str | None = None) -> int:
    """Route structlog and stdlib logging through one formatter.

    Args:
        level: Level name; defaults to ``LIDE_LOG_LEVEL``.
        log_format: "console" or "json"; defaults to ``LIDE_LOG_FORMAT``.

    Returns:
        The numeric level that was applied.
    """
    log_level = getattr(logging, (level or settings.log_level()).upper(), logging.INFO)
    renderer = _renderer((log_format or settings.log_format()).lower())

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    loggers = {
        "uvicorn": {"level": log_level},
        "uvicorn.error": {"level": log_level},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": max(log_level, logging.WARNING)}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"structlog": {"()": lambda: formatter}},
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "structlog",
                    "stream": sys.stdout,
                }
            },
            "root": {"handlers": ["stdout"], "level": log_level},
            "loggers": loggers,
        }
    )
    return log_level
