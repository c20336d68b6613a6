"""
Centralized structlog configuration for next-ball.

Logs are JSON lines on stderr, keeping stdout for command output, so cache,
upstream and fallback events can be filtered by event name.
"""

from __future__ import annotations

import logging
import sys

import structlog

from next_ball.settings import Settings


def _normalize_log_level(level: str | None, environment: str) -> int:
    env = environment.lower()
    if level:
        normalized = level.strip().upper()
    else:
        normalized = "INFO" if env == "production" else "DEBUG"
    return logging.getLevelNamesMapping().get(normalized, logging.INFO)


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog with JSON output at the level the settings ask for."""
    settings = settings or Settings()
    resolved_level = _normalize_log_level(settings.log_level, settings.environment)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.EventRenamer("message"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(resolved_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str) -> structlog.typing.FilteringBoundLogger:
    return structlog.get_logger("next-ball").bind(service="next-ball", component=component)
