"""Structured logging for the API, the CLI and the webhook handler.

Every event carries the service name and environment. Production always
renders JSON lines; elsewhere ``LOG_FORMAT`` picks JSON or console output.
Request-scoped fields (a Stripe event id, an order id) are attached with
``structlog.contextvars.bound_contextvars`` and merged into each event.
"""

import logging
import sys

import structlog

from quickleads.settings import settings

# Chatty client libraries; their request logs duplicate our own events
_QUIET_LOGGERS = ("httpx", "httpcore", "stripe", "passlib")


def _add_service(logger, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("env", settings.env)
    return event_dict


def configure_logging() -> None:
    """Configure structured logging."""
    level = settings.log_level.upper()
    json_output = settings.log_format == "json" or settings.env == "production"

    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _add_service,
    ]
    if json_output:
        processors = shared + [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared + [
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
