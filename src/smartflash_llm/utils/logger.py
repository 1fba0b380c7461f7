"""Logging configuration with structlog."""

import logging
import sys

import structlog

# Keys whose values never reach a log sink.
_SECRET_KEYS = frozenset({"api_key", "authorization", "Authorization"})


def _redact_secrets(logger, method_name: str, event_dict: dict) -> dict:
    """Mask credentials that were bound or passed as log context."""
    for key in _SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def configure_logging(log_level: str = "info") -> None:
    """Configure structured logging.

    Args:
        log_level: Logging level (debug, info, warning, error)
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            _redact_secrets,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if sys.stderr.isatty() else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None):
    """Get a structured logger.

    Args:
        name: Logger name, defaults to caller module

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)
