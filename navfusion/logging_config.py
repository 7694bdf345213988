"""
Structured logging configuration.

Every module obtains its logger through get_logger so that events share
one JSON rendering with ISO timestamps and a level field.
"""

import logging

import structlog

_configured = False

def configure_logging(level: str = "INFO") -> None:
    """
    Configure structlog rendering and the minimum level.

    Args:
        level: Standard logging level name, e.g. "INFO" or "DEBUG"
    """
    global _configured

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )
    _configured = True

def get_logger(name: str):
    """
    Return a module logger instance.

    Args:
        name: Logger name, usually __name__

    Returns:
        A structlog logger with structured output
    """
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
