"""
Module: logger.py
Description: Structured logging configuration for the attribution SDK.

Configures structlog for JSON output. The SDK logs through a single
process-wide configuration whose level is chosen once at initialization
(DEBUG when debug logging is enabled, WARNING otherwise).

Key Components:
- JSON output with timestamp and level processors
- configure_logging(): level filtering, including a NONE level
- get_logger() helper function

Dependencies: structlog, logging, datetime
"""

import logging
from datetime import datetime, timezone

import structlog

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
    # Above every real level: all log methods become no-ops
    "NONE": logging.CRITICAL + 10,
}


def _add_timestamp(logger, method_name, event_dict):
    """
    Add ISO 8601 timestamp to log entries.

    Args:
        logger: Logger instance
        method_name: Log method name (info, error, etc.)
        event_dict: Current log event dictionary

    Returns:
        Updated event dictionary with timestamp
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def _add_log_level(logger, method_name, event_dict):
    """Add the upper-cased log level to the event dictionary."""
    event_dict["level"] = method_name.upper()
    return event_dict


def configure_logging(level: str = "WARNING") -> None:
    """
    Configure structlog for the whole process.

    Args:
        level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL or NONE

    Raises:
        ValueError: If level is not a known level name
    """
    name = level.upper() if isinstance(level, str) else level
    if name not in LOG_LEVELS:
        raise ValueError(f"log level must be one of: {', '.join(LOG_LEVELS)}")

    structlog.configure(
        processors=[
            _add_timestamp,
            _add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.WriteLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVELS[name]),
        # Loggers must pick up a later reconfiguration of the level
        cache_logger_on_first_use=False,
    )


configure_logging()


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.warning("Failed to send batch", uid="4F1C...", transactions=2)
        {"uid": "4F1C...", "transactions": 2, "event": "Failed to send batch", "timestamp": "...", "level": "WARNING"}
    """
    return structlog.get_logger(name)
