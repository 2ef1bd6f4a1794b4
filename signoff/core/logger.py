"""Logging infrastructure for signoff.

Records emitted through the ``signoff`` logger carry a ``request_id``
attribute so lines belonging to one approval request can be grepped
together. Pass it with ``extra={"request_id": ...}``; records without one
show ``-``.
"""

import logging
import logging.handlers
import os
from typing import Optional

PACKAGE_LOGGER = "signoff"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] [req=%(request_id)s] %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class RequestContextFilter(logging.Filter):
    """Ensure every record has a ``request_id`` for the formatter."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def _parse_level(level: str) -> int:
    level_upper = level.upper()
    if level_upper not in LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LEVELS)}")
    return getattr(logging, level_upper)


def setup_logger(
    name: str = PACKAGE_LOGGER,
    log_dir: Optional[str] = None,
    level: str = "INFO",
    log_format: Optional[str] = None,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach console and (optionally) rotating file handlers to a logger.

    Module loggers created with ``logging.getLogger(__name__)`` inside the
    package propagate here, so configuring the package logger once is enough.

    Args:
        name: Logger name
        log_dir: Directory for ``<name>.log``; file logging is off when None
        level: Logging level name
        log_format: Format string; must reference ``request_id`` only if
            the default filter stays attached
        console_logging: Enable the stderr handler
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format or DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
    context = RequestContextFilter()

    handlers = []
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"), maxBytes=max_bytes, backupCount=backup_count
        ))
    if console_logging:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context)
        logger.addHandler(handler)

    return logger


def configure_from_settings(settings) -> logging.Logger:
    """Configure the package logger from a Settings instance."""
    return setup_logger(PACKAGE_LOGGER, log_dir=settings.log_dir, level=settings.log_level)
