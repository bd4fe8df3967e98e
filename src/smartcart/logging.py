"""Centralized logging configuration for SmartCart.

Usage:
    from smartcart.logging import get_logger
    logger = get_logger(__name__)

Environment variables:
    SMARTCART_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR). Default: WARNING
"""

import logging
import os
import sys

DEFAULT_LOG_LEVEL = logging.WARNING

LOG_FORMAT = "%(levelname)s [%(name)s] %(message)s"
LOG_FORMAT_DEBUG = "%(levelname)s [%(name)s:%(lineno)d] %(message)s"

ROOT_LOGGER_NAME = "smartcart"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

_logging_configured = False


def parse_level(name: str | None, default: int = DEFAULT_LOG_LEVEL) -> int:
    """Map a level name like 'info' to its logging constant."""
    if not name:
        return default
    return _LEVELS.get(name.upper(), default)


def configure_logging(level: int | None = None) -> None:
    """Configure the smartcart logger namespace.

    Args:
        level: Log level to use. If None, reads SMARTCART_LOG_LEVEL
               or uses DEFAULT_LOG_LEVEL.
    """
    global _logging_configured

    if _logging_configured:
        return

    if level is None:
        level = parse_level(os.environ.get("SMARTCART_LOG_LEVEL"))

    log_format = LOG_FORMAT_DEBUG if level == logging.DEBUG else LOG_FORMAT

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(log_format))

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    root_logger.propagate = False

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the smartcart namespace.

    Args:
        name: Module name, typically __name__

    Returns:
        Configured logger instance
    """
    configure_logging()

    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_log_level(level: int) -> None:
    """Change the log level at runtime."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    for handler in logger.handlers:
        if level == logging.DEBUG:
            handler.setFormatter(logging.Formatter(LOG_FORMAT_DEBUG))
        else:
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
