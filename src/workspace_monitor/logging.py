"""Structured logging configuration for workspace-monitor.

Provides dual output strategy:
- console.print() for user-facing CLI messages (Rich formatting)
- logging module for the service itself (structured, filterable)

Usage:
    from workspace_monitor.logging import get_logger
    logger = get_logger(__name__)
    logger.debug("Docker command: %s", cmd)
    logger.info("Started project %s", name)

Enable verbose logging via:
    - CLI flag: workspace-monitor --debug
    - Environment: WORKSPACE_MONITOR_DEBUG=1
    - Environment: LOG_LEVEL=debug|info|warning|error

Persist logs via:
    - Environment: WORKSPACE_MONITOR_LOG_FILE=/var/log/workspace-monitor.log
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

ROOT_LOGGER_NAME = "workspace_monitor"

# Module-level logger cache
_loggers: dict[str, logging.Logger] = {}
_initialized = False

# Log format for structured output
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FORMAT_DEBUG = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Rotating file log: 5MB x 5 files
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 5

_LEVEL_NAMES = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def _get_log_level() -> int:
    """Determine log level from environment."""
    if os.environ.get("WORKSPACE_MONITOR_DEBUG", "").lower() in ("1", "true", "yes"):
        return logging.DEBUG
    return _LEVEL_NAMES.get(os.environ.get("LOG_LEVEL", "").lower(), logging.INFO)


def _init_logging() -> None:
    """Initialize logging configuration (called once)."""
    global _initialized
    if _initialized:
        return

    level = _get_log_level()
    is_debug = level == logging.DEBUG
    formatter = logging.Formatter(
        LOG_FORMAT_DEBUG if is_debug else LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    # Only add handlers if none exist (avoid duplicate handlers)
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

        log_file = os.environ.get("WORKSPACE_MONITOR_LOG_FILE")
        if log_file:
            try:
                file_handler = RotatingFileHandler(
                    log_file,
                    maxBytes=LOG_FILE_MAX_BYTES,
                    backupCount=LOG_FILE_BACKUPS,
                    encoding="utf-8",
                )
            except OSError as e:
                root_logger.warning("Cannot open log file %s: %s", log_file, e)
            else:
                file_handler.setLevel(level)
                file_handler.setFormatter(formatter)
                root_logger.addHandler(file_handler)

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module.

    Args:
        name: Module name (typically __name__).

    Returns:
        Configured logger instance.
    """
    _init_logging()

    # Normalize name to the package namespace
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)

    return _loggers[name]


def set_debug(enabled: bool = True) -> None:
    """Enable or disable debug logging.

    Called by CLI when --debug flag is used.

    Args:
        enabled: If True, set log level to DEBUG, else back to INFO.
    """
    level = logging.DEBUG if enabled else logging.INFO
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    fmt = LOG_FORMAT_DEBUG if enabled else LOG_FORMAT
    for handler in root_logger.handlers:
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
