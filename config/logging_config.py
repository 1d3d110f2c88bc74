"""
Centralized logging configuration.

Every module gets its logger here. All loggers share one console
handler (INFO) and one rotating file handler (DEBUG) that writes to
data/logs/migrator.log under the project, the same directory
Settings.logs_dir creates. LOGS_DIR and LOG_LEVEL in the environment
override the directory and the logger level.
"""
import logging
import logging.handlers
import os
from pathlib import Path
from typing import List, Optional

from .constants import (
    LOG_LEVEL, LOG_FORMAT, LOG_FILE, LOGS_DIR,
    LOG_MAX_SIZE_MB, LOG_BACKUP_COUNT
)

ROOT_LOGGER_NAME = 'code_migrator'

_handlers: List[logging.Handler] = []


def log_file_path() -> Path:
    """Where the rotating log file lives."""
    return Path(os.getenv('LOGS_DIR') or LOGS_DIR) / LOG_FILE


def _shared_handlers() -> List[logging.Handler]:
    # created once, then attached to every logger
    if _handlers:
        return _handlers

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(formatter)

    path = log_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=LOG_MAX_SIZE_MB * 1024 * 1024,
        backupCount=LOG_BACKUP_COUNT,
        encoding='utf-8',
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    _handlers.extend([console, file_handler])
    return _handlers


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get or create a configured logger.

    Usage:
        from config.logging_config import get_logger
        logger = get_logger(__name__)
        logger.info("Message here")

    Args:
        name: Logger name. If None, uses 'code_migrator'.
    """
    logger = logging.getLogger(name or ROOT_LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(os.getenv('LOG_LEVEL', LOG_LEVEL).upper())
    for handler in _shared_handlers():
        logger.addHandler(handler)
    return logger


logger = get_logger(ROOT_LOGGER_NAME)
