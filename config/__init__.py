"""
Configuration module for Code Migrator.
"""
from .constants import *
from .logging_config import get_logger, log_file_path, logger

__all__ = [
    # Logging
    'get_logger',
    'log_file_path',
    'logger',
    # Constants (all exported via *)
]
