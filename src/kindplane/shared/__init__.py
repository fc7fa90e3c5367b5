"""Shared utilities for kindplane."""

from .logging import configure_logging, get_logger
from .paths import KINDPLANE_DIR, LOG_DIR, ensure_dirs, get_log_file

__all__ = [
    "configure_logging",
    "get_logger",
    "KINDPLANE_DIR",
    "LOG_DIR",
    "ensure_dirs",
    "get_log_file",
]
