"""Logging functionality for QuickLink operations."""

import logging
import sys
from pathlib import Path
from typing import Optional

from ._type_check import typecheck_methods


# --log-level values: 0 = warnings and errors only, 1 = info, 2 = debug
LOG_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


@typecheck_methods
class QuickLinkLogger(logging.Logger):
    """Logger for QuickLink operations.

    Created once by the command-line entry points and handed to every component
    that reports progress."""

    def __init__(self, log_level: int = 0, log_file: Optional[Path] = None):
        """Initialize logger with a stderr handler and an optional file handler.
        Args:    log_level: Verbosity, 0 (warnings), 1 (info) or 2 (debug); higher values clamp to debug
                 log_file: Optional file that receives the same records"""
        level = LOG_LEVELS[min(max(log_level, 0), max(LOG_LEVELS))]
        super().__init__("QuickLink", level)

        # Remove existing handlers to avoid duplicates
        self.handlers.clear()

        # Format: timestamp - level - message
        formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        self.addHandler(handler)

        if log_file is not None:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            self.addHandler(file_handler)
