"""
Logging setup shared by all modules and scripts.
Scripts call setup_logging() once; modules use get_logger(__name__).
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from config import (
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_FILE,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_MAX_BYTES,
    LOG_BACKUP_COUNT,
)


def setup_logging(
    log_level: str = "INFO",
    log_to_file: bool = False,
    log_dir: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger with a console handler and an optional rotating file handler.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR)
        log_to_file: Also write to <log_dir>/DEFAULT_LOG_FILE
        log_dir: Directory for the log file (default DEFAULT_LOG_DIR)

    Returns:
        The configured root logger
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    # Repeated calls (tests, scripts importing each other) must not stack handlers
    for handler in list(root.handlers):
        if getattr(handler, "_screener_handler", False):
            root.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler._screener_handler = True
    root.addHandler(console_handler)

    if log_to_file:
        path = Path(log_dir or DEFAULT_LOG_DIR)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(path / DEFAULT_LOG_FILE),
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        file_handler._screener_handler = True
        root.addHandler(file_handler)

    return root


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""
    return logging.getLogger(name)
