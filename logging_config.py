"""
Logging configuration for the waiver wire service.

Call setup_logging() once at startup; modules then log through
logging.getLogger(__name__).

- Console handler at the configured level.
- Optional rotating file handlers when a log directory is given:
    waiverwire.log        (INFO+)
    waiverwire_error.log  (ERROR+, detailed format)

Each file rotates at 10MB with 5 backups.
"""

import logging
import logging.handlers
import os
from pathlib import Path

from config import LOG_DIR, LOG_LEVEL  # type: ignore[import]


DETAILED_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"
)

SIMPLE_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: str = LOG_LEVEL,
    log_dir: str = LOG_DIR,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files; empty means console only
        max_bytes: Maximum size per log file before rotation
        backup_count: Number of rotated files to keep
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)

        main_handler = logging.handlers.RotatingFileHandler(
            filename=os.path.join(log_dir, "waiverwire.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        main_handler.setLevel(logging.INFO)
        main_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(main_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            filename=os.path.join(log_dir, "waiverwire_error.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(error_handler)

    root_logger.info("Logging initialized - Level: %s, File: %s", level, bool(log_dir))
