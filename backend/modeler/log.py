"""Logging setup for the modeler service."""

import logging
import sys
from typing import Optional

from modeler.config import LOG_LEVEL, LOG_FILE

LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(filename)s:%(lineno)d] - %(message)s"
)


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Configure the ``modeler`` logger tree.

    Args:
        level: Logging level name, defaults to LOG_LEVEL
        log_file: Optional file path, defaults to LOG_FILE
    """
    log_level = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    log_file_path = log_file or LOG_FILE

    root_logger = logging.getLogger("modeler")
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file_path:
        file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(file_handler)

    root_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``modeler`` prefix, configuring it on first use."""
    if not logging.getLogger("modeler").handlers:
        setup_logging()

    if name.startswith("modeler"):
        return logging.getLogger(name)
    return logging.getLogger(f"modeler.{name}")
