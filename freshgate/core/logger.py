"""Logging setup shared by the pipeline, the estimators and the cache."""

import logging
import os
from pathlib import Path

_DEFAULT_LOG_FILE = "output/freshgate.log"

# Source workers run on pool threads, so every line names its thread
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)-14s | %(module)s.%(funcName)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: str | int | None) -> int:
    """Accepts a logging level name or number; unknown names fall back to INFO."""
    if level is None:
        level = os.getenv("FRESHGATE_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(
    name: str = "freshgate",
    log_file: str | None = None,
    level: str | int | None = None,
) -> logging.Logger:
    """
    Configure the freshgate logger with a file handler and a console handler.

    Args:
        name (str): Logger name. Child loggers (``freshgate.cache``) inherit the handlers.
        log_file (str | None): Log file path. Falls back to ``FRESHGATE_LOG_FILE``,
            then ``output/freshgate.log``.
        level (str | int | None): Threshold. Falls back to ``FRESHGATE_LOG_LEVEL``, then INFO.

    Returns:
        logging.Logger: The configured logger. A second call only adjusts the level.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    if logger.handlers:
        return logger

    log_path = Path(log_file or os.getenv("FRESHGATE_LOG_FILE", _DEFAULT_LOG_FILE))
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Handlers live here; the root logger stays untouched
    logger.propagate = False
    return logger


# Shared logger for every freshgate module
logger = setup_logger()
