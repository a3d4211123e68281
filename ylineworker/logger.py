"""Logging setup for the worker: level names and a console-plus-file logger."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from .timestamp import current_timestamp_str

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOGGER_NAME = "ylineworker"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 3
LOG_FORMAT = "[%(asctime)s.%(msecs)03d] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVELS: dict[str, int] = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "err": logging.ERROR,
    "critical": logging.CRITICAL,
}

_LEVEL_NAMES = {level: name for name, level in LOG_LEVELS.items()}


def level_from_name(name: str) -> int:
    """Logging level for a configuration name; raises ValueError for unknown names."""
    try:
        return LOG_LEVELS[name]
    except KeyError:
        raise ValueError(f"unknown log level: {name!r}") from None


def level_name(level: int) -> str:
    """Configuration name of a logging level; raises ValueError for unknown levels."""
    try:
        return _LEVEL_NAMES[level]
    except KeyError:
        raise ValueError(f"unknown log level: {level!r}") from None


def create_logger(
    log_root: Path | str | None = None,
    machine_name: str | None = None,
    timestamp: str | None = None,
) -> logging.Logger:
    """Configure the package logger to write to the console and a rotating file.

    The file is ``<log_root>/logs/<machine_name>/<timestamp>.log``; each file
    holds at most 5 MiB and three old files are kept. The level starts at debug.
    """
    if machine_name is None:
        from .machine_info import get_machine_name

        machine_name = get_machine_name()
    if timestamp is None:
        timestamp = current_timestamp_str()
    root = Path(log_root) if log_root is not None else Path.cwd()
    log_file = root / "logs" / machine_name / f"{timestamp}.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    logger.addHandler(console)
    logger.addHandler(file_handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger