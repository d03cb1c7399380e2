"""Logging helpers for camrig.

Every module takes a child of the ``camrig`` root logger:

    from .log import get_logger
    logger = get_logger(__name__)

Nothing is emitted until ``setup_logging`` installs handlers (the simulator
does this at startup); library users may attach their own instead.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

ROOT_LOGGER_NAME = "camrig"

MAX_LOG_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 3

_FORMAT = "%(levelname)s | %(asctime)s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_initialized = False

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def setup_logging(
    level: int = logging.INFO,
    log_file: str | Path | None = None,
) -> logging.Logger:
    """Attach console (and optional rotating file) handlers to the root logger.

    Safe to call more than once; later calls only update the level.
    """
    global _initialized

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    if _initialized:
        for handler in logger.handlers:
            if not isinstance(handler, logging.handlers.RotatingFileHandler):
                handler.setLevel(level)
        return logger

    logger.propagate = False
    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=MAX_LOG_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        # The file keeps everything.
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    _initialized = True
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Return a child of the ``camrig`` root logger for ``name``."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
