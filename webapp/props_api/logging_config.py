"""
Logging configuration for the Prop Analytics API.

Every module logs through a child of the ``props_api`` logger
(``get_logger(__name__)`` -> ``props_api.cache``, ``props_api.service``...),
so one stderr handler and one size-rotated file under ``webapp/logs/`` see
all of it. Messages carry bracketed component tags such as ``[CACHE]``.

Environment Variables:
    DEBUG: "true" switches to the verbose format and DEBUG level
    PROPS_API_LOG_DIR: directory for props_api.log (default: webapp/logs)
    PROPS_API_LOG_MAX_BYTES: rotate the log file past this size (default: 5 MB)
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

DEBUG_MODE = os.environ.get("DEBUG", "false").lower() in ("true", "1", "yes", "on")

LOG_DIR = Path(os.environ.get("PROPS_API_LOG_DIR", Path(__file__).parent.parent / "logs"))
LOG_FILE_NAME = "props_api.log"
LOG_MAX_BYTES = int(os.environ.get("PROPS_API_LOG_MAX_BYTES", 5 * 1024 * 1024))
LOG_BACKUP_COUNT = 3

LOGGER_NAME = "props_api"

VERBOSE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
COMPACT_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"


def setup_logging(debug: Optional[bool] = None) -> logging.Logger:
    """
    Attach the stderr and rotating-file handlers to the ``props_api`` logger.

    Safe to call more than once: handlers from an earlier call are closed and
    replaced, so a reload never duplicates output.
    """
    if debug is None:
        debug = DEBUG_MODE
    level = logging.DEBUG if debug else logging.INFO
    formatter = logging.Formatter(VERBOSE_FORMAT if debug else COMPACT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / LOG_FILE_NAME
    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    # Keep uvicorn's root handlers from printing every line twice
    logger.propagate = False

    if debug:
        logger.debug(f"Debug logging to {log_file}")
    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Return ``props_api`` or one of its children; other names are nested under it."""
    if name == LOGGER_NAME or name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


setup_logging()
