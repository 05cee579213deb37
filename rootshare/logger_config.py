import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rootshare import config

LOGGER_NAME = "file_server"

DETAILED_FORMAT = "%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
BRIEF_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def _console_level() -> int:
    level = logging.getLevelName(config.LOG_LEVEL)
    # getLevelName maps unknown names to a "Level X" string
    return level if isinstance(level, int) else logging.INFO


def _build_handlers():
    logs_dir = Path(config.LOG_DIR)
    logs_dir.mkdir(exist_ok=True, parents=True)

    # Transfers log every chunk at DEBUG, so the file rotates
    file_handler = RotatingFileHandler(
        logs_dir / config.LOG_FILE,
        maxBytes=config.LOG_MAX_BYTES,
        backupCount=config.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    console_handler = logging.StreamHandler(sys.stdout)

    return [
        (file_handler, logging.DEBUG, DETAILED_FORMAT),
        (console_handler, _console_level(), BRIEF_FORMAT),
    ]


def setup_logger() -> logging.Logger:
    """Return the shared server logger, attaching its handlers on first use."""
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    # uvicorn configures the root logger; keep our records out of it
    logger.propagate = False
    for handler, level, fmt in _build_handlers():
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(handler)
    return logger
