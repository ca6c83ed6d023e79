"""
Console logging for the ETL scripts.

Every module does:

    from logging_config.logger import get_logger
    logger = get_logger(__name__)

Output goes to stdout. Set VERBOSE=true for SQL/batch debug lines and
LOG_FILE=<path> to keep a copy of a run's output (operators attach it to
the migration ticket).
"""
import logging
import sys
from typing import Optional

from config.settings import LOG_FILE, LOG_LEVEL, VERBOSE

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _effective_level() -> int:
    if VERBOSE:
        return logging.DEBUG
    return getattr(logging, LOG_LEVEL.upper(), logging.INFO)


def _file_handler(path: str, level: int, formatter: logging.Formatter) -> Optional[logging.Handler]:
    try:
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as e:
        print(f"Cannot open log file {path}: {e}", file=sys.stderr)
        return None
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def get_logger(name: str) -> logging.Logger:
    """
    Get configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger writing to stdout (and LOG_FILE when set)
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        level = _effective_level()
        logger.setLevel(level)
        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if LOG_FILE:
            file_handler = _file_handler(LOG_FILE, level, formatter)
            if file_handler is not None:
                logger.addHandler(file_handler)

        # Scripts print banners; keep them out of the root logger
        logger.propagate = False

    return logger
