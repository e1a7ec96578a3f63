"""Logging configuration and utilities.

Provides the default ``pitooth`` logger used when no logger is injected into
the manager. Output goes to stdout; a rotating log file is added when
``PITOOTH_LOG_FILE`` is set.
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

_LOGGER: Optional[logging.Logger] = None

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "error": logging.ERROR,
}


def level_from_name(name: Optional[str]) -> int:
    """Map a level name (debug, info, error) to a logging level.

    Unknown or empty names fall back to INFO.
    """
    return LEVELS.get((name or "").strip().lower(), logging.INFO)


def get_logger() -> logging.Logger:
    """Get or create the application logger.

    Creates a logger with a console handler on first call, seeded from the
    ``LOG_LEVEL`` environment variable. If ``PITOOTH_LOG_FILE`` is set, a
    rotating file handler (max 256KB per file, 5 backups) is attached too.

    Returns:
        The configured Logger instance.
    """
    global _LOGGER
    if _LOGGER is not None:
        return _LOGGER

    logger = logging.getLogger("pitooth")
    logger.setLevel(level_from_name(os.environ.get("LOG_LEVEL")))
    logger.propagate = False

    fmt = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(fmt)
    logger.addHandler(stream_handler)

    file_path = log_path()
    if file_path is not None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            file_path, maxBytes=256 * 1024, backupCount=5, encoding="utf-8"
        )
        handler.setFormatter(fmt)
        logger.addHandler(handler)

    _LOGGER = logger
    return logger


def set_level(name: str) -> None:
    """Change the level of the default logger (used by the CLI ``--log`` flag)."""
    get_logger().setLevel(level_from_name(name))


def log_path() -> Optional[Path]:
    """Get the path to the log file, if file logging is enabled.

    Returns:
        Path from ``PITOOTH_LOG_FILE``, or None when unset.
    """
    value = os.environ.get("PITOOTH_LOG_FILE", "").strip()
    return Path(value) if value else None
