"""
Logging configuration for BTBK Import.

Configures the root logger through dictConfig so that the CLI, the API and
the tests can all call setup_logging() repeatedly without stacking handlers.

Environment Variables:
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive).
               Defaults to INFO if not set or invalid.
    BTBK_IMPORT_LOG_FILE: Optional path of a rotating log file.

Usage:
    from btbk_import.logger_config import setup_logging
    setup_logging()
"""

import logging
import logging.config
import os
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_log_level() -> int:
    """
    Get log level from the LOG_LEVEL environment variable.

    Returns:
        Logging level constant, INFO when unset or unrecognised.
    """
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, None)

    if not isinstance(level, int):
        return logging.INFO

    return level


def build_logging_config(
    level: int,
    format_string: str = DEFAULT_FORMAT,
    log_file: Optional[str] = None,
) -> dict:
    """
    Build the dictConfig payload.

    Args:
        level: Root logging level.
        format_string: Format for every handler.
        log_file: Optional file path; adds a rotating handler when set.

    Returns:
        Dictionary accepted by logging.config.dictConfig.
    """
    config: dict = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": format_string,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            # Request lines are noise next to per-date import reports
            "uvicorn.access": {"level": max(level, logging.WARNING)},
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
    }

    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "standard",
            "filename": log_file,
            "maxBytes": 5_242_880,  # 5 MB
            "backupCount": 3,
            "encoding": "utf-8",
        }
        config["root"]["handlers"].append("file")

    return config


def setup_logging(
    level: Optional[int] = None,
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level. If None, reads LOG_LEVEL (default: INFO).
        format_string: Optional custom format string.
        log_file: Optional log file path. If None, reads BTBK_IMPORT_LOG_FILE.
    """
    if level is None:
        level = get_log_level()

    if log_file is None:
        log_file = os.getenv("BTBK_IMPORT_LOG_FILE") or None

    logging.config.dictConfig(
        build_logging_config(level, format_string or DEFAULT_FORMAT, log_file)
    )
