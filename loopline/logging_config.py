"""Centralized logging configuration for loopline.

This module provides a single point for configuring logging across the
engine: console output, rotating log files and per-area log levels.
"""

import logging
import logging.config
import sys
from typing import Any, Dict, Optional

from .config import get_config


def get_logging_config() -> Dict[str, Any]:
    """Get the logging configuration dictionary.

    Returns:
        Dictionary suitable for logging.config.dictConfig()
    """
    config = get_config()

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": config.logging.format,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(module)s:%(lineno)d - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG",
                "formatter": "standard",
                "stream": sys.stdout,
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "DEBUG",
                "formatter": "detailed",
                "filename": "loopline.log",
                "maxBytes": 10485760,  # 10MB
                "backupCount": 5,
            },
            "error_file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "ERROR",
                "formatter": "detailed",
                "filename": "loopline_errors.log",
                "maxBytes": 10485760,  # 10MB
                "backupCount": 5,
            },
        },
        "loggers": {
            "loopline.midi_engine": {
                "level": config.logging.midi_log_level,
                "handlers": ["console", "file"],
                "propagate": False,
            },
            "loopline.midi_engine.timeline": {
                "level": config.logging.timeline_log_level,
                "handlers": ["console", "file"],
                "propagate": False,
            },
            "loopline.control": {
                "level": config.logging.control_log_level,
                "handlers": ["console", "file"],
                "propagate": False,
            },
        },
        "root": {
            "level": config.logging.level,
            "handlers": ["console", "file", "error_file"],
        },
    }


def setup_logging(log_config: Optional[Dict[str, Any]] = None) -> None:
    """Set up logging configuration for the application.

    Args:
        log_config: Optional custom logging configuration. If None, uses default.
    """
    if log_config is None:
        log_config = get_logging_config()

    logging.config.dictConfig(log_config)

    logger = logging.getLogger(__name__)
    logger.info("Logging configuration initialized")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name.

    Args:
        name: Logger name, typically __name__ from the calling module

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def set_log_level(logger_name: str, level: str) -> None:
    """Dynamically change log level for a specific logger.

    Args:
        logger_name: Name of the logger to modify
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.info(f"Log level changed to {level.upper()} for {logger_name}")

