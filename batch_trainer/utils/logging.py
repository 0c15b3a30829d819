"""
Logging Utilities

This module provides logging setup for training runs:
- Colored console logging through colorlog
- File logging with rotation
- Temporary level changes for noisy sections
"""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
import sys
from typing import TYPE_CHECKING, Optional, Union

import colorlog

if TYPE_CHECKING:
    from ..config.schemas import LoggingConfig

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown logging level: {level}")
        return resolved
    return level


def setup_logging(
    level: Union[str, int] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    log_dir: Optional[Union[str, Path]] = None,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    use_colors: bool = True,
    format_string: Optional[str] = None,
    date_format: Optional[str] = None,
    logger_name: Optional[str] = None,
) -> logging.Logger:
    """
    Configure console and optional file logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Specific log file path
        log_dir: Directory for log files (used if log_file not specified)
        max_file_size: Maximum size of log file before rotation
        backup_count: Number of backup files to keep
        use_colors: Whether to color console output (only on a terminal)
        format_string: Custom format string, without color markers
        date_format: Custom date format
        logger_name: Name of logger to configure (None for root logger)

    Returns:
        Configured logger instance
    """
    level = _resolve_level(level)
    fmt = format_string or DEFAULT_FORMAT
    datefmt = date_format or DEFAULT_DATE_FORMAT

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    # Clear existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s" + fmt + "%(reset)s",
            datefmt=datefmt,
            log_colors=LOG_COLORS,
            no_color=not (use_colors and sys.stderr.isatty()),
        )
    )
    logger.addHandler(console_handler)

    if log_file or log_dir:
        if log_file:
            log_path = Path(log_file)
        else:
            log_path = Path(log_dir) / "batch_trainer.log"
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_file_size, backupCount=backup_count
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
        logger.addHandler(file_handler)

    # Prevent propagation to avoid double logging
    if logger_name:
        logger.propagate = False

    return logger


def setup_logging_from_config(
    config: LoggingConfig, logger_name: Optional[str] = "batch_trainer"
) -> logging.Logger:
    """Configure logging from a LoggingConfig section."""
    return setup_logging(
        level=config.level,
        log_file=config.log_file,
        use_colors=config.use_colors,
        logger_name=logger_name,
    )


def get_logger(name: str, level: Optional[Union[str, int]] = None) -> logging.Logger:
    """
    Get a logger with optional level override.

    Args:
        name: Logger name
        level: Optional level override

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(_resolve_level(level))
    return logger


class LoggingContext:
    """Context manager for temporary logging level changes."""

    def __init__(self, logger_name: str, temp_level: Union[str, int]):
        self.logger_name = logger_name
        self.temp_level = _resolve_level(temp_level)
        self.original_level: Optional[int] = None

    def __enter__(self) -> logging.Logger:
        logger = logging.getLogger(self.logger_name)
        self.original_level = logger.level
        logger.setLevel(self.temp_level)
        return logger

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.original_level is not None:
            logging.getLogger(self.logger_name).setLevel(self.original_level)
