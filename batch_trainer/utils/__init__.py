"""
Utilities Component

This module provides logging setup shared by the other components.
"""

from .logging import (
    LoggingContext,
    get_logger,
    setup_logging,
    setup_logging_from_config,
)

__all__ = [
    "LoggingContext",
    "get_logger",
    "setup_logging",
    "setup_logging_from_config",
]
