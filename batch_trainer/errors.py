"""
Exception Hierarchy

All errors raised by the package derive from BatchTrainerError:
- ConfigurationError for invalid construction arguments or call parameters
- ShapeMismatchError for examples whose widths disagree within a segment

Errors raised by the compute backend itself are not wrapped.
"""

from __future__ import annotations


class BatchTrainerError(Exception):
    """Base exception class for batch trainer errors."""


class ConfigurationError(BatchTrainerError, ValueError):
    """Raised when a component is configured or called with invalid arguments."""


class InputNotFoundError(ConfigurationError):
    """Raised when a graph has no input with the requested name."""


class AmbiguousInputError(ConfigurationError):
    """Raised when more than one graph input shares the requested name."""


class HeadCountMismatchError(ConfigurationError):
    """Raised when per-head arrays disagree with the number of output heads."""


class EmptyDatasetError(ConfigurationError):
    """Raised when a dataset or an epoch's batch sequence holds no examples."""


class ShapeMismatchError(BatchTrainerError, ValueError):
    """Raised when feature or label widths are inconsistent within a batch."""
