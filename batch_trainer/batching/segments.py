"""Fixed-size grouping of an arbitrary iterable."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TypeVar

from ..errors import ConfigurationError

T = TypeVar("T")


def _generate_segments(source: Iterable[T], segment_size: int) -> Iterator[list[T]]:
    segment: list[T] = []
    for item in source:
        segment.append(item)
        if len(segment) == segment_size:
            yield segment
            segment = []
    if segment:
        yield segment


def iter_segments(source: Iterable[T], segment_size: int) -> Iterator[list[T]]:
    """
    Split an iterable into consecutive lists of segment_size items.

    Items are pulled from the source one at a time; a segment is yielded as
    soon as it fills. The last segment holds the remainder and is never empty.

    Args:
        source: Items to group
        segment_size: Number of items per segment

    Returns:
        Lazy iterator over the segments

    Raises:
        ConfigurationError: If segment_size is not positive (raised immediately)

    Example:
        >>> list(iter_segments(range(5), 2))
        [[0, 1], [2, 3], [4]]
    """
    if isinstance(segment_size, bool) or not isinstance(segment_size, int):
        raise ConfigurationError(
            f"segment_size must be an integer, got {type(segment_size).__name__}"
        )
    if segment_size <= 0:
        raise ConfigurationError(f"segment_size must be positive, got {segment_size}")
    return _generate_segments(source, segment_size)
