"""
Training Examples

This module defines the in-memory example representation consumed by the
minibatch builder:
- Example: one feature array paired with one label vector (or one per head)
- ExampleShape: how the feature array of an example is laid out
- Constructors for the combined-row layout and for separate feature/label lists
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

import numpy as np

from ..errors import ConfigurationError

LabelArrays = Union[np.ndarray, tuple[np.ndarray, ...]]


class ExampleShape(Enum):
    """Layout of the feature array of an example."""

    FLAT = "flat"  # 1-D feature vector
    SEQUENCE = "sequence"  # 2-D (steps, width), variable number of steps
    MATRIX = "matrix"  # 2-D (rows, columns), fixed for the whole dataset


def _as_vector(values: Any) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


@dataclass(frozen=True)
class Example:
    """
    One training or evaluation data point.

    Attributes:
        features: Feature array (1-D for flat, 2-D for sequence and matrix examples)
        labels: Label vector, or a tuple of label vectors (one per output head)
    """

    features: np.ndarray
    labels: LabelArrays

    @classmethod
    def create(cls, features: Any, labels: Any, multi_head: bool = False) -> Example:
        """
        Build an example from array-likes, converting everything to float32.

        Args:
            features: Array-like features
            labels: Array-like label vector, or a sequence of label vectors when
                multi_head is True
            multi_head: Whether labels hold one vector per output head
        """
        if multi_head:
            return cls(
                features=_as_vector(features),
                labels=tuple(_as_vector(head) for head in labels),
            )
        return cls(features=_as_vector(features), labels=_as_vector(labels))

    @property
    def is_multi_head(self) -> bool:
        return isinstance(self.labels, tuple)


def split_flat_rows(rows: Iterable[Sequence[float]], input_dim: int) -> list[Example]:
    """
    Split rows laid out as [feature_1..feature_k, label_1..label_m].

    Args:
        rows: Combined feature/label rows
        input_dim: Number of leading values that are features

    Returns:
        One Example per row

    Raises:
        ConfigurationError: If input_dim leaves no features or no labels
    """
    examples = []
    for index, row in enumerate(rows):
        values = _as_vector(row)
        if values.ndim != 1:
            raise ConfigurationError(
                f"Row {index} must be one-dimensional, got shape {values.shape}"
            )
        if not 0 < input_dim < values.shape[0]:
            raise ConfigurationError(
                f"input_dim must be in [1, {values.shape[0] - 1}] for rows of "
                f"length {values.shape[0]}, got {input_dim}"
            )
        examples.append(Example(features=values[:input_dim], labels=values[input_dim:]))
    return examples


def pair_examples(
    features: Sequence[Any], labels: Sequence[Any], multi_head: bool = False
) -> list[Example]:
    """
    Zip separate feature and label collections into examples.

    Raises:
        ConfigurationError: If the collections have different lengths
    """
    if len(features) != len(labels):
        raise ConfigurationError(
            f"Number of feature entries ({len(features)}) and label entries "
            f"({len(labels)}) must match"
        )
    return [
        Example.create(feature, label, multi_head=multi_head)
        for feature, label in zip(features, labels)
    ]
