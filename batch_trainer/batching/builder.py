"""
Minibatch Builder

Turns one segment of examples into one backend-ready minibatch:
- Flat examples: features and labels concatenated end-to-end
- Sequence examples: one flat buffer per sequence, handed to the backend as a list
- Matrix examples: each matrix flattened row-major, tagged (rows, columns, 1)
- Multi-head examples: one label buffer per head, built from the same segment

Feature and label buffers are always built from the same ordered segment.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from ..errors import ConfigurationError, ShapeMismatchError
from .examples import Example, ExampleShape

if TYPE_CHECKING:
    from ..backend.protocol import TensorFactory


@dataclass(frozen=True)
class Minibatch:
    """Aligned (features, labels) tensor pair built from one segment."""

    features: Any
    labels: Any
    size: int


@dataclass(frozen=True)
class MultiHeadMinibatch:
    """Shared feature tensor plus one label tensor per output head."""

    features: Any
    labels: tuple[Any, ...]
    size: int

    @property
    def head_count(self) -> int:
        return len(self.labels)


class MinibatchBuilder:
    """
    Builds minibatches for examples of one shape.

    Widths are taken from the first example of each segment; any later example
    that disagrees raises ShapeMismatchError instead of being padded or truncated.

    Example:
        builder = MinibatchBuilder(backend, ExampleShape.SEQUENCE)
        batch = builder.build(segment)
    """

    def __init__(
        self, tensor_factory: TensorFactory, shape: ExampleShape = ExampleShape.FLAT
    ):
        self.tensor_factory = tensor_factory
        self.shape = shape

    def build(self, segment: Sequence[Example]) -> Minibatch:
        """Build a single-head minibatch."""
        self._require_segment(segment)
        for index, example in enumerate(segment):
            if example.is_multi_head:
                raise ShapeMismatchError(
                    f"Example {index} carries multi-head labels; use build_multi_head()"
                )
        features = self.build_features([example.features for example in segment])
        labels = self._concat_labels(segment, head=None)
        return Minibatch(features=features, labels=labels, size=len(segment))

    def build_multi_head(self, segment: Sequence[Example]) -> MultiHeadMinibatch:
        """Build a minibatch with one label tensor per output head."""
        self._require_segment(segment)
        first = segment[0]
        if not first.is_multi_head:
            raise ShapeMismatchError(
                "Example 0 carries single-head labels; use build()"
            )
        head_count = len(first.labels)
        for index, example in enumerate(segment):
            if not example.is_multi_head or len(example.labels) != head_count:
                found = len(example.labels) if example.is_multi_head else "single"
                raise ShapeMismatchError(
                    f"Example {index} has {found} label heads, expected {head_count}"
                )

        features = self.build_features([example.features for example in segment])
        labels = tuple(
            self._concat_labels(segment, head=head) for head in range(head_count)
        )
        return MultiHeadMinibatch(features=features, labels=labels, size=len(segment))

    def build_features(self, segment: Sequence[Any]) -> Any:
        """
        Build the feature tensor for a segment of feature arrays.

        Also used on its own to batch inputs for prediction.
        """
        self._require_segment(segment)
        arrays = [np.asarray(features, dtype=np.float32) for features in segment]
        if self.shape is ExampleShape.SEQUENCE:
            return self._build_sequence_features(arrays)
        if self.shape is ExampleShape.MATRIX:
            return self._build_matrix_features(arrays)
        return self._build_flat_features(arrays)

    def _build_flat_features(self, arrays: list[np.ndarray]) -> Any:
        width = self._vector_width(arrays[0], 0, "Features")
        for index, array in enumerate(arrays[1:], start=1):
            if self._vector_width(array, index, "Features") != width:
                raise ShapeMismatchError(
                    f"Example {index} has feature width {array.shape[0]}, "
                    f"expected {width}"
                )
        return self.tensor_factory.build_batch_tensor((width,), np.concatenate(arrays))

    def _build_sequence_features(self, arrays: list[np.ndarray]) -> Any:
        step_width = None
        sequences = []
        for index, array in enumerate(arrays):
            if array.ndim != 2:
                raise ShapeMismatchError(
                    f"Sequence example {index} must be 2-D (steps, width), "
                    f"got shape {array.shape}"
                )
            if array.shape[0] == 0:
                raise ShapeMismatchError(f"Sequence example {index} has no steps")
            if step_width is None:
                step_width = array.shape[1]
            elif array.shape[1] != step_width:
                raise ShapeMismatchError(
                    f"Sequence example {index} has step width {array.shape[1]}, "
                    f"expected {step_width}"
                )
            # Steps stay in order; the backend batches ragged lengths itself
            sequences.append(array.reshape(-1))
        return self.tensor_factory.build_sequence_batch_tensor((step_width,), sequences)

    def _build_matrix_features(self, arrays: list[np.ndarray]) -> Any:
        matrix_shape = arrays[0].shape
        for index, array in enumerate(arrays):
            if array.ndim != 2:
                raise ShapeMismatchError(
                    f"Matrix example {index} must be 2-D, got shape {array.shape}"
                )
            if array.shape != matrix_shape:
                raise ShapeMismatchError(
                    f"Matrix example {index} has shape {array.shape}, "
                    f"expected {matrix_shape}"
                )
        rows, columns = matrix_shape
        flat = np.concatenate([array.reshape(-1, order="C") for array in arrays])
        return self.tensor_factory.build_batch_tensor((rows, columns, 1), flat)

    def _concat_labels(self, segment: Sequence[Example], head: int | None) -> Any:
        vectors = [
            np.asarray(
                example.labels if head is None else example.labels[head],
                dtype=np.float32,
            )
            for example in segment
        ]
        what = "Label" if head is None else f"Head {head} label"
        width = self._vector_width(vectors[0], 0, what)
        for index, vector in enumerate(vectors[1:], start=1):
            if self._vector_width(vector, index, what) != width:
                raise ShapeMismatchError(
                    f"Example {index}: {what.lower()} width {vector.shape[0]}, "
                    f"expected {width}"
                )
        return self.tensor_factory.build_batch_tensor((width,), np.concatenate(vectors))

    @staticmethod
    def _vector_width(array: np.ndarray, index: int, what: str) -> int:
        if array.ndim != 1:
            raise ShapeMismatchError(
                f"{what} of example {index} must be one-dimensional, "
                f"got shape {array.shape}"
            )
        return array.shape[0]

    @staticmethod
    def _require_segment(segment: Sequence[Any]) -> None:
        if len(segment) == 0:
            raise ConfigurationError("Cannot build a minibatch from an empty segment")
