"""
Tests for minibatch construction.

This module tests MinibatchBuilder including:
- Flat feature/label concatenation and alignment
- Variable-length sequence batches
- Row-major matrix batches
- Multi-head label buffers
- Width mismatch detection
"""

import numpy as np
import pytest

from batch_trainer.batching import (
    Example,
    ExampleShape,
    MinibatchBuilder,
    iter_minibatches,
    pair_examples,
    split_flat_rows,
)
from batch_trainer.errors import ConfigurationError, ShapeMismatchError


class TestFlatMinibatches:
    """Test the flat example path."""

    def test_five_examples_in_pairs(self, flat_examples, flat_builder):
        """Test 5 examples of width 3 in pairs give sizes 2,2,1 and lengths 6,6,3."""
        batches = list(iter_minibatches(flat_examples, 2, flat_builder))

        assert [batch.size for batch in batches] == [2, 2, 1]
        assert [batch.features.size for batch in batches] == [6, 6, 3]
        assert [batch.labels.size for batch in batches] == [2, 2, 1]
        assert batches[0].features.shape == (2, 3)
        assert batches[0].labels.shape == (2, 1)

    def test_features_and_labels_stay_aligned(self, flat_examples, flat_builder):
        """Test the i-th feature row matches the i-th label."""
        batch = flat_builder.build(flat_examples)

        for row, label in zip(batch.features, batch.labels):
            assert row[0] == label[0]
        np.testing.assert_array_equal(batch.labels[:, 0], [0, 1, 2, 3, 4])

    def test_feature_width_mismatch(self, flat_builder):
        """Test an example with a different feature width is rejected."""
        segment = [Example.create([1, 2, 3], [1]), Example.create([1, 2], [1])]

        with pytest.raises(ShapeMismatchError, match="Example 1"):
            flat_builder.build(segment)

    def test_label_width_mismatch(self, flat_builder):
        """Test an example with a different label width is rejected."""
        segment = [Example.create([1, 2], [1]), Example.create([3, 4], [1, 0])]

        with pytest.raises(ShapeMismatchError, match="label width"):
            flat_builder.build(segment)

    def test_empty_segment_is_a_contract_violation(self, flat_builder):
        """Test building from an empty segment raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            flat_builder.build([])

    def test_single_head_build_rejects_multi_head_examples(
        self, flat_builder, multi_head_examples
    ):
        """Test build() refuses examples carrying per-head labels."""
        with pytest.raises(ShapeMismatchError):
            flat_builder.build(multi_head_examples)

    def test_multi_head_example_after_single_head_ones(self, flat_builder):
        """Test a multi-head example later in the segment is reported by index."""
        segment = [
            Example.create([1, 2], [1]),
            Example.create([3, 4], [2]),
            Example.create([5, 6], [[1], [2, 3]], multi_head=True),
        ]

        with pytest.raises(ShapeMismatchError, match="Example 2"):
            flat_builder.build(segment)

    def test_combined_rows_split_at_input_dim(self, flat_builder):
        """Test rows laid out as features followed by labels."""
        examples = split_flat_rows([[1, 2, 3, 10], [4, 5, 6, 20]], input_dim=3)
        batch = flat_builder.build(examples)

        np.testing.assert_array_equal(batch.features, [[1, 2, 3], [4, 5, 6]])
        np.testing.assert_array_equal(batch.labels, [[10], [20]])


class TestSequenceMinibatches:
    """Test the variable-length sequence path."""

    def test_sequences_keep_their_own_lengths(self, backend):
        """Test each sequence is handed over separately with its steps in order."""
        builder = MinibatchBuilder(backend, ExampleShape.SEQUENCE)
        examples = pair_examples(
            [
                [[1, 2], [3, 4], [5, 6]],
                [[7, 8]],
            ],
            [[1], [0]],
        )
        batch = builder.build(examples)

        assert batch.size == 2
        assert [sequence.shape for sequence in batch.features] == [(3, 2), (1, 2)]
        np.testing.assert_array_equal(batch.features[0], [[1, 2], [3, 4], [5, 6]])
        np.testing.assert_array_equal(batch.labels, [[1], [0]])

    def test_step_width_mismatch(self, backend):
        """Test sequences with different step widths are rejected."""
        builder = MinibatchBuilder(backend, ExampleShape.SEQUENCE)
        examples = pair_examples([[[1, 2]], [[1, 2, 3]]], [[1], [0]])

        with pytest.raises(ShapeMismatchError, match="step width"):
            builder.build(examples)

    def test_empty_sequence_rejected(self, backend):
        """Test a sequence with no steps is rejected."""
        builder = MinibatchBuilder(backend, ExampleShape.SEQUENCE)
        examples = [Example.create(np.zeros((0, 2)), [1])]

        with pytest.raises(ShapeMismatchError, match="no steps"):
            builder.build(examples)


class TestMatrixMinibatches:
    """Test the 2-D matrix path."""

    def test_matrices_flattened_row_major(self, backend):
        """Test matrices become (rows, columns, 1) samples in row-major order."""
        builder = MinibatchBuilder(backend, ExampleShape.MATRIX)
        first = [[1, 2, 3], [4, 5, 6]]
        second = [[7, 8, 9], [10, 11, 12]]
        batch = builder.build(pair_examples([first, second], [[0], [1]]))

        assert batch.features.shape == (2, 2, 3, 1)
        np.testing.assert_array_equal(batch.features[0, :, :, 0], first)
        np.testing.assert_array_equal(batch.features[1, :, :, 0], second)

    def test_matrix_shape_mismatch(self, backend):
        """Test matrices of different shapes are rejected."""
        builder = MinibatchBuilder(backend, ExampleShape.MATRIX)
        examples = pair_examples([np.ones((2, 3)), np.ones((3, 2))], [[0], [1]])

        with pytest.raises(ShapeMismatchError, match="Matrix example 1"):
            builder.build(examples)


class TestMultiHeadMinibatches:
    """Test per-head label buffers."""

    def test_one_label_buffer_per_head(self, flat_builder, multi_head_examples):
        """Test features are built once and each head gets its own labels."""
        batch = flat_builder.build_multi_head(multi_head_examples[:3])

        assert batch.size == 3
        assert batch.head_count == 2
        assert batch.features.shape == (3, 2)
        np.testing.assert_array_equal(batch.labels[0], [[0], [1], [2]])
        np.testing.assert_array_equal(
            batch.labels[1], [[0, 0], [10, 100], [20, 200]]
        )

    def test_head_count_mismatch(self, flat_builder):
        """Test examples with different numbers of heads are rejected."""
        segment = [
            Example.create([1], [[1], [2]], multi_head=True),
            Example.create([2], [[1]], multi_head=True),
        ]

        with pytest.raises(ShapeMismatchError, match="Example 1"):
            flat_builder.build_multi_head(segment)

    def test_head_label_width_mismatch(self, flat_builder):
        """Test a head whose label width changes within the segment is rejected."""
        segment = [
            Example.create([1], [[1], [2, 3]], multi_head=True),
            Example.create([2], [[1], [2]], multi_head=True),
        ]

        with pytest.raises(ShapeMismatchError, match="head 1 label width"):
            flat_builder.build_multi_head(segment)

    def test_multi_head_build_rejects_single_head_examples(
        self, flat_builder, flat_examples
    ):
        """Test build_multi_head() refuses single-head examples."""
        with pytest.raises(ShapeMismatchError):
            flat_builder.build_multi_head(flat_examples)


class TestFeatureBatches:
    """Test feature-only batches used for inference."""

    def test_build_features_only(self, flat_builder):
        """Test a features-only batch has one row per input."""
        features = flat_builder.build_features([[1, 2], [3, 4], [5, 6]])

        assert features.shape == (3, 2)
