"""
Batching Component

This module converts in-memory examples into backend-ready minibatches:
- Example representation for flat, sequence, matrix and multi-head data
- Fixed-size segmentation of arbitrary iterables
- Minibatch construction with width checking
- Streaming and per-epoch regenerating pipelines
"""

from .builder import (
    Minibatch,
    MinibatchBuilder,
    MultiHeadMinibatch,
)
from .examples import (
    Example,
    ExampleShape,
    pair_examples,
    split_flat_rows,
)
from .pipeline import (
    MinibatchPipeline,
    as_batch_selector,
    iter_feature_batches,
    iter_minibatches,
    iter_multi_head_minibatches,
    shuffle_in_place,
)
from .segments import iter_segments

__all__ = [
    "Example",
    "ExampleShape",
    "Minibatch",
    "MinibatchBuilder",
    "MinibatchPipeline",
    "MultiHeadMinibatch",
    "as_batch_selector",
    "iter_feature_batches",
    "iter_minibatches",
    "iter_multi_head_minibatches",
    "iter_segments",
    "pair_examples",
    "shuffle_in_place",
    "split_flat_rows",
]
