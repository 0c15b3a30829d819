"""
Dataset-to-Minibatch Pipeline

Composes the segmenter and the minibatch builder:
- Streaming mode: lazily build one minibatch per segment on each pass
- Regenerate mode: reshuffle the dataset and rebuild every minibatch eagerly
  at each epoch boundary

MinibatchPipeline instances are callable with an epoch number, which makes
them usable directly as the train data selector of a fit loop.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, MutableSequence
import logging
from typing import Any, TypeVar, Union

import numpy as np

from ..errors import EmptyDatasetError
from .builder import Minibatch, MinibatchBuilder, MultiHeadMinibatch
from .examples import Example
from .segments import iter_segments

logger = logging.getLogger(__name__)

T = TypeVar("T")
AnyMinibatch = Union[Minibatch, MultiHeadMinibatch]
BatchSelector = Callable[[int], Iterable[Any]]


def shuffle_in_place(
    items: MutableSequence[T],
    seed: int | None = None,
    rng: np.random.Generator | None = None,
) -> None:
    """
    Fisher-Yates shuffle of a mutable sequence.

    Args:
        items: Sequence to reorder in place
        seed: Seed for a fresh generator; None draws one from OS entropy
        rng: Generator to use instead of seeding a new one
    """
    generator = rng if rng is not None else np.random.default_rng(seed)
    count_left = len(items)
    while count_left > 1:
        count_left -= 1
        swap_index = int(generator.integers(count_left + 1))
        items[swap_index], items[count_left] = items[count_left], items[swap_index]


def iter_minibatches(
    examples: Iterable[Example], minibatch_size: int, builder: MinibatchBuilder
) -> Iterator[Minibatch]:
    """Lazily build one single-head minibatch per segment of examples."""
    for segment in iter_segments(examples, minibatch_size):
        yield builder.build(segment)


def iter_multi_head_minibatches(
    examples: Iterable[Example], minibatch_size: int, builder: MinibatchBuilder
) -> Iterator[MultiHeadMinibatch]:
    """Lazily build one multi-head minibatch per segment of examples."""
    for segment in iter_segments(examples, minibatch_size):
        yield builder.build_multi_head(segment)


def iter_feature_batches(
    features: Iterable[Any], minibatch_size: int, builder: MinibatchBuilder
) -> Iterator[Any]:
    """Lazily build feature-only tensors, e.g. for prediction."""
    for segment in iter_segments(features, minibatch_size):
        yield builder.build_features(segment)


class MinibatchPipeline:
    """
    Produces the minibatch sequence of each epoch for a fixed dataset.

    The pipeline works on its own copy of the examples, so reshuffling never
    reorders the caller's list.

    Example:
        pipeline = MinibatchPipeline(
            examples, minibatch_size=32, builder=builder,
            shuffle_per_epoch=True, seed=7,
        )
        result = fit_loop.fit(pipeline, epoch_count=10)
    """

    def __init__(
        self,
        examples: Iterable[Example],
        minibatch_size: int,
        builder: MinibatchBuilder,
        shuffle_per_epoch: bool = False,
        seed: int | None = None,
        multi_head: bool = False,
        cache_batches: bool = False,
    ):
        """
        Initialize the pipeline.

        Args:
            examples: Dataset examples
            minibatch_size: Maximum number of examples per minibatch
            builder: Builder matching the examples' shape
            shuffle_per_epoch: Reshuffle and rebuild minibatches every epoch
            seed: Shuffle seed; None draws one from OS entropy
            multi_head: Build MultiHeadMinibatch instead of Minibatch
            cache_batches: Without reshuffling, build the minibatches once and
                reuse the list on every epoch

        Raises:
            EmptyDatasetError: If examples is empty
            ConfigurationError: If minibatch_size is not positive
        """
        self._source: list[Example] = list(examples)
        if not self._source:
            raise EmptyDatasetError("Dataset must contain at least one example")
        # Fail on a bad size now rather than on the first epoch
        iter_segments(self._source, minibatch_size)

        self.minibatch_size = minibatch_size
        self.builder = builder
        self.shuffle_per_epoch = shuffle_per_epoch
        self.seed = seed
        self.multi_head = multi_head
        self.cache_batches = cache_batches

        self.examples: list[Example] = list(self._source)
        self._rng = np.random.default_rng(seed)
        self._cached: list[AnyMinibatch] | None = None

    def __len__(self) -> int:
        return len(self.examples)

    @property
    def num_batches(self) -> int:
        return -(-len(self.examples) // self.minibatch_size)

    def stream(self) -> Iterator[AnyMinibatch]:
        """Lazily build the minibatches of the current example order."""
        if self.multi_head:
            return iter_multi_head_minibatches(
                self.examples, self.minibatch_size, self.builder
            )
        return iter_minibatches(self.examples, self.minibatch_size, self.builder)

    def regenerate(self) -> list[AnyMinibatch]:
        """Shuffle the examples in place and build every minibatch eagerly."""
        shuffle_in_place(self.examples, rng=self._rng)
        return list(self.stream())

    def reset(self) -> None:
        """Restore the original example order and re-seed the shuffle generator."""
        self.examples = list(self._source)
        self._rng = np.random.default_rng(self.seed)
        self._cached = None

    def __call__(self, epoch: int) -> Iterable[AnyMinibatch]:
        """Return the minibatch sequence for a 1-based epoch number."""
        if self.shuffle_per_epoch:
            if epoch == 1:
                self.reset()
            batches = self.regenerate()
            logger.debug(f"Regenerated {len(batches)} minibatches for epoch {epoch}")
            return batches
        if self.cache_batches:
            if self._cached is None:
                self._cached = list(self.stream())
            return self._cached
        return self.stream()


def as_batch_selector(train_data: BatchSelector | Iterable[Any]) -> BatchSelector:
    """
    Normalize train data to a selector taking the epoch number.

    Callables (including MinibatchPipeline) are returned unchanged; any other
    iterable of minibatches is reused as-is for every epoch.
    """
    if callable(train_data):
        return train_data
    if isinstance(train_data, Iterable):
        if isinstance(train_data, Iterator):
            logger.warning(
                "train_data is a one-shot iterator; epochs after the first will "
                "find it exhausted"
            )
        return lambda epoch: train_data
    raise TypeError(
        f"train_data must be callable or iterable, got {type(train_data).__name__}"
    )
