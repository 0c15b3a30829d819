"""
High-Level Training Entry Points

Convenience functions that turn in-memory data into a minibatch pipeline and
run the matching fit loop driver:
- fit_flat, fit_sequences, fit_matrices for single-output graphs
- fit_multi_head for graphs with several output heads
- build_fit_loop, build_pipeline and fit_from_config for config-driven runs
- predict and predict_features for inference over feature batches
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import logging
from typing import TYPE_CHECKING, Any

import numpy as np

from ..batching.builder import MinibatchBuilder
from ..batching.examples import Example, ExampleShape, pair_examples, split_flat_rows
from ..batching.pipeline import MinibatchPipeline, iter_feature_batches
from ..config.schemas import FitConfig, TrainingRunConfig, validate_run_config
from ..errors import EmptyDatasetError
from .callbacks import EarlyStopping
from .core import (
    ActionPerEpoch,
    FitLoop,
    LearningRateRule,
    MultiHeadActionPerEpoch,
    MultiHeadFitLoop,
    MultiHeadLearningRateRule,
)
from .results import FitResult
from .schedules import build_learning_rate_rule

if TYPE_CHECKING:
    from ..backend.protocol import (
        ComputeBackend,
        OptimizerDefinition,
        PredictionBackend,
    )

logger = logging.getLogger(__name__)


def _fit_examples(
    backend: ComputeBackend,
    graph: Any,
    examples: Sequence[Example],
    shape: ExampleShape,
    loss: Any,
    evaluation: Any,
    optimizer: OptimizerDefinition,
    epoch_count: int,
    minibatch_size: int,
    shuffle_per_epoch: bool,
    seed: int | None,
    input_name: str,
    rule_update_learning_rate: LearningRateRule | None,
    action_per_epoch: ActionPerEpoch | None,
) -> FitResult:
    loop = FitLoop(backend, graph, loss, evaluation, optimizer, input_name=input_name)
    pipeline = MinibatchPipeline(
        examples,
        minibatch_size,
        MinibatchBuilder(backend, shape),
        shuffle_per_epoch=shuffle_per_epoch,
        seed=seed,
        cache_batches=not shuffle_per_epoch,
    )
    logger.info(
        f"Fitting on {len(pipeline)} {shape.value} examples in "
        f"{pipeline.num_batches} minibatches of up to {minibatch_size}"
    )
    return loop.fit(pipeline, epoch_count, rule_update_learning_rate, action_per_epoch)


def fit_flat(
    backend: ComputeBackend,
    graph: Any,
    rows: Iterable[Sequence[float]],
    input_dim: int,
    loss: Any,
    evaluation: Any,
    optimizer: OptimizerDefinition,
    epoch_count: int,
    minibatch_size: int = 32,
    *,
    shuffle_per_epoch: bool = False,
    seed: int | None = None,
    input_name: str = "input",
    rule_update_learning_rate: LearningRateRule | None = None,
    action_per_epoch: ActionPerEpoch | None = None,
) -> FitResult:
    """
    Train a single-output graph on rows holding features followed by labels.

    Args:
        rows: Rows laid out as [features..., labels...]
        input_dim: Number of leading feature values per row
        minibatch_size: Maximum number of examples per minibatch
        shuffle_per_epoch: Reshuffle the rows and rebuild minibatches every epoch
        seed: Shuffle seed; None draws one from OS entropy
        (remaining arguments as for FitLoop and FitLoop.fit)
    """
    return _fit_examples(
        backend,
        graph,
        split_flat_rows(rows, input_dim),
        ExampleShape.FLAT,
        loss,
        evaluation,
        optimizer,
        epoch_count,
        minibatch_size,
        shuffle_per_epoch,
        seed,
        input_name,
        rule_update_learning_rate,
        action_per_epoch,
    )


def fit_sequences(
    backend: ComputeBackend,
    graph: Any,
    features: Sequence[Any],
    labels: Sequence[Any],
    loss: Any,
    evaluation: Any,
    optimizer: OptimizerDefinition,
    epoch_count: int,
    minibatch_size: int = 32,
    *,
    shuffle_per_epoch: bool = False,
    seed: int | None = None,
    input_name: str = "input",
    rule_update_learning_rate: LearningRateRule | None = None,
    action_per_epoch: ActionPerEpoch | None = None,
) -> FitResult:
    """Train on variable-length sequences, each a (steps, width) array with one label vector."""
    return _fit_examples(
        backend,
        graph,
        pair_examples(features, labels),
        ExampleShape.SEQUENCE,
        loss,
        evaluation,
        optimizer,
        epoch_count,
        minibatch_size,
        shuffle_per_epoch,
        seed,
        input_name,
        rule_update_learning_rate,
        action_per_epoch,
    )


def fit_matrices(
    backend: ComputeBackend,
    graph: Any,
    features: Sequence[Any],
    labels: Sequence[Any],
    loss: Any,
    evaluation: Any,
    optimizer: OptimizerDefinition,
    epoch_count: int,
    minibatch_size: int = 32,
    *,
    shuffle_per_epoch: bool = False,
    seed: int | None = None,
    input_name: str = "input",
    rule_update_learning_rate: LearningRateRule | None = None,
    action_per_epoch: ActionPerEpoch | None = None,
) -> FitResult:
    """Train on fixed-size 2-D feature matrices, fed as (rows, columns, 1) samples."""
    return _fit_examples(
        backend,
        graph,
        pair_examples(features, labels),
        ExampleShape.MATRIX,
        loss,
        evaluation,
        optimizer,
        epoch_count,
        minibatch_size,
        shuffle_per_epoch,
        seed,
        input_name,
        rule_update_learning_rate,
        action_per_epoch,
    )


def fit_multi_head(
    backend: ComputeBackend,
    graph: Any,
    features: Sequence[Any],
    labels: Sequence[Sequence[Any]],
    losses: Sequence[Any],
    evaluations: Sequence[Any],
    optimizers: Sequence[OptimizerDefinition],
    epoch_count: int,
    minibatch_size: int = 32,
    *,
    feature_shape: ExampleShape = ExampleShape.FLAT,
    shuffle_per_epoch: bool = False,
    seed: int | None = None,
    input_name: str = "input",
    rule_update_learning_rate: MultiHeadLearningRateRule | None = None,
    action_per_epoch: MultiHeadActionPerEpoch | None = None,
) -> list[FitResult]:
    """
    Train a graph with several output heads.

    Args:
        features: Feature arrays laid out according to feature_shape
        labels: Per example, one label vector per head
        losses, evaluations, optimizers: One entry per head

    Returns:
        One FitResult per head
    """
    loop = MultiHeadFitLoop(
        backend, graph, losses, evaluations, optimizers, input_name=input_name
    )
    pipeline = MinibatchPipeline(
        pair_examples(features, labels, multi_head=True),
        minibatch_size,
        MinibatchBuilder(backend, feature_shape),
        shuffle_per_epoch=shuffle_per_epoch,
        seed=seed,
        multi_head=True,
        cache_batches=not shuffle_per_epoch,
    )
    logger.info(
        f"Fitting {loop.head_count} heads on {len(pipeline)} examples in "
        f"{pipeline.num_batches} minibatches"
    )
    return loop.fit(pipeline, epoch_count, rule_update_learning_rate, action_per_epoch)


def build_pipeline(
    backend: ComputeBackend,
    examples: Iterable[Example],
    fit_config: FitConfig,
    shape: ExampleShape = ExampleShape.FLAT,
    multi_head: bool = False,
) -> MinibatchPipeline:
    """Create a pipeline with the minibatch size, shuffling and seed of a FitConfig."""
    return MinibatchPipeline(
        examples,
        fit_config.minibatch_size,
        MinibatchBuilder(backend, shape),
        shuffle_per_epoch=fit_config.shuffle_per_epoch,
        seed=fit_config.seed,
        multi_head=multi_head,
    )


def build_fit_loop(
    backend: ComputeBackend, graph: Any, run_config: TrainingRunConfig
) -> FitLoop:
    """
    Create a FitLoop from a validated run configuration.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    validate_run_config(run_config)
    return FitLoop(
        backend,
        graph,
        run_config.loss,
        run_config.evaluation,
        run_config.optimizer,
        input_name=run_config.fit.input_name,
        log_every_n_epochs=run_config.fit.log_every_n_epochs,
    )


def fit_from_config(
    backend: ComputeBackend,
    graph: Any,
    pipeline: Any,
    run_config: TrainingRunConfig,
) -> FitResult:
    """
    Run a complete fit described by a TrainingRunConfig.

    The scheduler section becomes the learning rate rule and the
    early_stopping section the per-epoch action. The logging section is not
    applied here: logging is process-wide, so the caller configures it once
    with setup_logging_from_config(run_config.logging).
    """
    loop = build_fit_loop(backend, graph, run_config)
    rule = (
        build_learning_rate_rule(run_config.scheduler)
        if run_config.scheduler is not None
        else None
    )
    action = (
        EarlyStopping.from_config(run_config.early_stopping)
        if run_config.early_stopping is not None
        else None
    )
    return loop.fit(
        pipeline,
        run_config.fit.epoch_count,
        rule_update_learning_rate=rule,
        action_per_epoch=action,
    )


def predict(
    backend: PredictionBackend, graph: Any, feature_batches: Iterable[Any]
) -> list[np.ndarray]:
    """
    Run inference over feature batches.

    Returns:
        One array per output head, with the predictions of all batches
        concatenated in order

    Raises:
        EmptyDatasetError: If feature_batches is empty
    """
    per_head: list[list[np.ndarray]] = []
    for features in feature_batches:
        outputs = backend.predict(graph, features)
        if not per_head:
            per_head = [[] for _ in outputs]
        for head, output in enumerate(outputs):
            per_head[head].append(np.asarray(output))
    if not per_head:
        raise EmptyDatasetError("No feature batches to predict on")
    return [np.concatenate(chunks, axis=0) for chunks in per_head]


def predict_features(
    backend: Any,
    graph: Any,
    features: Sequence[Any],
    minibatch_size: int = 32,
    shape: ExampleShape = ExampleShape.FLAT,
) -> list[np.ndarray]:
    """Batch raw feature arrays and run inference over them."""
    builder = MinibatchBuilder(backend, shape)
    return predict(
        backend, graph, iter_feature_batches(features, minibatch_size, builder)
    )
