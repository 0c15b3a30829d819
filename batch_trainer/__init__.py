"""
Batch Trainer - minibatch construction and epoch-driven training for
pluggable tensor compute backends.

This package provides:
- Conversion of in-memory flat, sequence, matrix and multi-head examples
  into backend minibatches
- Streaming and reshuffle-per-epoch minibatch pipelines
- Single-head and multi-head fit loops with per-epoch stop actions and
  learning rate rules
- A PyTorch reference backend

Main Components:
- batching: examples, segmentation, minibatch building and pipelines
- backend: backend protocols and the PyTorch implementation
- trainer: fit loop drivers, results, callbacks and entry points
- config: run configuration schemas and YAML/JSON loading
- utils: logging setup

Usage:
    from batch_trainer import TorchBackend, TorchGraph, OptimizerConfig, fit_flat

    backend = TorchBackend()
    graph = TorchGraph(model)
    result = fit_flat(
        backend, graph, rows, input_dim=3,
        loss="squared_error", evaluation="squared_error",
        optimizer=OptimizerConfig(type="adam", lr=1e-2),
        epoch_count=20, minibatch_size=16, shuffle_per_epoch=True, seed=7,
    )
"""

__version__ = "1.0.0"

from .backend import TorchBackend, TorchGraph
from .batching import (
    Example,
    ExampleShape,
    Minibatch,
    MinibatchBuilder,
    MinibatchPipeline,
    MultiHeadMinibatch,
    iter_segments,
)
from .config import (
    EarlyStoppingConfig,
    FitConfig,
    LoggingConfig,
    OptimizerConfig,
    SchedulerConfig,
    TrainingRunConfig,
    load_run_config,
    save_run_config,
)
from .errors import (
    AmbiguousInputError,
    BatchTrainerError,
    ConfigurationError,
    EmptyDatasetError,
    HeadCountMismatchError,
    InputNotFoundError,
    ShapeMismatchError,
)
from .trainer import (
    EarlyStopping,
    EpochStatistics,
    FitLoop,
    FitResult,
    MultiHeadEpochStatistics,
    MultiHeadFitLoop,
    build_learning_rate_rule,
    build_pipeline,
    combine_actions,
    fit_flat,
    fit_from_config,
    fit_matrices,
    fit_multi_head,
    fit_sequences,
    predict,
)
from .utils import setup_logging, setup_logging_from_config

__all__ = [
    "AmbiguousInputError",
    "BatchTrainerError",
    "ConfigurationError",
    "EarlyStopping",
    "EarlyStoppingConfig",
    "EmptyDatasetError",
    "EpochStatistics",
    "Example",
    "ExampleShape",
    "FitConfig",
    "FitLoop",
    "FitResult",
    "HeadCountMismatchError",
    "InputNotFoundError",
    "LoggingConfig",
    "Minibatch",
    "MinibatchBuilder",
    "MinibatchPipeline",
    "MultiHeadEpochStatistics",
    "MultiHeadFitLoop",
    "MultiHeadMinibatch",
    "OptimizerConfig",
    "SchedulerConfig",
    "ShapeMismatchError",
    "TorchBackend",
    "TorchGraph",
    "TrainingRunConfig",
    "build_learning_rate_rule",
    "build_pipeline",
    "combine_actions",
    "fit_flat",
    "fit_from_config",
    "fit_matrices",
    "fit_multi_head",
    "fit_sequences",
    "iter_segments",
    "load_run_config",
    "predict",
    "save_run_config",
    "setup_logging",
    "setup_logging_from_config",
]
