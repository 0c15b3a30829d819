"""
Trainer Component

This module provides the training loop drivers and their helpers:
- FitLoop and MultiHeadFitLoop epoch drivers
- Per-epoch statistics and fit results
- Early stopping and learning rate rules
- Shape-specific entry points and config-driven runs
"""

from .api import (
    build_fit_loop,
    build_pipeline,
    fit_flat,
    fit_from_config,
    fit_matrices,
    fit_multi_head,
    fit_sequences,
    predict,
    predict_features,
)
from .callbacks import EarlyStopping, combine_actions
from .core import FitLoop, MultiHeadFitLoop
from .results import EpochStatistics, FitResult, MultiHeadEpochStatistics
from .schedules import build_learning_rate_rule, per_head
from .utils import Stopwatch, format_time, seed_all

__all__ = [
    "EarlyStopping",
    "EpochStatistics",
    "FitLoop",
    "FitResult",
    "MultiHeadEpochStatistics",
    "MultiHeadFitLoop",
    "Stopwatch",
    "build_fit_loop",
    "build_learning_rate_rule",
    "build_pipeline",
    "combine_actions",
    "fit_flat",
    "fit_from_config",
    "fit_matrices",
    "fit_multi_head",
    "fit_sequences",
    "format_time",
    "per_head",
    "predict",
    "predict_features",
    "seed_all",
]
