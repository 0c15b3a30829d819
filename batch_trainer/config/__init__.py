"""
Configuration Component

This module provides configuration for training runs:
- Dataclass schemas with validation for the fit loop, optimizer, learning
  rate rule, early stopping and logging
- Loading and saving run configurations as YAML or JSON
"""

from .manager import (
    load_run_config,
    run_config_from_dict,
    run_config_to_dict,
    save_run_config,
    substitute_environment_variables,
)
from .schemas import (
    EarlyStoppingConfig,
    FitConfig,
    LoggingConfig,
    OptimizerConfig,
    SchedulerConfig,
    TrainingRunConfig,
    validate_fit_config,
    validate_run_config,
)

__all__ = [
    "EarlyStoppingConfig",
    "FitConfig",
    "LoggingConfig",
    "OptimizerConfig",
    "SchedulerConfig",
    "TrainingRunConfig",
    "load_run_config",
    "run_config_from_dict",
    "run_config_to_dict",
    "save_run_config",
    "substitute_environment_variables",
    "validate_fit_config",
    "validate_run_config",
]
