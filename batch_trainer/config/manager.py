"""
Configuration Manager

This module loads and saves training run configurations:
- YAML and JSON files, chosen by file suffix
- Environment variable substitution (${VAR_NAME} or $VAR_NAME values)
- Conversion between plain dictionaries and TrainingRunConfig
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, TypeVar, cast

import yaml

from ..errors import ConfigurationError
from .schemas import (
    EarlyStoppingConfig,
    FitConfig,
    LoggingConfig,
    OptimizerConfig,
    SchedulerConfig,
    TrainingRunConfig,
    validate_run_config,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SECTIONS = {
    "fit",
    "optimizer",
    "loss",
    "evaluation",
    "scheduler",
    "early_stopping",
    "logging",
}


def _environment_value(name: str, original: str) -> Any:
    value = os.environ.get(name)
    if value is None:
        # Unset variables leave the value untouched
        return original
    if not value:
        return value
    # Read numbers and booleans back as YAML scalars; anything else stays a string
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        return value
    if isinstance(parsed, (int, float, bool)):
        return parsed
    return value


def substitute_environment_variables(config: Any) -> Any:
    """Recursively substitute environment variables in configuration values."""
    if isinstance(config, dict):
        return {
            key: substitute_environment_variables(value)
            for key, value in config.items()
        }

    if isinstance(config, list):
        return [substitute_environment_variables(item) for item in config]

    if isinstance(config, str):
        if config.startswith("${") and config.endswith("}"):
            return _environment_value(config[2:-1], config)
        if config.startswith("$"):
            return _environment_value(config[1:], config)
        return config

    return config


def _section(data: dict[str, Any], key: str, config_class: type[T]) -> T | None:
    values = data.get(key)
    if values is None:
        return None
    if not isinstance(values, dict):
        raise ConfigurationError(f"Section {key!r} must be a mapping, got {values!r}")
    try:
        return config_class(**values)
    except TypeError as e:
        raise ConfigurationError(f"Invalid {key!r} section: {e}") from e


def run_config_from_dict(data: dict[str, Any]) -> TrainingRunConfig:
    """
    Build a TrainingRunConfig from a plain dictionary.

    Missing sections fall back to their defaults; scheduler and early_stopping
    stay disabled unless present.

    Raises:
        ConfigurationError: On unknown sections or fields
    """
    unknown = set(data) - _SECTIONS
    if unknown:
        raise ConfigurationError(f"Unknown configuration sections: {sorted(unknown)}")

    optimizer = _section(data, "optimizer", OptimizerConfig) or OptimizerConfig()
    if not isinstance(optimizer.betas, tuple):
        optimizer.betas = cast(tuple[float, float], tuple(optimizer.betas))

    return TrainingRunConfig(
        fit=_section(data, "fit", FitConfig) or FitConfig(),
        optimizer=optimizer,
        loss=data.get("loss", "squared_error"),
        evaluation=data.get("evaluation", "squared_error"),
        scheduler=_section(data, "scheduler", SchedulerConfig),
        early_stopping=_section(data, "early_stopping", EarlyStoppingConfig),
        logging=_section(data, "logging", LoggingConfig) or LoggingConfig(),
    )


def run_config_to_dict(config: TrainingRunConfig) -> dict[str, Any]:
    return config.to_dict()


def _load_config_file(config_path: Path) -> dict[str, Any]:
    suffix = config_path.suffix.lower()

    if suffix in [".yaml", ".yml"]:
        with config_path.open() as f:
            return cast(dict[str, Any], yaml.safe_load(f) or {})

    if suffix == ".json":
        with config_path.open() as f:
            return cast(dict[str, Any], json.load(f))

    raise ConfigurationError(f"Unsupported configuration file format: {suffix}")


def load_run_config(config_path: str | Path, validate: bool = True) -> TrainingRunConfig:
    """
    Load a training run configuration from a YAML or JSON file.

    Args:
        config_path: Path to a .yaml, .yml or .json file
        validate: Raise ConfigurationError if the loaded configuration is invalid

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigurationError: If the file format or contents are invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    data = substitute_environment_variables(_load_config_file(config_path))
    config = run_config_from_dict(data)
    if validate:
        validate_run_config(config)

    logger.info(f"Loaded configuration from {config_path}")
    return config


def save_run_config(
    config: TrainingRunConfig,
    output_path: str | Path,
    format: str = "yaml",
) -> None:
    """Save a training run configuration as YAML or JSON."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    config_data = run_config_to_dict(config)

    if format.lower() in ["yaml", "yml"]:
        with output_path.open("w") as f:
            yaml.safe_dump(config_data, f, default_flow_style=False, indent=2)
    elif format.lower() == "json":
        with output_path.open("w") as f:
            json.dump(config_data, f, indent=2, default=str)
    else:
        raise ConfigurationError(f"Unsupported format: {format}")

    logger.info(f"Saved configuration to {output_path}")
