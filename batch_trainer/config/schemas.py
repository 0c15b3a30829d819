"""
Configuration schemas for the batch trainer.

This module defines the configuration dataclasses used to drive a training
run: the fit loop itself, the optimizer, the learning-rate rule, early
stopping and logging. Every config exposes validate() and to_dict().
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..errors import ConfigurationError

OPTIMIZER_TYPES = (
    "sgd",
    "momentum_sgd",
    "adam",
    "adamw",
    "adamax",
    "adadelta",
    "adagrad",
    "rmsprop",
)
SCHEDULER_TYPES = ("constant", "step", "multistep", "exponential")
MONITOR_CHOICES = ("loss", "evaluation")
MODE_CHOICES = ("min", "max")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@runtime_checkable
class ConfigProtocol(Protocol):
    """Protocol defining the interface for configuration objects."""

    def validate(self) -> list[str]:
        """Validate the configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        ...

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        ...


@dataclass
class FitConfig:
    """Fit loop configuration."""

    epoch_count: int = 10
    minibatch_size: int = 32
    shuffle_per_epoch: bool = False
    seed: int | None = None  # None: shuffle with an entropy-seeded generator
    input_name: str = "input"
    log_every_n_epochs: int = 1

    def validate(self) -> list[str]:
        errors = []
        for name in ("epoch_count", "minibatch_size", "log_every_n_epochs"):
            value = getattr(self, name)
            if not _is_int(value):
                errors.append(f"{name} must be an integer, got {value!r}")
            elif value < 1:
                errors.append(f"{name} must be >= 1, got {value}")
        if self.seed is not None and not _is_int(self.seed):
            errors.append(f"seed must be an integer or null, got {self.seed!r}")
        if not self.input_name:
            errors.append("input_name must not be empty")
        return errors

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class OptimizerConfig:
    """Optimizer configuration."""

    type: str = "sgd"
    lr: float = 1e-3
    momentum: float = 0.9  # Used by momentum_sgd and rmsprop
    weight_decay: float = 0.0
    betas: tuple[float, float] = (0.9, 0.999)
    eps: float = 1e-8
    amsgrad: bool = False
    custom_params: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> list[str]:
        errors = []
        if self.type not in OPTIMIZER_TYPES:
            errors.append(
                f"Unknown optimizer type {self.type!r}; choose from {OPTIMIZER_TYPES}"
            )
        if self.lr <= 0:
            errors.append(f"Learning rate must be positive, got {self.lr}")
        if self.weight_decay < 0:
            errors.append(f"weight_decay must be non-negative, got {self.weight_decay}")
        if len(self.betas) != 2:
            errors.append(f"betas must hold two values, got {self.betas}")
        return errors

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["betas"] = list(self.betas)
        return result


@dataclass
class SchedulerConfig:
    """Per-epoch learning rate rule configuration."""

    type: str = "constant"
    gamma: float = 0.1
    step_size: int = 10
    milestones: list[int] = field(default_factory=list)
    min_lr: float = 0.0

    def validate(self) -> list[str]:
        errors = []
        if self.type not in SCHEDULER_TYPES:
            errors.append(
                f"Unknown scheduler type {self.type!r}; choose from {SCHEDULER_TYPES}"
            )
        if self.gamma <= 0:
            errors.append(f"gamma must be positive, got {self.gamma}")
        if self.type == "step" and self.step_size < 1:
            errors.append(f"step_size must be >= 1, got {self.step_size}")
        if self.type == "multistep" and not self.milestones:
            errors.append("multistep scheduler requires at least one milestone")
        if self.min_lr < 0:
            errors.append(f"min_lr must be non-negative, got {self.min_lr}")
        return errors

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class EarlyStoppingConfig:
    """Early stopping configuration."""

    patience: int = 5
    monitor: str = "loss"  # "loss" or "evaluation"
    mode: str = "min"
    min_delta: float = 0.0

    def validate(self) -> list[str]:
        errors = []
        if self.patience < 1:
            errors.append(f"patience must be >= 1, got {self.patience}")
        if self.monitor not in MONITOR_CHOICES:
            errors.append(f"monitor must be one of {MONITOR_CHOICES}, got {self.monitor!r}")
        if self.mode not in MODE_CHOICES:
            errors.append(f"mode must be one of {MODE_CHOICES}, got {self.mode!r}")
        if self.min_delta < 0:
            errors.append(f"min_delta must be non-negative, got {self.min_delta}")
        return errors

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class LoggingConfig:
    """Console and file logging configuration."""

    level: str = "INFO"
    log_file: str | None = None
    use_colors: bool = True

    def validate(self) -> list[str]:
        errors = []
        if self.level.upper() not in LOG_LEVELS:
            errors.append(f"level must be one of {LOG_LEVELS}, got {self.level!r}")
        return errors

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TrainingRunConfig:
    """Complete configuration of one training run."""

    fit: FitConfig = field(default_factory=FitConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    loss: str = "squared_error"
    evaluation: str = "squared_error"
    scheduler: SchedulerConfig | None = None
    early_stopping: EarlyStoppingConfig | None = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> list[str]:
        errors = []
        sections: list[tuple[str, ConfigProtocol | None]] = [
            ("fit", self.fit),
            ("optimizer", self.optimizer),
            ("scheduler", self.scheduler),
            ("early_stopping", self.early_stopping),
            ("logging", self.logging),
        ]
        for name, section in sections:
            if section is None:
                continue
            errors.extend(f"{name}: {message}" for message in section.validate())
        if not self.loss:
            errors.append("loss must name a loss function")
        if not self.evaluation:
            errors.append("evaluation must name an evaluation function")
        return errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "fit": self.fit.to_dict(),
            "optimizer": self.optimizer.to_dict(),
            "loss": self.loss,
            "evaluation": self.evaluation,
            "scheduler": self.scheduler.to_dict() if self.scheduler else None,
            "early_stopping": (
                self.early_stopping.to_dict() if self.early_stopping else None
            ),
            "logging": self.logging.to_dict(),
        }


def validate_fit_config(config: FitConfig) -> None:
    """
    Validate a fit configuration.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    errors = config.validate()
    if errors:
        raise ConfigurationError(f"Invalid fit configuration: {errors}")


def validate_run_config(config: TrainingRunConfig) -> None:
    """
    Validate a complete run configuration, reporting every problem at once.

    Raises:
        ConfigurationError: If any section is invalid
    """
    errors = config.validate()
    if errors:
        raise ConfigurationError(f"Invalid training run configuration: {errors}")
