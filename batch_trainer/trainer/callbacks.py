"""
Per-Epoch Actions

Callables usable as the action_per_epoch argument of the fit loop drivers.
An action receives (epoch, loss, evaluation), or per-head sequences for the
multi-head driver, and returns True to stop training.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
import logging
from typing import TYPE_CHECKING, Union

from ..config.schemas import MODE_CHOICES, MONITOR_CHOICES
from ..errors import ConfigurationError

if TYPE_CHECKING:
    from ..config.schemas import EarlyStoppingConfig

logger = logging.getLogger(__name__)

Metric = Union[float, Sequence[float]]


def _scalar(value: Metric) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    values = [float(item) for item in value]
    if not values:
        raise ConfigurationError("Cannot monitor an empty metric vector")
    return sum(values) / len(values)


class EarlyStopping:
    """
    Stop training when the monitored metric stops improving.

    For multi-head training the mean across heads is monitored.
    """

    def __init__(
        self,
        patience: int,
        monitor: str = "loss",
        mode: str = "min",
        min_delta: float = 0.0,
    ):
        """
        Initialize early stopping.

        Args:
            patience: Number of epochs to wait for improvement
            monitor: "loss" or "evaluation"
            mode: "min" to minimize metric, "max" to maximize
            min_delta: Minimum change to qualify as improvement
        """
        if patience < 1:
            raise ConfigurationError(f"patience must be >= 1, got {patience}")
        if monitor not in MONITOR_CHOICES:
            raise ConfigurationError(
                f"monitor must be one of {MONITOR_CHOICES}, got {monitor!r}"
            )
        if mode not in MODE_CHOICES:
            raise ConfigurationError(f"mode must be one of {MODE_CHOICES}, got {mode!r}")
        self.patience = patience
        self.monitor = monitor
        self.mode = mode
        self.min_delta = min_delta

        self.best_value: float | None = None
        self.best_epoch: int | None = None
        self.epochs_without_improvement = 0
        self.should_stop = False

    @classmethod
    def from_config(cls, config: EarlyStoppingConfig) -> EarlyStopping:
        return cls(
            patience=config.patience,
            monitor=config.monitor,
            mode=config.mode,
            min_delta=config.min_delta,
        )

    def __call__(self, epoch: int, loss: Metric, evaluation: Metric) -> bool:
        current = _scalar(loss if self.monitor == "loss" else evaluation)

        if self.best_value is None:
            improved = True
        elif self.mode == "min":
            improved = current < self.best_value - self.min_delta
        else:
            improved = current > self.best_value + self.min_delta

        if improved:
            self.best_value = current
            self.best_epoch = epoch
            self.epochs_without_improvement = 0
        else:
            self.epochs_without_improvement += 1

        if self.epochs_without_improvement >= self.patience:
            self.should_stop = True
            logger.info(
                f"Early stopping triggered at epoch {epoch} after "
                f"{self.epochs_without_improvement} epochs without improvement in "
                f"{self.monitor} (best {self.best_value:.6f} at epoch {self.best_epoch})"
            )
        return self.should_stop

    def reset(self) -> None:
        """Reset early stopping state."""
        self.best_value = None
        self.best_epoch = None
        self.epochs_without_improvement = 0
        self.should_stop = False


def combine_actions(*actions: Callable[..., bool]) -> Callable[..., bool]:
    """
    Combine per-epoch actions into one.

    Every action runs each epoch, even after an earlier one asked to stop, so
    stateful actions (logging, early stopping) always see every epoch.
    """

    def combined(epoch, loss, evaluation) -> bool:
        results = [bool(action(epoch, loss, evaluation)) for action in actions]
        return any(results)

    return combined
