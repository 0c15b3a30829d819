"""
Learning Rate Rules

Rules take (epoch, current_rate) and return the rate for the next epoch. They
are evaluated between epochs by the fit loop drivers, so the rule sees the
number of the epoch that just finished.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from ..config.schemas import SchedulerConfig
from ..errors import ConfigurationError

LearningRateRule = Callable[[int, float], float]


def constant_rule() -> LearningRateRule:
    def rule(epoch: int, rate: float) -> float:
        return rate

    return rule


def step_rule(step_size: int, gamma: float, min_lr: float = 0.0) -> LearningRateRule:
    """Multiply the rate by gamma every step_size epochs."""

    def rule(epoch: int, rate: float) -> float:
        if epoch % step_size == 0:
            return max(rate * gamma, min_lr)
        return rate

    return rule


def multistep_rule(
    milestones: Sequence[int], gamma: float, min_lr: float = 0.0
) -> LearningRateRule:
    """Multiply the rate by gamma after each milestone epoch."""
    milestone_set = frozenset(milestones)

    def rule(epoch: int, rate: float) -> float:
        if epoch in milestone_set:
            return max(rate * gamma, min_lr)
        return rate

    return rule


def exponential_rule(gamma: float, min_lr: float = 0.0) -> LearningRateRule:
    """Multiply the rate by gamma after every epoch."""

    def rule(epoch: int, rate: float) -> float:
        return max(rate * gamma, min_lr)

    return rule


def build_learning_rate_rule(config: SchedulerConfig) -> LearningRateRule:
    """
    Create a learning rate rule from configuration.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    errors = config.validate()
    if errors:
        raise ConfigurationError(f"Invalid scheduler configuration: {errors}")

    if config.type == "step":
        return step_rule(config.step_size, config.gamma, config.min_lr)
    if config.type == "multistep":
        return multistep_rule(config.milestones, config.gamma, config.min_lr)
    if config.type == "exponential":
        return exponential_rule(config.gamma, config.min_lr)
    return constant_rule()


def per_head(rule: LearningRateRule) -> Callable[[int, Sequence[float]], list[float]]:
    """Apply a scalar rule to every head's rate independently."""

    def multi_head_rule(epoch: int, rates: Sequence[float]) -> list[float]:
        return [rule(epoch, rate) for rate in rates]

    return multi_head_rule
