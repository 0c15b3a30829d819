"""
Named Loss and Evaluation Functions

Every function takes (prediction, target) tensors of shape (batch, width) and
returns the mean over the batch of a per-example value, so the trainer can
report minibatch averages directly.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Union

import torch
import torch.nn.functional as F

from ..errors import ConfigurationError

LossFunction = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]
LossSpec = Union[str, LossFunction]

_PROBABILITY_EPS = 1e-7


def squared_error(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Sum of squared differences per example."""
    return (prediction - target).pow(2).sum(dim=-1).mean()


def absolute_error(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Sum of absolute differences per example."""
    return (prediction - target).abs().sum(dim=-1).mean()


def cross_entropy_with_softmax(
    prediction: torch.Tensor, target: torch.Tensor
) -> torch.Tensor:
    """Cross entropy between softmax(prediction) and a one-hot or soft target."""
    return -(target * F.log_softmax(prediction, dim=-1)).sum(dim=-1).mean()


def binary_cross_entropy(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Binary cross entropy; prediction holds probabilities in [0, 1]."""
    probabilities = prediction.clamp(_PROBABILITY_EPS, 1.0 - _PROBABILITY_EPS)
    return F.binary_cross_entropy(probabilities, target, reduction="none").sum(
        dim=-1
    ).mean()


def classification_error(prediction: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Fraction of examples whose arg-max class differs from the target's."""
    wrong = prediction.argmax(dim=-1) != target.argmax(dim=-1)
    return wrong.float().mean()


def binary_classification_error(
    prediction: torch.Tensor, target: torch.Tensor
) -> torch.Tensor:
    """Fraction of outputs on the wrong side of 0.5."""
    wrong = (prediction >= 0.5) != (target >= 0.5)
    return wrong.float().mean()


LOSS_FUNCTIONS: dict[str, LossFunction] = {
    "squared_error": squared_error,
    "absolute_error": absolute_error,
    "cross_entropy_with_softmax": cross_entropy_with_softmax,
    "binary_cross_entropy": binary_cross_entropy,
}

EVALUATION_FUNCTIONS: dict[str, LossFunction] = {
    **LOSS_FUNCTIONS,
    "classification_error": classification_error,
    "binary_classification_error": binary_classification_error,
}


def get_loss(spec: LossSpec) -> LossFunction:
    """
    Resolve a differentiable loss by name, or pass a callable through.

    Raises:
        ConfigurationError: If the name is unknown or names an evaluation-only metric
    """
    if callable(spec):
        return spec
    key = spec.lower()
    if key in LOSS_FUNCTIONS:
        return LOSS_FUNCTIONS[key]
    if key in EVALUATION_FUNCTIONS:
        raise ConfigurationError(
            f"{spec!r} is not differentiable; use it as an evaluation"
        )
    raise ConfigurationError(
        f"Unknown loss {spec!r}; choose from {sorted(LOSS_FUNCTIONS)}"
    )


def get_evaluation(spec: LossSpec) -> LossFunction:
    """
    Resolve an evaluation function by name, or pass a callable through.

    Raises:
        ConfigurationError: If the name is unknown
    """
    if callable(spec):
        return spec
    key = spec.lower()
    if key not in EVALUATION_FUNCTIONS:
        raise ConfigurationError(
            f"Unknown evaluation {spec!r}; choose from {sorted(EVALUATION_FUNCTIONS)}"
        )
    return EVALUATION_FUNCTIONS[key]
