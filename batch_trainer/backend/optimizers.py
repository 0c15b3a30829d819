"""
Optimizer Factory

Builds torch optimizers from OptimizerConfig. Fields a given optimizer does not
accept are ignored; custom_params are forwarded as extra keyword arguments.
"""

from __future__ import annotations

from collections.abc import Iterable
import logging
from typing import Any

import torch

from ..config.schemas import OptimizerConfig
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

OPTIMIZER_CLASSES: dict[str, type[torch.optim.Optimizer]] = {
    "sgd": torch.optim.SGD,
    "momentum_sgd": torch.optim.SGD,
    "adam": torch.optim.Adam,
    "adamw": torch.optim.AdamW,
    "adamax": torch.optim.Adamax,
    "adadelta": torch.optim.Adadelta,
    "adagrad": torch.optim.Adagrad,
    "rmsprop": torch.optim.RMSprop,
}


def _optimizer_kwargs(config: OptimizerConfig) -> dict[str, Any]:
    kind = config.type.lower()
    kwargs: dict[str, Any] = {"lr": config.lr, "weight_decay": config.weight_decay}
    if kind == "momentum_sgd":
        kwargs["momentum"] = config.momentum
    elif kind in ("adam", "adamw"):
        kwargs.update(betas=tuple(config.betas), eps=config.eps, amsgrad=config.amsgrad)
    elif kind == "adamax":
        kwargs.update(betas=tuple(config.betas), eps=config.eps)
    elif kind in ("adadelta", "adagrad"):
        kwargs["eps"] = config.eps
    elif kind == "rmsprop":
        kwargs.update(momentum=config.momentum, eps=config.eps)
    kwargs.update(config.custom_params)
    return kwargs


def build_optimizer(
    config: OptimizerConfig, params: Iterable[torch.nn.Parameter]
) -> torch.optim.Optimizer:
    """
    Create a torch optimizer for the given parameters.

    Args:
        config: Optimizer type, initial learning rate and hyper-parameters
        params: Parameters to optimise

    Returns:
        Configured optimizer

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    errors = config.validate()
    if errors:
        raise ConfigurationError(f"Invalid optimizer configuration: {errors}")

    kind = config.type.lower()
    kwargs = _optimizer_kwargs(config)
    logger.debug(f"Building {kind} optimizer with {kwargs}")
    return OPTIMIZER_CLASSES[kind](params, **kwargs)
