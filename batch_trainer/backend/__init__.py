"""
Compute Backend Component

This module defines the contract between the fit loop drivers and a tensor
compute engine, plus a reference PyTorch implementation:
- Protocols for tensor construction, graph binding and training steps
- Named loss and evaluation functions
- Optimizer construction from configuration
- TorchBackend and TorchGraph
"""

from .losses import (
    EVALUATION_FUNCTIONS,
    LOSS_FUNCTIONS,
    get_evaluation,
    get_loss,
)
from .optimizers import build_optimizer
from .protocol import (
    ComputeBackend,
    InputHandle,
    OptimizerDefinition,
    OutputHandle,
    PredictionBackend,
    TensorFactory,
    TrainerProtocol,
)
from .torch_backend import TorchBackend, TorchGraph, TorchTrainer

__all__ = [
    "EVALUATION_FUNCTIONS",
    "LOSS_FUNCTIONS",
    "ComputeBackend",
    "InputHandle",
    "OptimizerDefinition",
    "OutputHandle",
    "PredictionBackend",
    "TensorFactory",
    "TorchBackend",
    "TorchGraph",
    "TorchTrainer",
    "TrainerProtocol",
    "build_optimizer",
    "get_evaluation",
    "get_loss",
]
