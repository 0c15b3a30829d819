"""
Compute Backend Protocols

The drivers and the minibatch builder talk to the tensor compute engine only
through the protocols below:
- TensorFactory builds feature and label tensors from raw numeric data
- ComputeBackend resolves named graph tensors, creates trainers, runs
  optimisation steps and updates learning rates
- TrainerProtocol exposes the loss and evaluation averages of the last step
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import numpy as np


@dataclass(frozen=True)
class InputHandle:
    """Resolved graph input."""

    name: str
    index: int


@dataclass(frozen=True)
class OutputHandle:
    """Resolved graph output (one per model head)."""

    name: str
    index: int


@runtime_checkable
class OptimizerDefinition(Protocol):
    """Anything carrying an initial learning rate; consumed by the backend."""

    lr: float


@runtime_checkable
class TrainerProtocol(Protocol):
    """A backend trainer bound to one (graph, output, optimizer) triple."""

    def previous_step_loss_average(self) -> float:
        """Return the loss average reported by the most recent training step."""
        ...

    def previous_step_evaluation_average(self) -> float:
        """Return the evaluation average reported by the most recent training step."""
        ...


@runtime_checkable
class TensorFactory(Protocol):
    """Builds backend tensors from flat numeric buffers."""

    def build_batch_tensor(self, shape: Sequence[int], flat_values: np.ndarray) -> Any:
        """
        Build a batch tensor from concatenated fixed-size samples.

        Args:
            shape: Shape of one sample
            flat_values: All samples concatenated end-to-end

        Raises:
            ShapeMismatchError: If flat_values does not hold a whole number of samples
        """
        ...

    def build_sequence_batch_tensor(
        self, shape: Sequence[int], sequences: Sequence[np.ndarray]
    ) -> Any:
        """
        Build a batch tensor from variable-length sequences.

        Args:
            shape: Shape of one step of a sequence
            sequences: One flat buffer per sequence, steps concatenated in order

        Raises:
            ShapeMismatchError: If a sequence does not hold a whole number of steps
        """
        ...


@runtime_checkable
class ComputeBackend(TensorFactory, Protocol):
    """Full contract required by the training loop drivers."""

    def bind_input(self, graph: Any, name: str) -> InputHandle:
        """
        Resolve a named graph input.

        Raises:
            InputNotFoundError: If no input has this name
            AmbiguousInputError: If several inputs share this name
        """
        ...

    def bind_output(self, graph: Any, index: int = 0) -> OutputHandle:
        """Resolve the graph output of the given head."""
        ...

    def bind_outputs(self, graph: Any) -> list[OutputHandle]:
        """Resolve every graph output, one per model head."""
        ...

    def create_trainer(
        self,
        graph: Any,
        loss: Any,
        evaluation: Any,
        optimizer: OptimizerDefinition,
        output: OutputHandle | None = None,
    ) -> TrainerProtocol:
        """Create a trainer optimising loss on the given output."""
        ...

    def train_step(
        self, trainer: TrainerProtocol, bindings: Mapping[Any, Any]
    ) -> None:
        """Run one optimisation step over one minibatch."""
        ...

    def set_learning_rate_schedule(self, trainer: TrainerProtocol, rate: float) -> None:
        """Replace the learning rate schedule of a trainer with a constant rate."""
        ...


@runtime_checkable
class PredictionBackend(Protocol):
    """Backend able to run a graph forward for inference."""

    def predict(self, graph: Any, features: Any) -> Sequence[np.ndarray]:
        """Return one prediction array per output head."""
        ...
