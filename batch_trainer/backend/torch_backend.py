"""
PyTorch Compute Backend

Reference implementation of the compute backend contract on top of PyTorch:
- TorchGraph wraps a prebuilt nn.Module and names its inputs and outputs
- TorchTrainer couples one output head with a loss, an evaluation function
  and a torch optimizer
- TorchBackend builds tensors, resolves named inputs and outputs, runs
  optimisation steps and updates learning rates
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
import math
from typing import Any, Union

import numpy as np
import torch
from torch import nn
from torch.nn.utils.rnn import PackedSequence, pack_sequence

from ..config.schemas import OptimizerConfig
from ..errors import (
    AmbiguousInputError,
    ConfigurationError,
    InputNotFoundError,
    ShapeMismatchError,
)
from .losses import LossSpec, get_evaluation, get_loss
from .optimizers import build_optimizer
from .protocol import InputHandle, OutputHandle

logger = logging.getLogger(__name__)

BatchTensor = Union[torch.Tensor, PackedSequence]


class TorchGraph:
    """
    A prebuilt model with named inputs and outputs.

    The module's forward takes the bound input tensor and returns one tensor,
    or a tuple holding one tensor per output head in output_names order.
    """

    def __init__(
        self,
        module: nn.Module,
        input_names: Sequence[str] = ("input",),
        output_names: Sequence[str] = ("output",),
    ):
        if not output_names:
            raise ConfigurationError("A graph needs at least one output")
        self.module = module
        self.input_names = tuple(input_names)
        self.output_names = tuple(output_names)

    @property
    def output_count(self) -> int:
        return len(self.output_names)

    def forward(self, features: BatchTensor) -> tuple[torch.Tensor, ...]:
        outputs = self.module(features)
        if isinstance(outputs, torch.Tensor):
            outputs = (outputs,)
        else:
            outputs = tuple(outputs)
        if len(outputs) != self.output_count:
            raise ShapeMismatchError(
                f"Module returned {len(outputs)} outputs, graph declares "
                f"{self.output_count}"
            )
        return outputs

    def __repr__(self) -> str:
        return (
            f"TorchGraph({type(self.module).__name__}, inputs={self.input_names}, "
            f"outputs={self.output_names})"
        )


class TorchTrainer:
    """Optimises one output head of a graph and remembers the last step's averages."""

    def __init__(
        self,
        graph: TorchGraph,
        output: OutputHandle,
        loss_fn: Any,
        evaluation_fn: Any,
        optimizer: torch.optim.Optimizer,
    ):
        self.graph = graph
        self.output = output
        self.loss_fn = loss_fn
        self.evaluation_fn = evaluation_fn
        self.optimizer = optimizer
        self.steps = 0
        self._last_loss: float | None = None
        self._last_evaluation: float | None = None

    @property
    def learning_rate(self) -> float:
        return float(self.optimizer.param_groups[0]["lr"])

    def step(self, features: BatchTensor, labels: torch.Tensor) -> None:
        """Run forward, backward and one optimizer update over a minibatch."""
        self.graph.module.train()
        # Clears gradients left by other heads' trainers on shared parameters
        self.graph.module.zero_grad(set_to_none=True)

        prediction = self.graph.forward(features)[self.output.index]
        if prediction.shape != labels.shape:
            raise ShapeMismatchError(
                f"Output {self.output.name!r} has shape {tuple(prediction.shape)}, "
                f"labels have shape {tuple(labels.shape)}"
            )
        loss = self.loss_fn(prediction, labels)
        loss.backward()
        self.optimizer.step()

        with torch.no_grad():
            evaluation = self.evaluation_fn(prediction.detach(), labels)

        self._last_loss = float(loss.detach())
        self._last_evaluation = float(evaluation)
        self.steps += 1

    def previous_step_loss_average(self) -> float:
        if self._last_loss is None:
            raise RuntimeError("No training step has been run yet")
        return self._last_loss

    def previous_step_evaluation_average(self) -> float:
        if self._last_evaluation is None:
            raise RuntimeError("No training step has been run yet")
        return self._last_evaluation


class TorchBackend:
    """
    Compute backend running graphs with PyTorch.

    Example:
        backend = TorchBackend()
        graph = TorchGraph(nn.Linear(3, 1))
        loop = FitLoop(backend, graph, "squared_error", "squared_error",
                       OptimizerConfig(type="adam", lr=0.01))
    """

    def __init__(self, device: str | torch.device = "cpu"):
        self.device = torch.device(device)

    # Tensor construction

    def build_batch_tensor(
        self, shape: Sequence[int], flat_values: np.ndarray
    ) -> torch.Tensor:
        flat = np.asarray(flat_values, dtype=np.float32).reshape(-1)
        volume = math.prod(shape)
        if volume <= 0 or flat.size == 0 or flat.size % volume != 0:
            raise ShapeMismatchError(
                f"{flat.size} values do not form whole samples of shape {tuple(shape)}"
            )
        return torch.tensor(flat.reshape(-1, *shape), device=self.device)

    def build_sequence_batch_tensor(
        self, shape: Sequence[int], sequences: Sequence[np.ndarray]
    ) -> PackedSequence:
        volume = math.prod(shape)
        tensors = []
        for index, sequence in enumerate(sequences):
            flat = np.asarray(sequence, dtype=np.float32).reshape(-1)
            if volume <= 0 or flat.size == 0 or flat.size % volume != 0:
                raise ShapeMismatchError(
                    f"Sequence {index} with {flat.size} values does not hold whole "
                    f"steps of shape {tuple(shape)}"
                )
            tensors.append(torch.tensor(flat.reshape(-1, *shape), device=self.device))
        return pack_sequence(tensors, enforce_sorted=False)

    # Graph binding

    def bind_input(self, graph: TorchGraph, name: str) -> InputHandle:
        wanted = name.lower()
        matches = [
            index
            for index, input_name in enumerate(graph.input_names)
            if input_name.lower() == wanted
        ]
        if not matches:
            raise InputNotFoundError(
                f"Graph has no input named {name!r}; inputs are {graph.input_names}"
            )
        if len(matches) > 1:
            raise AmbiguousInputError(
                f"Graph has {len(matches)} inputs named {name!r} (case-insensitive)"
            )
        index = matches[0]
        return InputHandle(name=graph.input_names[index], index=index)

    def bind_output(self, graph: TorchGraph, index: int = 0) -> OutputHandle:
        if not 0 <= index < graph.output_count:
            raise ConfigurationError(
                f"Output index {index} out of range for {graph.output_count} outputs"
            )
        return OutputHandle(name=graph.output_names[index], index=index)

    def bind_outputs(self, graph: TorchGraph) -> list[OutputHandle]:
        return [self.bind_output(graph, index) for index in range(graph.output_count)]

    # Training

    def create_trainer(
        self,
        graph: TorchGraph,
        loss: LossSpec,
        evaluation: LossSpec,
        optimizer: OptimizerConfig,
        output: OutputHandle | None = None,
    ) -> TorchTrainer:
        """
        Create a trainer for one output head.

        The optimizer covers every parameter of the module; parameters that do
        not contribute to this head receive no gradient and are left untouched.
        """
        output = output if output is not None else self.bind_output(graph)
        graph.module.to(self.device)
        torch_optimizer = build_optimizer(optimizer, graph.module.parameters())
        logger.debug(
            f"Created {type(torch_optimizer).__name__} trainer for output "
            f"{output.name!r} at lr={optimizer.lr}"
        )
        return TorchTrainer(
            graph=graph,
            output=output,
            loss_fn=get_loss(loss),
            evaluation_fn=get_evaluation(evaluation),
            optimizer=torch_optimizer,
        )

    def train_step(
        self, trainer: TorchTrainer, bindings: Mapping[Any, Any]
    ) -> None:
        features = [
            value for key, value in bindings.items() if isinstance(key, InputHandle)
        ]
        if len(features) != 1:
            raise ConfigurationError(
                f"Expected exactly one bound input, got {len(features)}"
            )
        if trainer.output not in bindings:
            raise ConfigurationError(
                f"No labels bound for output {trainer.output.name!r}"
            )
        trainer.step(features[0], bindings[trainer.output])

    def set_learning_rate_schedule(self, trainer: TorchTrainer, rate: float) -> None:
        for group in trainer.optimizer.param_groups:
            group["lr"] = rate

    # Inference

    def predict(self, graph: TorchGraph, features: BatchTensor) -> list[np.ndarray]:
        """Run the graph in eval mode and return one array per output head."""
        module = graph.module.to(self.device)
        was_training = module.training
        module.eval()
        try:
            with torch.no_grad():
                outputs = graph.forward(features)
        finally:
            module.train(was_training)
        return [output.detach().cpu().numpy() for output in outputs]
