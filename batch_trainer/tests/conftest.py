"""
Test configuration and fixtures for the batch trainer test suite.

This module provides a recording fake compute backend and small datasets used
across the test modules.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any

import numpy as np
import pytest

from batch_trainer.backend.protocol import InputHandle, OutputHandle
from batch_trainer.batching import Example, MinibatchBuilder
from batch_trainer.config import OptimizerConfig
from batch_trainer.errors import (
    AmbiguousInputError,
    InputNotFoundError,
    ShapeMismatchError,
)


class FakeGraph:
    """Stand-in for a prebuilt computation graph."""

    def __init__(self, input_names=("input",), head_count: int = 1):
        self.input_names = tuple(input_names)
        self.head_count = head_count

    def __repr__(self) -> str:
        return f"FakeGraph(heads={self.head_count})"


class FakeTrainer:
    """Trainer whose loss is 1/steps and whose evaluation is the label mean."""

    def __init__(self, output: OutputHandle, loss, evaluation, optimizer):
        self.output = output
        self.loss = loss
        self.evaluation = evaluation
        self.learning_rate = optimizer.lr
        self.steps = 0
        self._last_loss: float | None = None
        self._last_evaluation: float | None = None

    def record_step(self, labels: Any) -> None:
        self.steps += 1
        self._last_loss = 1.0 / self.steps
        self._last_evaluation = float(np.mean(labels))

    def previous_step_loss_average(self) -> float:
        assert self._last_loss is not None, "read before any step"
        return self._last_loss

    def previous_step_evaluation_average(self) -> float:
        assert self._last_evaluation is not None, "read before any step"
        return self._last_evaluation


@dataclass
class StepRecord:
    trainer: FakeTrainer
    features: Any
    labels: Any


class RecordingBackend:
    """
    Fake compute backend recording every call made by the drivers.

    Tensors are plain numpy arrays so tests can inspect batch contents.
    """

    def __init__(self, fail_on_step: int | None = None):
        self.fail_on_step = fail_on_step
        self.trainers: list[FakeTrainer] = []
        self.steps: list[StepRecord] = []
        self.learning_rate_calls: list[tuple[FakeTrainer, float]] = []

    def build_batch_tensor(self, shape, flat_values):
        values = np.asarray(flat_values, dtype=np.float32)
        volume = math.prod(shape)
        if values.size == 0 or values.size % volume != 0:
            raise ShapeMismatchError(f"{values.size} values for shape {tuple(shape)}")
        return values.reshape(-1, *shape)

    def build_sequence_batch_tensor(self, shape, sequences):
        return [
            np.asarray(sequence, dtype=np.float32).reshape(-1, *shape)
            for sequence in sequences
        ]

    def bind_input(self, graph: FakeGraph, name: str) -> InputHandle:
        matches = [
            index
            for index, input_name in enumerate(graph.input_names)
            if input_name.lower() == name.lower()
        ]
        if not matches:
            raise InputNotFoundError(name)
        if len(matches) > 1:
            raise AmbiguousInputError(name)
        return InputHandle(graph.input_names[matches[0]], matches[0])

    def bind_output(self, graph: FakeGraph, index: int = 0) -> OutputHandle:
        return OutputHandle(f"output{index}", index)

    def bind_outputs(self, graph: FakeGraph) -> list[OutputHandle]:
        return [self.bind_output(graph, index) for index in range(graph.head_count)]

    def create_trainer(self, graph, loss, evaluation, optimizer, output=None):
        trainer = FakeTrainer(
            output or self.bind_output(graph), loss, evaluation, optimizer
        )
        self.trainers.append(trainer)
        return trainer

    def train_step(self, trainer: FakeTrainer, bindings) -> None:
        if self.fail_on_step is not None and len(self.steps) + 1 == self.fail_on_step:
            raise RuntimeError("backend failure")
        features = next(
            value for key, value in bindings.items() if isinstance(key, InputHandle)
        )
        labels = bindings[trainer.output]
        self.steps.append(StepRecord(trainer, features, labels))
        trainer.record_step(labels)

    def set_learning_rate_schedule(self, trainer: FakeTrainer, rate: float) -> None:
        self.learning_rate_calls.append((trainer, rate))
        trainer.learning_rate = rate

    def predict(self, graph: FakeGraph, features):
        features = np.asarray(features)
        return [features[:, :1] * (head + 1) for head in range(graph.head_count)]


@pytest.fixture
def backend() -> RecordingBackend:
    """Recording fake backend."""
    return RecordingBackend()


@pytest.fixture
def graph() -> FakeGraph:
    """Single-output fake graph with one input named "input"."""
    return FakeGraph()


@pytest.fixture
def optimizer() -> OptimizerConfig:
    return OptimizerConfig(type="sgd", lr=0.1)


@pytest.fixture
def flat_builder(backend: RecordingBackend) -> MinibatchBuilder:
    return MinibatchBuilder(backend)


@pytest.fixture
def flat_examples() -> list[Example]:
    """Five flat examples: features [i, i, i], label [i]."""
    return [Example.create([i, i, i], [i]) for i in range(5)]


@pytest.fixture
def multi_head_examples() -> list[Example]:
    """Six examples with two label heads of widths 1 and 2."""
    return [
        Example.create([i, i + 0.5], [[i], [i * 10, i * 100]], multi_head=True)
        for i in range(6)
    ]
