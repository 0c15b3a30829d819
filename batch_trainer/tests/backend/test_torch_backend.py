"""
Tests for the PyTorch compute backend.

This module tests TorchBackend including:
- Batch and packed-sequence tensor construction
- Case-insensitive input binding and output binding
- Training steps on single and multi-head modules
- Learning rate updates and inference
"""

import numpy as np
import pytest
import torch
from torch import nn
from torch.nn.utils.rnn import PackedSequence

from batch_trainer.backend import TorchBackend, TorchGraph
from batch_trainer.backend.protocol import InputHandle
from batch_trainer.batching import ExampleShape, Minibatch
from batch_trainer.config import OptimizerConfig
from batch_trainer.errors import (
    AmbiguousInputError,
    ConfigurationError,
    InputNotFoundError,
    ShapeMismatchError,
)
from batch_trainer.trainer import (
    FitLoop,
    fit_flat,
    fit_multi_head,
    fit_sequences,
    predict_features,
    seed_all,
)


class LastStepRegressor(nn.Module):
    """LSTM over a packed batch, predicting from the final hidden state."""

    def __init__(self, width: int, hidden: int = 8):
        super().__init__()
        self.lstm = nn.LSTM(width, hidden, batch_first=True)
        self.head = nn.Linear(hidden, 1)

    def forward(self, packed):
        _, (hidden, _) = self.lstm(packed)
        return self.head(hidden[-1])


class TwoHeadModel(nn.Module):
    """Shared trunk feeding a regression head and a two-class head."""

    def __init__(self, width: int):
        super().__init__()
        self.trunk = nn.Linear(width, 8)
        self.regression = nn.Linear(8, 1)
        self.classifier = nn.Linear(8, 2)

    def forward(self, features):
        hidden = torch.relu(self.trunk(features))
        return self.regression(hidden), self.classifier(hidden)


@pytest.fixture
def torch_backend():
    seed_all(0)
    return TorchBackend()


@pytest.fixture
def linear_graph():
    return TorchGraph(nn.Linear(2, 1), input_names=("Features",))


class TestTensorConstruction:
    """Test building tensors from flat values."""

    def test_batch_tensor_shape(self, torch_backend):
        """Test flat values are split into samples of the given shape."""
        tensor = torch_backend.build_batch_tensor((2, 3, 1), np.arange(12))

        assert tensor.shape == (2, 2, 3, 1)
        assert tensor.dtype == torch.float32
        assert tensor[1, 0, 0, 0].item() == 6

    @pytest.mark.parametrize("values", [np.arange(0), np.arange(5)])
    def test_batch_tensor_requires_whole_samples(self, torch_backend, values):
        """Test empty or partial samples are rejected."""
        with pytest.raises(ShapeMismatchError):
            torch_backend.build_batch_tensor((2,), values)

    def test_sequence_batch_is_packed(self, torch_backend):
        """Test ragged sequences become a PackedSequence."""
        packed = torch_backend.build_sequence_batch_tensor(
            (2,), [np.arange(2), np.arange(6), np.arange(4)]
        )

        assert isinstance(packed, PackedSequence)
        assert packed.data.shape == (6, 2)
        assert packed.batch_sizes.tolist() == [3, 2, 1]

    def test_sequence_with_partial_step(self, torch_backend):
        """Test a sequence not made of whole steps is rejected."""
        with pytest.raises(ShapeMismatchError):
            torch_backend.build_sequence_batch_tensor((2,), [np.arange(3)])


class TestBinding:
    """Test input and output resolution."""

    def test_input_case_insensitive(self, torch_backend, linear_graph):
        """Test the input keeps its declared name when matched by another case."""
        handle = torch_backend.bind_input(linear_graph, "features")

        assert handle == InputHandle(name="Features", index=0)

    def test_missing_input(self, torch_backend, linear_graph):
        """Test an unknown input name raises InputNotFoundError."""
        with pytest.raises(InputNotFoundError):
            torch_backend.bind_input(linear_graph, "labels")

    def test_ambiguous_input(self, torch_backend):
        """Test names colliding after case folding raise AmbiguousInputError."""
        graph = TorchGraph(nn.Linear(1, 1), input_names=("x", "X"))

        with pytest.raises(AmbiguousInputError):
            torch_backend.bind_input(graph, "x")

    def test_output_out_of_range(self, torch_backend, linear_graph):
        """Test binding a missing output index fails."""
        with pytest.raises(ConfigurationError):
            torch_backend.bind_output(linear_graph, 1)

    def test_bind_outputs_in_order(self, torch_backend):
        """Test every declared output is bound in declaration order."""
        graph = TorchGraph(TwoHeadModel(2), output_names=("value", "label"))

        outputs = torch_backend.bind_outputs(graph)

        assert [(output.name, output.index) for output in outputs] == [
            ("value", 0),
            ("label", 1),
        ]

    def test_graph_needs_outputs(self):
        """Test a graph without outputs is rejected."""
        with pytest.raises(ConfigurationError):
            TorchGraph(nn.Linear(1, 1), output_names=())


class TestTrainer:
    """Test TorchTrainer steps through the backend."""

    def test_previous_step_before_training(self, torch_backend, linear_graph):
        """Test statistics cannot be read before the first step."""
        trainer = torch_backend.create_trainer(
            linear_graph, "squared_error", "absolute_error", OptimizerConfig()
        )

        with pytest.raises(RuntimeError):
            trainer.previous_step_loss_average()

    def test_step_records_last_minibatch_values(self, torch_backend, linear_graph):
        """Test a step records the loss and evaluation of that minibatch."""
        trainer = torch_backend.create_trainer(
            linear_graph, "squared_error", "absolute_error", OptimizerConfig()
        )
        features = torch.ones(4, 2)
        labels = torch.zeros(4, 1)
        with torch.no_grad():
            expected = linear_graph.module(features).pow(2).mean().item()

        torch_backend.train_step(
            trainer,
            {InputHandle("Features", 0): features, trainer.output: labels},
        )

        assert trainer.previous_step_loss_average() == pytest.approx(expected)
        assert trainer.previous_step_evaluation_average() >= 0
        assert trainer.steps == 1

    def test_label_shape_mismatch(self, torch_backend, linear_graph):
        """Test labels that do not match the output shape are rejected."""
        trainer = torch_backend.create_trainer(
            linear_graph, "squared_error", "squared_error", OptimizerConfig()
        )

        with pytest.raises(ShapeMismatchError):
            torch_backend.train_step(
                trainer,
                {
                    InputHandle("Features", 0): torch.ones(4, 2),
                    trainer.output: torch.zeros(4, 3),
                },
            )

    def test_missing_labels(self, torch_backend, linear_graph):
        """Test a step without labels for the trained output fails."""
        trainer = torch_backend.create_trainer(
            linear_graph, "squared_error", "squared_error", OptimizerConfig()
        )

        with pytest.raises(ConfigurationError):
            torch_backend.train_step(
                trainer, {InputHandle("Features", 0): torch.ones(1, 2)}
            )

    def test_set_learning_rate(self, torch_backend, linear_graph):
        """Test the new rate is applied to every parameter group."""
        trainer = torch_backend.create_trainer(
            linear_graph, "squared_error", "squared_error", OptimizerConfig(lr=0.1)
        )

        torch_backend.set_learning_rate_schedule(trainer, 0.02)

        assert trainer.learning_rate == pytest.approx(0.02)
        assert all(group["lr"] == 0.02 for group in trainer.optimizer.param_groups)

    def test_non_differentiable_loss_rejected(self, torch_backend, linear_graph):
        """Test an evaluation-only metric cannot be used as the loss."""
        with pytest.raises(ConfigurationError, match="not differentiable"):
            torch_backend.create_trainer(
                linear_graph, "classification_error", "squared_error", OptimizerConfig()
            )


class TestEndToEnd:
    """Test the fit loop drivers on real PyTorch modules."""

    def test_linear_regression_converges(self, torch_backend):
        """Test full-batch SGD on y = 2a - b drives the loss down."""
        graph = TorchGraph(nn.Linear(2, 1))
        rng = np.random.default_rng(0)
        rows = [[a, b, 2 * a - b] for a, b in rng.uniform(-1, 1, size=(32, 2))]

        result = fit_flat(
            torch_backend, graph, rows, 2, "squared_error", "squared_error",
            OptimizerConfig(type="sgd", lr=0.1), epoch_count=50, minibatch_size=32,
        )

        assert result.epoch_count == 50
        assert result.loss_curve[-1] < result.loss_curve[0] / 10

    def test_lstm_on_packed_sequences(self, torch_backend):
        """Test variable-length sequences train through an LSTM."""
        graph = TorchGraph(LastStepRegressor(width=3))
        features = [np.full((steps, 3), steps / 10) for steps in (2, 5, 3, 4)]
        labels = [[steps / 10] for steps in (2, 5, 3, 4)]

        result = fit_sequences(
            torch_backend, graph, features, labels, "squared_error",
            "absolute_error", OptimizerConfig(type="adam", lr=0.01),
            epoch_count=3, minibatch_size=2,
        )

        assert result.epoch_count == 3
        assert all(np.isfinite(result.loss_curve))

    def test_two_heads_share_a_trunk(self, torch_backend):
        """Test a shared-trunk model trains both heads with their own optimizers."""
        graph = TorchGraph(TwoHeadModel(2), output_names=("value", "label"))
        features = [[float(i), 1.0] for i in range(8)]
        labels = [([float(i)], [1.0, 0.0] if i % 2 else [0.0, 1.0]) for i in range(8)]

        results = fit_multi_head(
            torch_backend,
            graph,
            features,
            labels,
            ["squared_error", "cross_entropy_with_softmax"],
            ["absolute_error", "classification_error"],
            [OptimizerConfig(type="adam", lr=0.01), OptimizerConfig(lr=0.05)],
            epoch_count=4,
            minibatch_size=4,
        )

        assert [result.epoch_count for result in results] == [4, 4]
        assert 0.0 <= results[1].evaluation_error <= 1.0

    def test_fit_loop_updates_torch_learning_rate(self, torch_backend, linear_graph):
        """Test a learning rate rule reaches the torch optimizer."""
        loop = FitLoop(
            torch_backend,
            linear_graph,
            "squared_error",
            "squared_error",
            OptimizerConfig(lr=0.1),
            input_name="features",
        )
        batch = Minibatch(torch.ones(2, 2), torch.zeros(2, 1), size=2)

        loop.fit(
            [batch],
            epoch_count=3,
            rule_update_learning_rate=lambda epoch, rate: rate / 2,
        )

        assert loop.trainer.learning_rate == pytest.approx(0.025)

    def test_predict_restores_training_mode(self, torch_backend):
        """Test inference runs in eval mode and returns numpy arrays per head."""
        model = TwoHeadModel(2)
        graph = TorchGraph(model, output_names=("value", "label"))
        model.train()

        value, label = predict_features(
            torch_backend, graph, [[1.0, 2.0]] * 5, minibatch_size=2,
            shape=ExampleShape.FLAT,
        )

        assert isinstance(value, np.ndarray)
        assert value.shape == (5, 1)
        assert label.shape == (5, 2)
        assert model.training
