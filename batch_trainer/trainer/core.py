"""
Fit Loop Drivers

This module contains the epoch loops that drive a compute backend:
- FitLoop trains a single-output graph with one loss, evaluation and optimizer
- MultiHeadFitLoop trains N output heads that share one input, each with its
  own trainer, stepping the heads one after another on every minibatch

Both drivers read the backend's loss/evaluation averages once per epoch,
call the per-epoch action (which may stop training) and then apply the
learning-rate rule before the next epoch starts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
import logging
import math
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from ..batching.pipeline import BatchSelector, as_batch_selector
from ..errors import ConfigurationError, EmptyDatasetError, HeadCountMismatchError
from .results import EpochStatistics, FitResult, MultiHeadEpochStatistics
from .utils import Stopwatch, format_time

if TYPE_CHECKING:
    from ..backend.protocol import ComputeBackend, OptimizerDefinition

logger = logging.getLogger(__name__)

ActionPerEpoch = Callable[[int, float, float], bool]
LearningRateRule = Callable[[int, float], float]
MultiHeadActionPerEpoch = Callable[[int, Sequence[float], Sequence[float]], bool]
MultiHeadLearningRateRule = Callable[[int, Sequence[float]], Sequence[float]]

StatsT = TypeVar("StatsT", EpochStatistics, MultiHeadEpochStatistics)


def _check_learning_rate(rate: float, epoch: int) -> float:
    rate = float(rate)
    if not math.isfinite(rate) or rate < 0:
        raise ConfigurationError(
            f"Learning rate rule returned {rate} after epoch {epoch}; "
            "rates must be finite and non-negative"
        )
    return rate


class _EpochLoop(ABC, Generic[StatsT]):
    """
    Epoch state machine shared by the single- and multi-head drivers.

    Subclasses train one minibatch, read the backend statistics, consult the
    per-epoch action, apply the learning rate rule and format a log summary.
    """

    def __init__(self, backend: ComputeBackend, graph: Any, log_every_n_epochs: int):
        if log_every_n_epochs < 1:
            raise ConfigurationError(
                f"log_every_n_epochs must be >= 1, got {log_every_n_epochs}"
            )
        self.backend = backend
        self.graph = graph
        self.log_every_n_epochs = log_every_n_epochs
        self.history: list[StatsT] = []

    @abstractmethod
    def _train_batch(self, batch: Any, epoch: int) -> None:
        ...

    @abstractmethod
    def _read_statistics(self, epoch: int) -> StatsT:
        ...

    @abstractmethod
    def _should_stop(self, action: Callable[..., bool], stats: StatsT) -> bool:
        ...

    @abstractmethod
    def _apply_rule(self, rule: Callable[..., Any], epoch: int) -> None:
        ...

    @abstractmethod
    def _describe(self, stats: StatsT) -> str:
        ...

    def _run(
        self,
        train_data: BatchSelector | Iterable[Any],
        epoch_count: int,
        rule: Callable[..., Any] | None,
        action: Callable[..., bool] | None,
    ) -> float:
        """Run the epochs, filling self.history; returns the elapsed seconds."""
        if isinstance(epoch_count, bool) or not isinstance(epoch_count, int):
            raise ConfigurationError(
                f"epoch_count must be an integer, got {type(epoch_count).__name__}"
            )
        if epoch_count < 1:
            raise ConfigurationError(f"epoch_count must be >= 1, got {epoch_count}")
        select_batches = as_batch_selector(train_data)

        self.history = []
        stopwatch = Stopwatch()
        stopwatch.start()
        logger.info(f"Starting fit of {self.graph!r} for {epoch_count} epochs")

        for epoch in range(1, epoch_count + 1):
            try:
                batch_count = self._run_epoch(select_batches(epoch), epoch)
            except Exception:
                logger.exception(f"Epoch {epoch}/{epoch_count} aborted")
                raise
            if batch_count == 0:
                raise EmptyDatasetError(f"Epoch {epoch} produced no minibatches")

            stats = self._read_statistics(epoch)
            self.history.append(stats)
            self._log_epoch(stats, epoch_count, batch_count, stopwatch.lap())

            if action is not None and self._should_stop(action, stats):
                logger.info(f"Training stopped by per-epoch action after epoch {epoch}")
                break
            if rule is not None and epoch < epoch_count:
                self._apply_rule(rule, epoch)

        elapsed = stopwatch.stop()
        logger.info(
            f"Fit finished after {len(self.history)} epochs in {format_time(elapsed)}"
        )
        return elapsed

    def _run_epoch(self, batches: Iterable[Any], epoch: int) -> int:
        batch_count = 0
        for batch in batches:
            self._train_batch(batch, epoch)
            batch_count += 1
            logger.debug(f"Epoch {epoch}: trained minibatch {batch_count}")
        return batch_count

    def _log_epoch(
        self, stats: StatsT, epoch_count: int, batch_count: int, seconds: float
    ) -> None:
        epoch = stats.epoch
        level = logging.DEBUG
        if epoch == 1 or epoch == epoch_count or epoch % self.log_every_n_epochs == 0:
            level = logging.INFO
        logger.log(
            level,
            f"Epoch {epoch}/{epoch_count} ({batch_count} minibatches, "
            f"{format_time(seconds)}): {self._describe(stats)}",
        )


class FitLoop(_EpochLoop[EpochStatistics]):
    """
    Single-output training loop driver.

    The input and output are bound and the trainer created at construction,
    so naming and configuration errors surface before any data is touched.

    Example:
        loop = FitLoop(backend, graph, "squared_error", "squared_error",
                       OptimizerConfig(type="sgd", lr=0.01))
        result = loop.fit(pipeline, epoch_count=20)
    """

    def __init__(
        self,
        backend: ComputeBackend,
        graph: Any,
        loss: Any,
        evaluation: Any,
        optimizer: OptimizerDefinition,
        input_name: str = "input",
        log_every_n_epochs: int = 1,
    ):
        super().__init__(backend, graph, log_every_n_epochs)
        self.input = backend.bind_input(graph, input_name)
        self.output = backend.bind_output(graph)
        self.trainer = backend.create_trainer(
            graph, loss, evaluation, optimizer, output=self.output
        )
        self.learning_rate = float(optimizer.lr)

    def fit(
        self,
        train_data: BatchSelector | Iterable[Any],
        epoch_count: int,
        rule_update_learning_rate: LearningRateRule | None = None,
        action_per_epoch: ActionPerEpoch | None = None,
    ) -> FitResult:
        """
        Train for up to epoch_count epochs.

        Args:
            train_data: Callable returning the minibatches of a 1-based epoch
                (e.g. a MinibatchPipeline), or a fixed iterable of minibatches
                reused every epoch
            epoch_count: Maximum number of epochs
            rule_update_learning_rate: (epoch, current_rate) -> new_rate, applied
                between epochs
            action_per_epoch: (epoch, loss, evaluation) -> stop flag

        Returns:
            FitResult covering the epochs actually run

        Raises:
            ConfigurationError: If epoch_count is not a positive integer
            EmptyDatasetError: If an epoch yields no minibatches
        """
        elapsed = self._run(
            train_data, epoch_count, rule_update_learning_rate, action_per_epoch
        )
        return FitResult.from_history(self.history, elapsed)

    def _train_batch(self, batch: Any, epoch: int) -> None:
        self.backend.train_step(
            self.trainer, {self.input: batch.features, self.output: batch.labels}
        )

    def _read_statistics(self, epoch: int) -> EpochStatistics:
        return EpochStatistics(
            epoch=epoch,
            loss=float(self.trainer.previous_step_loss_average()),
            evaluation=float(self.trainer.previous_step_evaluation_average()),
        )

    def _should_stop(self, action: ActionPerEpoch, stats: EpochStatistics) -> bool:
        return bool(action(stats.epoch, stats.loss, stats.evaluation))

    def _apply_rule(self, rule: LearningRateRule, epoch: int) -> None:
        new_rate = _check_learning_rate(rule(epoch, self.learning_rate), epoch)
        if new_rate != self.learning_rate:
            self.backend.set_learning_rate_schedule(self.trainer, new_rate)
            logger.info(
                f"Learning rate changed from {self.learning_rate:g} to {new_rate:g} "
                f"after epoch {epoch}"
            )
            self.learning_rate = new_rate

    def _describe(self, stats: EpochStatistics) -> str:
        return f"loss={stats.loss:.6f}, evaluation={stats.evaluation:.6f}"


class MultiHeadFitLoop(_EpochLoop[MultiHeadEpochStatistics]):
    """
    Training loop driver for graphs with several output heads.

    Every head gets its own trainer; heads share the input minibatch and are
    stepped in head order on each minibatch. All heads run the same epochs and
    share one stop decision.
    """

    def __init__(
        self,
        backend: ComputeBackend,
        graph: Any,
        losses: Sequence[Any],
        evaluations: Sequence[Any],
        optimizers: Sequence[OptimizerDefinition],
        input_name: str = "input",
        log_every_n_epochs: int = 1,
    ):
        super().__init__(backend, graph, log_every_n_epochs)
        self.input = backend.bind_input(graph, input_name)
        self.outputs = backend.bind_outputs(graph)
        head_count = len(self.outputs)
        for what, values in (
            ("losses", losses),
            ("evaluations", evaluations),
            ("optimizers", optimizers),
        ):
            if len(values) != head_count:
                raise HeadCountMismatchError(
                    f"Graph has {head_count} output heads but {len(values)} {what} "
                    "were given"
                )

        self.trainers = [
            backend.create_trainer(graph, loss, evaluation, optimizer, output=output)
            for loss, evaluation, optimizer, output in zip(
                losses, evaluations, optimizers, self.outputs
            )
        ]
        self.learning_rates = [float(optimizer.lr) for optimizer in optimizers]

    @property
    def head_count(self) -> int:
        return len(self.outputs)

    def fit(
        self,
        train_data: BatchSelector | Iterable[Any],
        epoch_count: int,
        rule_update_learning_rate: MultiHeadLearningRateRule | None = None,
        action_per_epoch: MultiHeadActionPerEpoch | None = None,
    ) -> list[FitResult]:
        """
        Train every head for up to epoch_count epochs.

        Args:
            train_data: Callable returning the multi-head minibatches of a 1-based
                epoch, or a fixed iterable of them reused every epoch
            epoch_count: Maximum number of epochs
            rule_update_learning_rate: (epoch, current_rates) -> new_rates, one
                rate per head
            action_per_epoch: (epoch, losses, evaluations) -> stop flag

        Returns:
            One FitResult per head, in head order

        Raises:
            HeadCountMismatchError: If a minibatch or the rule carries the wrong
                number of heads
        """
        elapsed = self._run(
            train_data, epoch_count, rule_update_learning_rate, action_per_epoch
        )
        return FitResult.per_head(self.history, elapsed)

    def _train_batch(self, batch: Any, epoch: int) -> None:
        labels = tuple(batch.labels)
        if len(labels) != self.head_count:
            raise HeadCountMismatchError(
                f"Minibatch in epoch {epoch} carries {len(labels)} label tensors, "
                f"graph has {self.head_count} heads"
            )
        for trainer, output, head_labels in zip(self.trainers, self.outputs, labels):
            self.backend.train_step(
                trainer, {self.input: batch.features, output: head_labels}
            )

    def _read_statistics(self, epoch: int) -> MultiHeadEpochStatistics:
        return MultiHeadEpochStatistics(
            epoch=epoch,
            losses=tuple(
                float(trainer.previous_step_loss_average()) for trainer in self.trainers
            ),
            evaluations=tuple(
                float(trainer.previous_step_evaluation_average())
                for trainer in self.trainers
            ),
        )

    def _should_stop(
        self, action: MultiHeadActionPerEpoch, stats: MultiHeadEpochStatistics
    ) -> bool:
        return bool(action(stats.epoch, stats.losses, stats.evaluations))

    def _apply_rule(self, rule: MultiHeadLearningRateRule, epoch: int) -> None:
        new_rates = list(rule(epoch, tuple(self.learning_rates)))
        if len(new_rates) != self.head_count:
            raise HeadCountMismatchError(
                f"Learning rate rule returned {len(new_rates)} rates for "
                f"{self.head_count} heads"
            )
        # Reject the whole update before any head is changed
        checked = [_check_learning_rate(rate, epoch) for rate in new_rates]
        for head, (trainer, new_rate) in enumerate(zip(self.trainers, checked)):
            if new_rate != self.learning_rates[head]:
                self.backend.set_learning_rate_schedule(trainer, new_rate)
                logger.info(
                    f"Head {head}: learning rate changed from "
                    f"{self.learning_rates[head]:g} to {new_rate:g} after epoch {epoch}"
                )
                self.learning_rates[head] = new_rate

    def _describe(self, stats: MultiHeadEpochStatistics) -> str:
        return ", ".join(
            f"head {head} loss={loss:.6f} evaluation={evaluation:.6f}"
            for head, (loss, evaluation) in enumerate(
                zip(stats.losses, stats.evaluations)
            )
        )
