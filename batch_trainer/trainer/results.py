"""
Fit Results

Per-epoch statistics collected by the fit loop drivers and the summary
returned by a fit call. FitResult serialises to dict/JSON with
dataclasses-json so runs can be logged or stored alongside their configs.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import timedelta

from dataclasses_json import DataClassJsonMixin, config

from ..errors import EmptyDatasetError


@dataclass(frozen=True)
class EpochStatistics:
    """Loss and evaluation averages observed at the end of one epoch."""

    epoch: int
    loss: float
    evaluation: float


@dataclass(frozen=True)
class MultiHeadEpochStatistics:
    """Per-head loss and evaluation averages observed at the end of one epoch."""

    epoch: int
    losses: tuple[float, ...]
    evaluations: tuple[float, ...]

    @property
    def head_count(self) -> int:
        return len(self.losses)

    def for_head(self, head: int) -> EpochStatistics:
        return EpochStatistics(
            epoch=self.epoch,
            loss=self.losses[head],
            evaluation=self.evaluations[head],
        )


@dataclass(frozen=True)
class FitResult(DataClassJsonMixin):
    """
    Summary of a completed fit call.

    Attributes:
        loss_error: Loss average of the final epoch
        evaluation_error: Evaluation average of the final epoch
        duration_seconds: Wall-clock duration of the fit call
        epoch_count: Number of epochs actually run (fewer than requested on early stop)
        loss_curve: Loss average per epoch, in epoch order
        evaluation_curve: Evaluation average per epoch, in epoch order
    """

    loss_error: float
    evaluation_error: float
    duration_seconds: float
    epoch_count: int
    loss_curve: tuple[float, ...] = field(metadata=config(decoder=tuple))
    evaluation_curve: tuple[float, ...] = field(metadata=config(decoder=tuple))

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.duration_seconds)

    @classmethod
    def from_history(
        cls, history: Sequence[EpochStatistics], duration_seconds: float
    ) -> "FitResult":
        """
        Summarise the statistics of every epoch run.

        Raises:
            EmptyDatasetError: If no epoch completed
        """
        if not history:
            raise EmptyDatasetError("Cannot summarise a fit call with no epochs")
        last = history[-1]
        return cls(
            loss_error=last.loss,
            evaluation_error=last.evaluation,
            duration_seconds=duration_seconds,
            epoch_count=len(history),
            loss_curve=tuple(stats.loss for stats in history),
            evaluation_curve=tuple(stats.evaluation for stats in history),
        )

    @classmethod
    def per_head(
        cls, history: Sequence[MultiHeadEpochStatistics], duration_seconds: float
    ) -> list["FitResult"]:
        """Split multi-head statistics into one FitResult per head."""
        if not history:
            raise EmptyDatasetError("Cannot summarise a fit call with no epochs")
        return [
            cls.from_history(
                [stats.for_head(head) for stats in history], duration_seconds
            )
            for head in range(history[0].head_count)
        ]
