"""
Trainer Utilities

This module provides helpers shared by the fit loop drivers:
- Wall-clock timing of a fit call
- Human-readable durations for log lines
- Seeding of every random source used during training
"""

from __future__ import annotations

import random
import time

import numpy as np
import torch

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600


class Stopwatch:
    """
    Wall-clock timer for one fit call.

    lap() returns the seconds since the previous lap (or since start), so the
    fit loop can report each epoch's duration; stop() returns the total.
    """

    def __init__(self) -> None:
        self._started_at: float | None = None
        self._last_lap_at = 0.0
        self.laps: list[float] = []

    def start(self) -> None:
        """Start timing, discarding laps from a previous run."""
        self._started_at = self._last_lap_at = time.perf_counter()
        self.laps = []

    def lap(self) -> float:
        now = self._now()
        lap_time = now - self._last_lap_at
        self._last_lap_at = now
        self.laps.append(lap_time)
        return lap_time

    def stop(self) -> float:
        """Stop timing and return the seconds since start()."""
        total = self._now() - self._started_at
        self._started_at = None
        return total

    def _now(self) -> float:
        if self._started_at is None:
            raise RuntimeError("Stopwatch is not running")
        return time.perf_counter()


def format_time(seconds: float) -> str:
    """
    Format seconds into human-readable time string.

    Args:
        seconds: Time in seconds

    Returns:
        Formatted time string (e.g., "0.4s", "2.5m", "1h 23m")
    """
    if seconds < SECONDS_PER_MINUTE:
        return f"{seconds:.1f}s"
    if seconds < SECONDS_PER_HOUR:
        return f"{seconds / SECONDS_PER_MINUTE:.1f}m"
    hours = int(seconds // SECONDS_PER_HOUR)
    minutes = (seconds % SECONDS_PER_HOUR) / SECONDS_PER_MINUTE
    return f"{hours}h {minutes:.0f}m"


def seed_all(seed: int) -> None:
    """
    Seed Python, NumPy and PyTorch random number generators.

    Minibatch shuffling has its own seeded generator; this covers model
    initialisation and any randomness inside the graph (dropout etc.).
    """
    random.seed(seed)
    np.random.seed(seed)  # noqa: NPY002 - global state used by third-party code
    torch.manual_seed(seed)
