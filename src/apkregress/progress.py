# Copyright (c) Syntropy Systems
"""Shared completion counter with percentage and ETA reporting."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


@dataclass(frozen=True)
class ProgressSnapshot:
    """Progress at the moment a unit completed."""

    completed: int
    total: int
    elapsed: timedelta
    eta: timedelta | None = None

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0
        return self.completed / self.total * 100

    def format(self) -> str:
        line = f"Progress: {self.completed}/{self.total} ({self.percent:.1f}%)"
        if self.eta:
            line += f" - ETA: {timedelta(seconds=round(self.eta.total_seconds()))}"
        return line


class ProgressTracker:
    """Counts completed units across scheduler threads.

    The counter never exceeds ``total``; once it reaches it the tracker is
    frozen and further advances are no-ops. In verbose mode no snapshots are
    published since per-trial log lines already report progress.
    """

    def __init__(
        self,
        total: int,
        verbose: bool = False,
        on_update: Callable[[ProgressSnapshot], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.total = total
        self.verbose = verbose
        self.on_update = on_update
        self._clock = clock
        self._started = clock()
        self._completed = 0
        self._lock = threading.Lock()

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def is_frozen(self) -> bool:
        return self._completed >= self.total

    def advance(self) -> ProgressSnapshot | None:
        """Record one completed unit.

        Returns the published snapshot, or None when the tracker was already
        frozen or runs in verbose mode.
        """
        with self._lock:
            if self._completed >= self.total:
                return None
            self._completed += 1
            completed = self._completed

        if self.verbose:
            return None

        snapshot = self.snapshot(completed)
        if self.on_update is not None:
            self.on_update(snapshot)
        return snapshot

    def snapshot(self, completed: int | None = None) -> ProgressSnapshot:
        if completed is None:
            completed = self._completed
        elapsed = self._clock() - self._started
        eta = None
        if completed > 0:
            remaining = self.total - completed
            eta = timedelta(seconds=elapsed / completed * remaining)
        return ProgressSnapshot(
            completed=completed,
            total=self.total,
            elapsed=timedelta(seconds=elapsed),
            eta=eta,
        )
